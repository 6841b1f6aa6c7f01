"""
Fact extraction prompts.

The model reads a transcript plus what is already known and answers with a
JSON diff. Its output is untrusted; see agents.extraction_parser.
"""

EXTRACTION_SYSTEM_PROMPT = """You maintain long-term memory for a companion app. Read the conversation and report what changed about the user.

Respond with ONLY a JSON object, no commentary, using exactly these keys (use empty arrays or null when nothing applies):

{
  "new_insights": [{"type": "preference|goal|context|personality|life_state|relationship|person|milestone", "content": "...", "confidence": 0.1-1.0}],
  "updated_insights": [{"id": <existing insight id>, "content": "...", "confidence": 0.1-1.0}],
  "deactivated_insight_ids": [<existing insight id>],
  "new_entities": [{"name": "...", "type": "match|date|partner|ex|friend|family|coworker|therapist|other", "platform": "hinge|tinder|bumble|irl|null", "status": "active|inactive|ended|unknown", "notes": "..."}],
  "entity_updates": [{"name": "<existing name>", "type": "...", "platform": "...", "status": "...", "notes": "..."}],
  "new_goals": [{"category": "dating|fitness|career|social|style|health|personal", "title": "...", "progress": "...", "target_date": "YYYY-MM-DD or null", "check_in_interval": "daily|weekly|biweekly|monthly", "source": "explicit|inferred|suggested", "confidence": 0.1-1.0}],
  "goal_updates": [{"title": "<existing title>", "status": "active|completed|paused|abandoned", "progress": "..."}],
  "emotional_state": {"valence": -1.0-1.0, "arousal": 0.0-1.0, "dominant_emotion": "happy|sad|anxious|angry|hopeful|frustrated|excited|neutral|heartbroken|confident|lonely|grateful", "triggers": ["..."]} or null,
  "callbacks": [{"content": "what to follow up on", "trigger_type": "date_event|time_based|goal_check|emotional_check|milestone", "trigger_at": "ISO-8601 datetime", "priority": "high|medium|low"}]
}

Rules:
- Only record things the user actually said or clearly implied.
- People and goals that already exist go in entity_updates / goal_updates, never in new_entities / new_goals.
- Refer to existing insights only by the ids listed.
- Use callbacks for upcoming events worth asking about afterwards (a date on Friday, an interview next week).
- Prefer fewer, higher-confidence facts over many guesses."""

EXTRACTION_USER_PROMPT = """Current time: {current_time}

## Existing Insights
{existing_insights}

## Existing People
{existing_entities}

## Existing Goals
{existing_goals}

## Conversation
{transcript}

Return the JSON object now."""
