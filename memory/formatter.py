"""
Render a MemoryContext into the text block injected into the companion's system prompt.

Pure: no I/O. Empty sections are left out entirely.
"""

from datetime import datetime
from typing import List, Optional

from prompts import FIRST_MESSAGE_INSTRUCTIONS
from schemas import MemoryContext, EntityContext, GoalContext

NO_CONTEXT_MESSAGE = "No prior context available. This is a new user."

COMMUNICATION_STYLE_DESCRIPTIONS = {
    "direct": "Direct -- prefers straight talk, no sugarcoating",
    "supportive": "Supportive -- prefers encouragement-first approach",
    "balanced": "Balanced -- mix of directness and encouragement",
}

TREND_DESCRIPTIONS = {
    "improving": "Improving over recent conversations",
    "declining": "Declining over recent conversations",
    "stable": "Stable",
}


def _profile_lines(context: MemoryContext) -> List[str]:
    profile = context.user_profile
    lines = []
    if profile.name:
        lines.append(f"Name: {profile.name}")
    if profile.age:
        lines.append(f"Age: {profile.age}")
    if profile.location:
        lines.append(f"Location: {profile.location}")
    if profile.occupation:
        lines.append(f"Occupation: {profile.occupation}")
    if profile.life_state:
        lines.append(f"Life State: {profile.life_state}")
    if profile.social_style:
        lines.append(f"Social Style: {profile.social_style}")
    if profile.lifestyle:
        lines.append(f"Lifestyle: Prefers {profile.lifestyle}")
    if profile.communication_style:
        description = COMMUNICATION_STYLE_DESCRIPTIONS.get(
            profile.communication_style, profile.communication_style
        )
        lines.append(f"Communication Style: {description}")
    if profile.personality_digest:
        lines.append(f"Personality: {profile.personality_digest}")
    return lines


def _entity_line(entity: EntityContext, now: datetime) -> str:
    line = f"- {entity.name}"
    meta = [entity.type]
    if entity.platform:
        meta.append(entity.platform)
    if entity.status and entity.status != "unknown":
        meta.append(entity.status)
    line += f" ({', '.join(m for m in meta if m)})"
    if entity.notes:
        line += f": {entity.notes}"

    days_ago = (now - entity.last_mentioned_at).days
    if days_ago > 0:
        line += f" [last mentioned {days_ago} day{'' if days_ago == 1 else 's'} ago]"
    return line


def _goal_line(goal: GoalContext) -> str:
    line = f"- [{goal.category.upper()}] {goal.title} ({goal.status}"
    if goal.progress:
        line += f", {goal.progress}"
    line += ")"
    if goal.due_for_check_in:
        line += " -- DUE FOR CHECK-IN"
    return line


def format_memory_for_prompt(
    context: MemoryContext,
    is_first_message: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """
    Turn a MemoryContext into titled prompt sections.

    Args:
        context: Assembled memory for one user
        is_first_message: Add opening-message instructions (needs a known name)
        now: Reference time for "last mentioned" annotations

    Returns:
        Sections joined by blank lines, or NO_CONTEXT_MESSAGE when nothing is known
    """
    now = now or datetime.utcnow()
    sections = []

    profile_lines = _profile_lines(context)
    if profile_lines:
        sections.append("## User Profile\n" + "\n".join(profile_lines))

    if context.active_entities:
        entity_lines = [_entity_line(e, now) for e in context.active_entities]
        sections.append("## People in Their Life\n" + "\n".join(entity_lines))

    if context.active_goals:
        goal_lines = [_goal_line(g) for g in context.active_goals]
        sections.append("## Active Goals\n" + "\n".join(goal_lines))

    emotional_state = context.emotional_state
    if emotional_state.current != "unknown":
        emotion_lines = [
            f"Current mood: {emotional_state.current[:1].upper()}{emotional_state.current[1:]}",
            f"Trend: {TREND_DESCRIPTIONS[emotional_state.trend]}",
        ]
        if len(emotional_state.recent_emotions) > 1:
            emotion_lines.append(f"Recent: {' -> '.join(emotional_state.recent_emotions)}")
        sections.append("## Emotional State\n" + "\n".join(emotion_lines))

    if context.pending_callbacks:
        sections.append("## Follow Up On\n" + "\n".join(f"- {c}" for c in context.pending_callbacks))

    if context.conversation_summary:
        sections.append(f"## Conversation So Far\n{context.conversation_summary}")

    if context.insights:
        sections.append("## Key Insights\n" + "\n".join(f"- {i}" for i in context.insights))

    if is_first_message and context.user_profile.name:
        sections.append(f"## First Message\n{FIRST_MESSAGE_INSTRUCTIONS}")

    if not sections:
        return NO_CONTEXT_MESSAGE

    return "\n\n".join(sections)
