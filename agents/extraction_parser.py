"""
Defensive parsing of extraction responses.

The model's output is untrusted. Every function here is total: malformed
input becomes an empty result or a ``None`` row, never an exception.
"""

import json
import math
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import dateparser
import pytz

from schemas import (
    ExtractionResult,
    NewEntity,
    EntityUpdate,
    NewGoal,
    GoalUpdate,
    EmotionalReading,
    NewCallback,
    NewInsight,
    InsightUpdate,
)
from schemas.facts import (
    ENTITY_TYPES,
    ENTITY_PLATFORMS,
    ENTITY_STATUSES,
    GOAL_CATEGORIES,
    GOAL_STATUSES,
    GOAL_SOURCES,
    CHECK_IN_INTERVALS,
    EMOTIONS,
    CALLBACK_TRIGGER_TYPES,
    CALLBACK_PRIORITIES,
    INSIGHT_TYPES,
)


CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]+?)```", re.IGNORECASE)

CATEGORY_CHECK_IN_INTERVALS = {
    "fitness": "weekly",
    "dating": "weekly",
    "health": "weekly",
    "career": "biweekly",
    "social": "biweekly",
    "personal": "biweekly",
    "style": "monthly",
}

DEFAULT_CONFIDENCE = 0.5
DEFAULT_CALLBACK_DELAY = timedelta(hours=24)

_LIST_KEYS = (
    "new_insights",
    "updated_insights",
    "new_entities",
    "entity_updates",
    "new_goals",
    "goal_updates",
    "callbacks",
)


# ==================== Response parsing ====================


def strip_code_fences(text: str) -> str:
    """Return the body of the first ``` fenced block, or the trimmed text."""
    candidate = text.strip()
    match = CODE_FENCE_RE.search(candidate)
    if match:
        candidate = match.group(1).strip()
    return candidate


def load_json_object(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse a JSON object out of model text. None when it is not one."""
    if not raw or not isinstance(raw, str):
        return None
    try:
        parsed = json.loads(strip_code_fences(raw))
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extraction_result_from_dict(data: Dict[str, Any]) -> ExtractionResult:
    """Keep known keys with the right container shape. Unknown keys are ignored."""
    values: Dict[str, Any] = {}
    for key in _LIST_KEYS:
        items = data.get(key)
        values[key] = [i for i in items if isinstance(i, dict)] if isinstance(items, list) else []

    ids = data.get("deactivated_insight_ids")
    values["deactivated_insight_ids"] = list(ids) if isinstance(ids, list) else []

    emotional_state = data.get("emotional_state")
    values["emotional_state"] = emotional_state if isinstance(emotional_state, dict) else None

    return ExtractionResult(**values)


def parse_extraction_response(raw: Optional[str]) -> ExtractionResult:
    """Fence-strip, parse and default. Anything unparseable is an empty result."""
    data = load_json_object(raw)
    if data is None:
        return ExtractionResult()
    return extraction_result_from_dict(data)


# ==================== Scalar coercion ====================


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) or math.isinf(number) else number


def clamp(value: Any, low: float, high: float, default: float) -> float:
    """Clamp a numeric-ish value into [low, high]; non-numbers give ``default``."""
    number = _as_number(value)
    if number is None:
        return default
    return max(low, min(high, number))


def clamp_confidence(value: Any) -> float:
    """Confidence always lands in [0.1, 1.0]; missing means 0.5."""
    return clamp(value, 0.1, 1.0, DEFAULT_CONFIDENCE)


def normalize_enum(value: Any, allowed: Iterable[str]) -> Optional[str]:
    """Trimmed, lower-cased value if it is one of ``allowed``."""
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if candidate in allowed else None


def clean_text(value: Any) -> Optional[str]:
    """Non-blank text, or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def coerce_id(value: Any) -> Optional[int]:
    """Integer record id from an int or digit string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_datetime(value: Any, now: datetime) -> Optional[datetime]:
    """
    Parse an absolute date/time into naive UTC.

    Accepts ISO-8601 (offsets converted to UTC) and unambiguous absolute
    dates dateparser can read strictly. Relative phrases are rejected.
    """
    text = clean_text(value)
    if text is None:
        return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = dateparser.parse(
                text,
                settings={
                    "STRICT_PARSING": True,
                    "RELATIVE_BASE": now,
                    "PREFER_DATES_FROM": "future",
                },
            )
        except (ValueError, OverflowError, TypeError):
            return None
        if parsed is None:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(pytz.UTC).replace(tzinfo=None)
    return parsed


def callback_trigger_at(value: Any, now: datetime) -> datetime:
    """Callback due time; unparseable or absent means 24 hours from ``now``."""
    return parse_datetime(value, now) or now + DEFAULT_CALLBACK_DELAY


# ==================== Row validators ====================


def validate_new_entity(raw: Dict[str, Any]) -> Optional[NewEntity]:
    """Name and type are required; bad platform/status are normalized."""
    name = clean_text(raw.get("name"))
    entity_type = normalize_enum(raw.get("type"), ENTITY_TYPES)
    if name is None or entity_type is None:
        return None
    return NewEntity(
        name=name,
        type=entity_type,
        platform=normalize_enum(raw.get("platform"), ENTITY_PLATFORMS),
        status=normalize_enum(raw.get("status"), ENTITY_STATUSES) or "unknown",
        notes=clean_text(raw.get("notes")),
    )


def validate_entity_update(raw: Dict[str, Any]) -> Optional[EntityUpdate]:
    """Keep only sub-fields that were supplied and validate."""
    name = clean_text(raw.get("name"))
    if name is None:
        return None
    return EntityUpdate(
        name=name,
        type=normalize_enum(raw.get("type"), ENTITY_TYPES),
        platform=normalize_enum(raw.get("platform"), ENTITY_PLATFORMS),
        status=normalize_enum(raw.get("status"), ENTITY_STATUSES),
        notes=clean_text(raw.get("notes")),
    )


def validate_new_goal(raw: Dict[str, Any], now: datetime) -> Optional[NewGoal]:
    """Category and title are required. Interval falls back to the category default."""
    category = normalize_enum(raw.get("category"), GOAL_CATEGORIES)
    title = clean_text(raw.get("title"))
    if category is None or title is None:
        return None
    interval = (
        normalize_enum(raw.get("check_in_interval"), CHECK_IN_INTERVALS)
        or CATEGORY_CHECK_IN_INTERVALS[category]
    )
    return NewGoal(
        category=category,
        title=title,
        progress=clean_text(raw.get("progress")),
        target_date=parse_datetime(raw.get("target_date"), now),
        check_in_interval=interval,
        source=normalize_enum(raw.get("source"), GOAL_SOURCES) or "inferred",
        confidence=clamp_confidence(raw.get("confidence")),
    )


def validate_goal_update(raw: Dict[str, Any]) -> Optional[GoalUpdate]:
    """Needs a title and at least one valid change."""
    title = clean_text(raw.get("title"))
    if title is None:
        return None
    status = normalize_enum(raw.get("status"), GOAL_STATUSES)
    progress = clean_text(raw.get("progress"))
    if status is None and progress is None:
        return None
    return GoalUpdate(title=title, status=status, progress=progress)


def validate_emotional_state(raw: Optional[Dict[str, Any]]) -> Optional[EmotionalReading]:
    """Emotion must be one of the fixed set; valence and arousal are clamped."""
    if not raw:
        return None
    emotion = normalize_enum(raw.get("dominant_emotion"), EMOTIONS)
    if emotion is None:
        return None

    triggers = raw.get("triggers")
    if isinstance(triggers, list):
        trigger_list: Optional[List[str]] = [t for t in (clean_text(x) for x in triggers) if t] or None
    else:
        single = clean_text(triggers)
        trigger_list = [single] if single else None

    return EmotionalReading(
        valence=clamp(raw.get("valence"), -1.0, 1.0, 0.0),
        arousal=clamp(raw.get("arousal"), 0.0, 1.0, 0.5),
        dominant_emotion=emotion,
        triggers=trigger_list,
    )


def validate_callback(raw: Dict[str, Any], now: datetime) -> Optional[NewCallback]:
    """Content is required; everything else has a fallback."""
    content = clean_text(raw.get("content"))
    if content is None:
        return None
    return NewCallback(
        content=content,
        trigger_type=normalize_enum(raw.get("trigger_type"), CALLBACK_TRIGGER_TYPES) or "time_based",
        trigger_at=callback_trigger_at(raw.get("trigger_at"), now),
        priority=normalize_enum(raw.get("priority"), CALLBACK_PRIORITIES) or "medium",
    )


def validate_new_insight(raw: Dict[str, Any]) -> Optional[NewInsight]:
    """Type must be known and content non-blank."""
    insight_type = normalize_enum(raw.get("type"), INSIGHT_TYPES)
    content = clean_text(raw.get("content"))
    if insight_type is None or content is None:
        return None
    return NewInsight(type=insight_type, content=content, confidence=clamp_confidence(raw.get("confidence")))


def validate_insight_update(raw: Dict[str, Any]) -> Optional[InsightUpdate]:
    """Needs an id and at least one of content/confidence."""
    insight_id = coerce_id(raw.get("id"))
    if insight_id is None:
        return None
    content = clean_text(raw.get("content"))
    confidence = clamp_confidence(raw["confidence"]) if raw.get("confidence") is not None else None
    if content is None and confidence is None:
        return None
    return InsightUpdate(id=insight_id, content=content, confidence=confidence)
