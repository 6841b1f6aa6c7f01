"""
Turns onboarding answers into the user's profile document.

The profile keys written here are the ones the per-turn profile reader
surfaces to the companion.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from schemas import OnboardingRequest

COACHING_TO_COMMUNICATION_STYLE = {
    "drill_sergeant": "direct",
    "wise_friend": "balanced",
    "hype_man": "supportive",
}

LIFE_CHAPTER_TO_STATE = {
    "single_looking": "Single, actively trying to date",
    "heartbreak": "Getting over a breakup",
    "leveling_up": "Focused on self-improvement",
    "relationship": "In a relationship, working on it",
    "just_vibing": "Looking for genuine connection and conversation",
}

SOCIAL_LABELS = {
    "wallflower": "Highly introverted, prefers solitude or small familiar groups",
    "slow_warm": "Slow to warm up, observes before engaging",
    "selective": "Selectively social, goes deep one-on-one",
    "social_butterfly": "Extroverted, naturally initiates and enjoys social settings",
}

SATURDAY_LABELS = {
    "active": "fitness/sports",
    "social": "social outings with friends",
    "creative": "creative projects (music, code, cooking)",
    "chill": "relaxation and downtime",
    "growth": "reading/self-work",
}


def build_onboarding_profile(answers: OnboardingRequest, now: datetime) -> Dict[str, Any]:
    """Profile document with readable labels plus the raw answers for re-display."""
    profile: Dict[str, Any] = {"name": answers.name}

    if answers.life_chapter:
        profile["life_state"] = LIFE_CHAPTER_TO_STATE[answers.life_chapter]
    if answers.social_confidence:
        profile["social_style"] = SOCIAL_LABELS[answers.social_confidence]
    if answers.saturday_night:
        profile["lifestyle"] = " and ".join(SATURDAY_LABELS[s] for s in answers.saturday_night)
    if answers.personality_digest:
        profile["personality_digest"] = answers.personality_digest

    profile["onboarding"] = {
        "life_chapter": answers.life_chapter,
        "social_confidence": answers.social_confidence,
        "saturday_night": list(answers.saturday_night),
        "coaching_style": answers.coaching_style,
        "completed_at": now.isoformat(),
    }
    return profile


def onboarding_answers(answers: OnboardingRequest) -> List[Tuple[str, str]]:
    """One (question_key, response) pair per answered question."""
    pairs: List[Tuple[str, Optional[str]]] = [
        ("life_chapter", answers.life_chapter),
        ("social_confidence", answers.social_confidence),
        ("saturday_night", ",".join(answers.saturday_night) or None),
        ("coaching_style", answers.coaching_style),
        ("personality_digest", answers.personality_digest),
    ]
    return [(key, value) for key, value in pairs if value]
