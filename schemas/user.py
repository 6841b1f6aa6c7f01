"""User schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


class UserBaseSchema(BaseModel):
    """Base user schema with common fields."""

    email: str = Field(..., max_length=255, description="Login email")
    display_name: Optional[str] = Field(None, max_length=255, description="User's display name")


class UserCreateSchema(UserBaseSchema):
    """Schema for creating a new user."""

    profile: Optional[Dict[str, Any]] = Field(None, description="Onboarding profile document")
    communication_style: Literal["direct", "supportive", "balanced"] = Field(
        "balanced", description="How the user wants to be spoken to"
    )
    onboarding_complete: bool = Field(False, description="Whether onboarding has finished")


class UserSchema(UserBaseSchema):
    """Complete user schema with all fields."""

    id: int = Field(..., description="Internal user ID")
    profile: Optional[Dict[str, Any]] = Field(None, description="Onboarding profile document")
    communication_style: str = Field("balanced", description="direct, supportive or balanced")
    onboarding_complete: bool = Field(False, description="Whether onboarding has finished")
    created_at: datetime = Field(..., description="User creation timestamp")
    last_active_at: datetime = Field(..., description="Last chat activity timestamp")

    model_config = ConfigDict(from_attributes=True)


class OnboardingResponseSchema(BaseModel):
    """One raw onboarding answer."""

    id: int
    user_id: int
    question_key: str = Field(..., description="Stable key of the onboarding question")
    response: Any = Field(..., description="Answer as captured by the client")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserProfileContext(BaseModel):
    """Profile fields surfaced to the companion on every turn."""

    name: Optional[str] = None
    age: Optional[str] = None
    location: Optional[str] = None
    occupation: Optional[str] = None
    life_state: Optional[str] = None
    social_style: Optional[str] = None
    lifestyle: Optional[str] = None
    personality_digest: Optional[str] = None
    goals: Optional[List[str]] = None
    communication_style: Optional[str] = None


class OnboardingRequest(BaseModel):
    """Answers from the onboarding flow."""

    name: str = Field(..., min_length=1, max_length=128, description="What the user wants to be called")
    life_chapter: Optional[
        Literal["single_looking", "heartbreak", "leveling_up", "relationship", "just_vibing"]
    ] = None
    social_confidence: Optional[Literal["wallflower", "slow_warm", "selective", "social_butterfly"]] = None
    saturday_night: List[Literal["active", "social", "creative", "chill", "growth"]] = Field(
        default_factory=list, max_length=2
    )
    coaching_style: Optional[Literal["drill_sergeant", "wise_friend", "hype_man"]] = None
    personality_digest: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)
