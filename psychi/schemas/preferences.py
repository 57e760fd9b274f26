"""Client matching preferences captured by the onboarding quiz."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..core.enums import SessionType


class ClientPreferences(BaseModel):
    """
    Preferences used to rank supporters.

    Missing values fall back to the quiz defaults so a partial update (for
    example only new session types) can still drive a reassignment.
    """

    model_config = ConfigDict(extra="ignore")

    mood: int = Field(3, ge=1, le=5)
    topics: List[str] = Field(default_factory=list)
    communication_style: str = "balanced"
    preferred_session_types: List[SessionType] = Field(
        default_factory=lambda: [SessionType.CHAT, SessionType.PHONE, SessionType.VIDEO]
    )
    scheduling_preference: str = "flexible"
    preferred_times: List[str] = Field(
        default_factory=lambda: ["morning", "afternoon", "evening"]
    )
    personality_preference: str = "warm"
    goals: List[str] = Field(default_factory=lambda: ["connection"])
    urgency: str = "moderate"
    timezone: str = "America/New_York"
