# psychi/services/matching_service.py
"""
Supporter matching.

Scores each verified, accepting supporter against a client's quiz answers:

- specialties covering the client's topics: up to 40
- offered session types: up to 20
- weekly availability in the client's preferred times: up to 20
- approach text matching style and personality keywords: up to 15
- currently available: 5
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.config import settings
from ..core.constants import PREFERRED_TIME_RANGES, WEEKEND_DAYS
from ..domain.availability import WeeklyAvailability
from ..domain.supporters import SupporterProfile
from ..schemas.preferences import ClientPreferences
from .base import BaseService

logger = logging.getLogger(__name__)

# Quiz topic id -> specialty names used on supporter profiles
TOPIC_SPECIALTIES: Dict[str, Tuple[str, ...]] = {
    "anxiety": ("Anxiety",),
    "stress": ("Stress",),
    "depression": ("Depression",),
    "relationships": ("Relationships",),
    "loneliness": ("Loneliness",),
    "work_career": ("Work-Life Balance", "Career"),
    "academic": ("Academic Pressure",),
    "self_esteem": ("Self-Esteem",),
    "family": ("Family Issues", "Family"),
    "grief": ("Grief/Loss", "Grief"),
    "transitions": ("Life Transitions", "Transitions"),
    "identity": ("LGBTQ+", "Identity", "Coming Out"),
}

STYLE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "direct": ("practical", "actionable", "direct", "solution", "goal"),
    "empathetic": ("empathy", "listen", "understand", "support", "validate", "safe"),
    "balanced": ("balance", "both", "combine", "flexible", "adapt"),
    "exploratory": ("explore", "reflect", "question", "understand", "insight", "discover"),
}

PERSONALITY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "warm": ("warm", "caring", "nurturing", "gentle", "compassion", "comfort"),
    "motivating": ("motivat", "energy", "uplift", "encourage", "action", "positive"),
    "calm": ("calm", "peace", "steady", "ground", "reassur", "relax"),
    "analytical": ("analytic", "logic", "thought", "method", "insight", "understand"),
}

DEFAULT_REASON = "Available to support you"
MAX_REASONS = 3


@dataclass(frozen=True)
class SupporterMatch:
    supporter: SupporterProfile
    score: int
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def supporter_id(self) -> str:
        return self.supporter.id


def time_match_score(preferred_times: Sequence[str], availability: WeeklyAvailability) -> float:
    """Up to 20 points for weekly windows starting inside the preferred parts of day."""
    if not preferred_times:
        return 10.0

    matches = 0
    for preferred in preferred_times:
        if preferred == "weekends":
            if any(availability.is_enabled(day) for day in WEEKEND_DAYS):
                matches += 1
            continue
        hours = PREFERRED_TIME_RANGES.get(preferred)
        if hours is None:
            continue
        start_hour, end_hour = hours
        # One match per weekday with a window starting in the range
        for weekday in availability.enabled_days:
            if any(
                start_hour <= window.start_minute // 60 < end_hour
                for window in availability.windows_for(weekday)
            ):
                matches += 1

    return min(20.0, matches / len(preferred_times) * 20)


def approach_match_score(communication_style: str, personality: str, approach: str) -> int:
    """Up to 15 points from keywords in the supporter's approach text."""
    if not approach:
        return 5
    text = approach.lower()
    score = 0
    if any(keyword in text for keyword in STYLE_KEYWORDS.get(communication_style, ())):
        score += 5
    if any(keyword in text for keyword in PERSONALITY_KEYWORDS.get(personality, ())):
        score += 5
    if len(approach) > 50:
        score += 5
    return min(15, score)


class MatchingService(BaseService):
    def __init__(self, high_match_threshold: Optional[int] = None) -> None:
        super().__init__()
        self.high_match_threshold = (
            settings.high_match_threshold if high_match_threshold is None else high_match_threshold
        )

    def score(self, preferences: ClientPreferences, supporter: SupporterProfile) -> SupporterMatch:
        score = 0.0
        reasons: List[str] = []

        specialties = {specialty.lower() for specialty in supporter.specialties}
        if preferences.topics:
            topic_hits = 0
            for topic in preferences.topics:
                for specialty in TOPIC_SPECIALTIES.get(topic, (topic,)):
                    if specialty.lower() in specialties:
                        topic_hits += 1
                        reasons.append(f"Specializes in {specialty}")
                        break
            score += topic_hits / len(preferences.topics) * 40

        preferred_types = preferences.preferred_session_types
        if preferred_types:
            offered = sum(1 for kind in preferred_types if kind in supporter.session_types)
            score += offered / len(preferred_types) * 20
            if offered == len(preferred_types):
                reasons.append("Offers all your preferred session types")

        time_score = time_match_score(preferences.preferred_times, supporter.availability)
        score += time_score
        if time_score >= 15:
            reasons.append("Available when you need")

        approach_score = approach_match_score(
            preferences.communication_style,
            preferences.personality_preference,
            supporter.approach,
        )
        score += approach_score
        if approach_score >= 10:
            reasons.append("Communication style match")

        if supporter.is_available:
            score += 5
            if preferences.urgency == "soon":
                reasons.append("Available now")

        return SupporterMatch(
            supporter=supporter,
            score=int(score + 0.5),  # half-up
            reasons=tuple(reasons[:MAX_REASONS]) or (DEFAULT_REASON,),
        )

    def rank(
        self, preferences: ClientPreferences, supporters: Iterable[SupporterProfile]
    ) -> List[SupporterMatch]:
        """
        Score matchable supporters, best first.

        Only matches at or above the high-match threshold are returned, unless
        none reach it, in which case every scored supporter is returned.
        """
        matches = [
            self.score(preferences, supporter)
            for supporter in supporters
            if supporter.is_matchable
        ]
        matches.sort(key=lambda match: match.score, reverse=True)
        high = [match for match in matches if match.score >= self.high_match_threshold]
        return high or matches
