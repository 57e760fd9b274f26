"""Catalog constants for session types and notification timing."""

from __future__ import annotations

from .enums import SessionType, Weekday

# Canonical price per session type (cents)
SESSION_PRICES_CENTS = {
    SessionType.CHAT: 700,
    SessionType.PHONE: 1500,
    SessionType.VIDEO: 2000,
}

# Canonical duration per session type (minutes)
SESSION_DURATIONS_MINUTES = {
    SessionType.CHAT: 30,
    SessionType.PHONE: 45,
    SessionType.VIDEO: 45,
}

SESSION_DISPLAY_NAMES = {
    SessionType.CHAT: "Chat Session",
    SessionType.PHONE: "Phone Call",
    SessionType.VIDEO: "Video Call",
}

MINUTES_PER_DAY = 24 * 60

WEEKEND_DAYS = frozenset({Weekday.SATURDAY, Weekday.SUNDAY})

# Preferred-time buckets used by matching (local hours, end exclusive)
PREFERRED_TIME_RANGES = {
    "early_morning": (6, 9),
    "morning": (9, 12),
    "afternoon": (12, 17),
    "evening": (17, 21),
    "night": (21, 24),
}

MAX_REASON_LENGTH = 500


def price_for(session_type: SessionType) -> int:
    return SESSION_PRICES_CENTS[SessionType(session_type)]


def duration_for(session_type: SessionType) -> int:
    return SESSION_DURATIONS_MINUTES[SessionType(session_type)]
