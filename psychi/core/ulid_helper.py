"""ULID ids for sessions, assignments and reminder delivery handles."""

import ulid


def generate_ulid() -> str:
    """Generate a new ULID string; lexicographic order follows creation time."""
    return str(ulid.ULID())
