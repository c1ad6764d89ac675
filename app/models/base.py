"""Shared base utilities for data models."""
from datetime import datetime, timezone
import secrets


def generate_id(prefix: str) -> str:
    """Generate a unique ID with a prefix."""
    return f"{prefix}_{secrets.token_hex(6)}"


def utc_now() -> datetime:
    """Timezone-aware current time, used for job and cache timestamps."""
    return datetime.now(timezone.utc)
