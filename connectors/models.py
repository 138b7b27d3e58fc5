"""
CredentialBundle — the OAuth state held for one user / application pairing.

``expires_at`` is kept as an aware UTC datetime internally and exchanged
with clients as epoch milliseconds.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# Anything above this is read as epoch milliseconds, below as epoch seconds.
_EPOCH_MS_THRESHOLD = 100_000_000_000


def parse_expires_at(value: Any) -> Optional[datetime]:
    """Accept epoch ms, epoch seconds, ISO-8601 or datetime; return aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError("expires_at must be a timestamp, not a boolean")
    if isinstance(value, str) and not value.strip().lstrip("-").replace(".", "", 1).isdigit():
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    number = float(value)
    if number > _EPOCH_MS_THRESHOLD:
        number /= 1000.0
    return datetime.fromtimestamp(number, tz=timezone.utc)


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


class CredentialBundle(BaseModel):
    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    access_token: str = Field(default="", repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"

    @field_validator("expires_at", mode="before")
    @classmethod
    def _coerce_expires_at(cls, value: Any) -> Optional[datetime]:
        return parse_expires_at(value)

    @field_validator("token_type", mode="before")
    @classmethod
    def _default_token_type(cls, value: Any) -> str:
        return value or "Bearer"

    # ── Expiry ──────────────────────────────────────────────────────────

    def is_expired(self, buffer_seconds: int, *, now: Optional[datetime] = None) -> bool:
        """
        True once ``now`` is inside the buffer window before ``expires_at``.
        A bundle without ``expires_at`` is never expired here; callers
        decide what a missing expiry means.
        """
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now > self.expires_at - timedelta(seconds=buffer_seconds)

    # ── Wire format ─────────────────────────────────────────────────────

    def to_token_response(self) -> Dict[str, Any]:
        """Token fields returned to clients.  Client secrets are never echoed."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": to_epoch_ms(self.expires_at),
            "token_type": self.token_type,
        }
