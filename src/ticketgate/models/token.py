"""OAuth2 token model."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Token(BaseModel):
    """Access/refresh token pair returned by the OAuth2 token endpoint.

    Parameters
    ----------
    access_value : str
        Bearer token sent with API reads.
    refresh_value : str or None
        Credential used to obtain the next access token.
    expires_at : datetime or None
        UTC instant the access token stops being accepted.  ``None`` when
        the token endpoint did not announce a lifetime.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    access_value: str = Field(min_length=1)
    refresh_value: str | None = None
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @classmethod
    def from_response(
        cls,
        payload: dict[str, Any],
        *,
        previous_refresh: str | None = None,
        now: datetime | None = None,
    ) -> Token:
        """Build a token from a token-endpoint JSON response.

        A response that omits ``refresh_token`` keeps *previous_refresh*:
        providers are allowed to not rotate the refresh credential.
        """
        issued = now or datetime.now(UTC)
        expires_at: datetime | None = None
        expires_in = payload.get("expires_in")
        if expires_in not in (None, ""):
            expires_at = issued + timedelta(seconds=float(expires_in))
        refresh = payload.get("refresh_token") or previous_refresh
        return cls(
            access_value=str(payload.get("access_token") or ""),
            refresh_value=refresh,
            expires_at=expires_at,
        )

    def expires_within(self, margin: float, *, now: datetime | None = None) -> bool:
        """Whether the token expires less than *margin* seconds from *now*."""
        if self.expires_at is None:
            return False
        current = now or datetime.now(UTC)
        return self.expires_at - current <= timedelta(seconds=margin)
