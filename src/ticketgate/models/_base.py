"""Base model for ticketgate records.

Every record inherits from :class:`GatewayModel` which provides:

* frozen instances, so a ticket or entrant fetched for a pass cannot be
  mutated halfway through it;
* a ``model_validator(mode="before")`` that strips surrounding whitespace
  from strings and drops the platform's "not answered" sentinels so the
  field default is used instead.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

# Values the ticketing platform stores for unanswered metadata questions.
_SENTINELS = frozenset({"", "-", "--", "n/a", "N/A", "null", "None"})


def clean_text(value: Any) -> str | None:
    """Normalize a free-text answer to a stripped string, or ``None`` if blank.

    Numbers are stringified (simulator ids are sometimes stored as ints).
    Anything else (lists, dicts) is not a usable answer.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = str(int(value)) if value.is_integer() else str(value)
    elif isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = " ".join(value.split())
    if text in _SENTINELS:
        return None
    return text


class GatewayModel(BaseModel):
    """Base for all ticketgate records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip strings and drop sentinel answers before field validation."""
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if isinstance(value, str):
                text = clean_text(value)
                if text is None:
                    continue
                cleaned[key] = text
            else:
                cleaned[key] = value
        return cleaned
