"""Gateway configuration for ticketgate."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ticketgate._constants import (
    API_BASE_URL,
    AUTH_URL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_REFRESH_MARGIN,
    DEFAULT_SYNC_INTERVAL,
    TOKEN_URL,
)
from ticketgate.exceptions import ConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_required(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None or not value.strip():
        raise ConfigError(f"{key} not set")
    return value.strip()


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class MetadataFieldIds:
    """Ticketing-platform metadata field ids holding the buyer's details.

    Each ticket carries a list of ``{metadata_id, value}`` answers; these
    ids say which answer is which.
    """

    first_name: str
    last_name: str
    team_name: str
    simulator_id: str


@dataclasses.dataclass(frozen=True)
class OAuth2Settings:
    """OAuth2 client registration with the ticketing platform.

    Parameters
    ----------
    client_id : str
        Registered client id.
    client_secret : str
        Registered client secret.
    redirect_url : str
        Callback URL the platform redirects to with the authorization code.
    auth_url : str
        Authorization endpoint.
    token_url : str
        Token endpoint used for the code exchange and refreshes.
    refresh_token : str or None
        Previously obtained refresh credential.  When set, the gateway can
        start syncing without a fresh browser authorization.
    """

    client_id: str
    client_secret: str
    redirect_url: str
    auth_url: str = AUTH_URL
    token_url: str = TOKEN_URL
    refresh_token: str | None = None


@dataclasses.dataclass(frozen=True)
class GatewayConfig:
    """Gateway configuration.

    Parameters
    ----------
    roster_file : Path
        ACSM championship JSON file to keep in sync.
    event_id : str
        Ticketing-platform event GUID whose tickets are synced.
    car_map : str
        ``ticket_type:car:slot`` triples separated by commas.  Parsed by
        :meth:`ticketgate.mapping.CarMapping.parse`.
    metadata_fields : MetadataFieldIds
        Metadata field ids for the buyer's details.
    oauth : OAuth2Settings
        OAuth2 client registration.
    api_base_url : str
        Ticketing-platform REST base URL.
    listen_address : str
        ``host:port`` for the HTTP callback/trigger surface.
    sync_interval : float
        Seconds between scheduled full syncs.  ``0`` disables the schedule.
    http_timeout : float
        Total timeout in seconds for every outbound HTTP request.
    refresh_margin : float
        A token expiring within this many seconds is refreshed before use.
    roster_backup : bool
        Keep a timestamped copy of the roster file before each commit.
    """

    roster_file: Path
    event_id: str
    car_map: str
    metadata_fields: MetadataFieldIds
    oauth: OAuth2Settings
    api_base_url: str = API_BASE_URL
    listen_address: str = "127.0.0.1:8080"
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    refresh_margin: float = DEFAULT_REFRESH_MARGIN
    roster_backup: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> GatewayConfig:
        """Create configuration from environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        ConfigError
            A required variable is missing or a numeric one is malformed.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_REQUIRED_MAP = {
            "ACSM_JSON_FILE": "roster_file",
            "EVENTIX_EVENT_GUID": "event_id",
            "TICKET_ID_TO_CAR_MAP": "car_map",
        }
        for env_key, field_name in _ENV_REQUIRED_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_required(env, env_key)

        if "metadata_fields" not in overrides:
            config_kwargs["metadata_fields"] = MetadataFieldIds(
                first_name=_env_required(env, "EVENTIX_METADATA_FIRST_NAME"),
                last_name=_env_required(env, "EVENTIX_METADATA_LAST_NAME"),
                team_name=_env_required(env, "EVENTIX_METADATA_TEAM_NAME"),
                simulator_id=_env_required(env, "EVENTIX_METADATA_STEAM_ID"),
            )

        if "oauth" not in overrides:
            oauth_kwargs: dict[str, Any] = {
                "client_id": _env_required(env, "EVENTIX_OAUTH2_CLIENT_ID"),
                "client_secret": _env_required(env, "EVENTIX_OAUTH2_CLIENT_SECRET"),
                "redirect_url": _env_required(env, "EVENTIX_OAUTH2_REDIRECT_URL"),
            }
            _ENV_OAUTH_MAP = {
                "EVENTIX_OAUTH2_AUTH_URL": "auth_url",
                "EVENTIX_OAUTH2_TOKEN_URL": "token_url",
                "EVENTIX_OAUTH2_REFRESH_TOKEN": "refresh_token",
            }
            for env_key, field_name in _ENV_OAUTH_MAP.items():
                val = env.get(env_key)
                if val and val.strip():
                    oauth_kwargs[field_name] = val.strip()
            config_kwargs["oauth"] = OAuth2Settings(**oauth_kwargs)

        _ENV_CONFIG_MAP = {
            "EVENTIX_API_BASE_URL": "api_base_url",
            "LISTEN_ADDRESS": "listen_address",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val.strip()

        _ENV_NUMERIC_MAP = {
            "SYNC_INTERVAL": "sync_interval",
            "HTTP_TIMEOUT": "http_timeout",
            "TOKEN_REFRESH_MARGIN": "refresh_margin",
        }
        for env_key, field_name in _ENV_NUMERIC_MAP.items():
            number = _env_float(env, env_key)
            if number is not None and field_name not in overrides:
                config_kwargs[field_name] = number

        if "roster_backup" not in overrides:
            config_kwargs["roster_backup"] = _env_bool(env.get("ROSTER_BACKUP"), True)

        config_kwargs.update(overrides)
        config_kwargs["roster_file"] = Path(config_kwargs["roster_file"])

        return cls(**config_kwargs)
