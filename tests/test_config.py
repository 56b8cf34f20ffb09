from __future__ import annotations

from pathlib import Path

import pytest

from ticketgate._constants import DEFAULT_SYNC_INTERVAL, TOKEN_URL
from ticketgate.config import GatewayConfig
from ticketgate.exceptions import ConfigError

_REQUIRED = {
    "ACSM_JSON_FILE": "/srv/acsm/championships/cup.json",
    "EVENTIX_EVENT_GUID": "event-1",
    "TICKET_ID_TO_CAR_MAP": "type-gt3:porsche_992_gt3_cup:CAR_1",
    "EVENTIX_METADATA_FIRST_NAME": "meta-first",
    "EVENTIX_METADATA_LAST_NAME": "meta-last",
    "EVENTIX_METADATA_TEAM_NAME": "meta-team",
    "EVENTIX_METADATA_STEAM_ID": "meta-steam",
    "EVENTIX_OAUTH2_CLIENT_ID": "client-1",
    "EVENTIX_OAUTH2_CLIENT_SECRET": "secret-1",
    "EVENTIX_OAUTH2_REDIRECT_URL": "https://gate.example/eventix/oauth2/v1/callback",
}


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key, value in _REQUIRED.items():
        monkeypatch.setenv(key, value)
    for key in (
        "EVENTIX_OAUTH2_REFRESH_TOKEN",
        "EVENTIX_OAUTH2_TOKEN_URL",
        "SYNC_INTERVAL",
        "HTTP_TIMEOUT",
        "ROSTER_BACKUP",
        "LISTEN_ADDRESS",
        "EVENTIX_API_BASE_URL",
        "EVENTIX_OAUTH2_AUTH_URL",
        "TOKEN_REFRESH_MARGIN",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_from_env_reads_required_values(env: pytest.MonkeyPatch) -> None:
    config = GatewayConfig.from_env()

    assert config.roster_file == Path("/srv/acsm/championships/cup.json")
    assert config.metadata_fields.simulator_id == "meta-steam"
    assert config.oauth.client_id == "client-1"
    assert config.oauth.token_url == TOKEN_URL
    assert config.oauth.refresh_token is None
    assert config.sync_interval == DEFAULT_SYNC_INTERVAL
    assert config.roster_backup is True


def test_from_env_optional_values(env: pytest.MonkeyPatch) -> None:
    env.setenv("EVENTIX_OAUTH2_REFRESH_TOKEN", " refresh-1 ")
    env.setenv("SYNC_INTERVAL", "600")
    env.setenv("HTTP_TIMEOUT", "2.5")
    env.setenv("ROSTER_BACKUP", "off")
    env.setenv("LISTEN_ADDRESS", "0.0.0.0:9000")

    config = GatewayConfig.from_env()

    assert config.oauth.refresh_token == "refresh-1"
    assert config.sync_interval == 600
    assert config.http_timeout == 2.5
    assert config.roster_backup is False
    assert config.listen_address == "0.0.0.0:9000"


def test_overrides_take_precedence(env: pytest.MonkeyPatch) -> None:
    env.setenv("SYNC_INTERVAL", "600")

    config = GatewayConfig.from_env(roster_file="other.json", sync_interval=0)

    assert config.roster_file == Path("other.json")
    assert config.sync_interval == 0


@pytest.mark.parametrize("missing", ["ACSM_JSON_FILE", "EVENTIX_METADATA_STEAM_ID", "EVENTIX_OAUTH2_CLIENT_SECRET"])
def test_missing_required_value(env: pytest.MonkeyPatch, missing: str) -> None:
    env.delenv(missing)

    with pytest.raises(ConfigError, match=missing):
        GatewayConfig.from_env()


def test_malformed_number(env: pytest.MonkeyPatch) -> None:
    env.setenv("HTTP_TIMEOUT", "soon")

    with pytest.raises(ConfigError, match="HTTP_TIMEOUT"):
        GatewayConfig.from_env()
