from __future__ import annotations

import json
from pathlib import Path

import pytest

from ticketgate.config import GatewayConfig, OAuth2Settings

from tests._support import CAR_MAP, FIELDS, championship


@pytest.fixture
def roster_path(tmp_path: Path) -> Path:
    path = tmp_path / "championship.json"
    path.write_text(json.dumps(championship(), indent=2), encoding="utf-8")
    return path


@pytest.fixture
def config(roster_path: Path) -> GatewayConfig:
    return GatewayConfig(
        roster_file=roster_path,
        event_id="event-1",
        car_map=CAR_MAP,
        metadata_fields=FIELDS,
        oauth=OAuth2Settings(
            client_id="client-1",
            client_secret="client-secret-1",
            redirect_url="http://localhost:8080/eventix/oauth2/v1/callback",
            refresh_token="refresh-1",
        ),
        api_base_url="https://api.test",
        sync_interval=0,
        roster_backup=False,
    )
