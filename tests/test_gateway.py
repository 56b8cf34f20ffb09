from __future__ import annotations

import dataclasses

import aiohttp
import pytest

from ticketgate.config import GatewayConfig
from ticketgate.exceptions import ConfigError, GatewayError
from ticketgate.gateway import Gateway


def test_components_need_a_started_gateway(config: GatewayConfig) -> None:
    gateway = Gateway(config)

    with pytest.raises(GatewayError, match="not started"):
        _ = gateway.orchestrator
    with pytest.raises(GatewayError, match="not started"):
        _ = gateway.token_store


def test_bad_car_map_fails_at_construction(config: GatewayConfig) -> None:
    with pytest.raises(ConfigError):
        Gateway(dataclasses.replace(config, car_map="type-a:car"))


def test_conflicting_car_map_is_reported(config: GatewayConfig, caplog: pytest.LogCaptureFixture) -> None:
    Gateway(dataclasses.replace(config, car_map="type-a:car:CAR_1,type-b:car:CAR_1"))

    assert "type-a, type-b" in caplog.text


@pytest.mark.asyncio
async def test_lifecycle_with_external_session(config: GatewayConfig) -> None:
    async with aiohttp.ClientSession() as session:
        async with Gateway(config, session=session) as gateway:
            assert gateway.token_store.is_authorized
            assert not gateway.orchestrator.busy
            orchestrator = gateway.orchestrator

        assert orchestrator.stopping
        assert not session.closed
        with pytest.raises(GatewayError):
            _ = gateway.orchestrator
