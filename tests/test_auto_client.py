#!/usr/bin/env python3
"""Auto client overlap guard, crash resilience and CLI wiring."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from auto_client import AutoClient, apply_cli_overrides, build_parser
from strategy_config import AgentSettings


@pytest.mark.asyncio
async def test_overlapping_tick_is_dropped() -> None:
    release = asyncio.Event()
    calls = []

    async def slow_cycle():
        calls.append(1)
        await release.wait()
        return "done"

    client = AutoClient(slow_cycle, interval_seconds=60)
    first = asyncio.ensure_future(client.tick())
    await asyncio.sleep(0)
    assert client.is_running_cycle

    assert await client.tick() is None
    assert client.ticks_dropped == 1

    release.set()
    assert await first == "done"
    assert client.is_running_cycle is False
    assert client.cycles_completed == 1
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_guard_resets_after_failed_cycle() -> None:
    async def broken():
        raise RuntimeError("boom")

    client = AutoClient(broken, interval_seconds=60)
    with pytest.raises(RuntimeError):
        await client.tick()
    assert client.is_running_cycle is False
    assert client.cycles_completed == 0


@pytest.mark.asyncio
async def test_run_forever_survives_crashing_cycles() -> None:
    calls = []
    client = None

    async def flaky():
        calls.append(1)
        if len(calls) >= 3:
            client.stop()
        raise RuntimeError("cycle crashed")

    client = AutoClient(flaky, interval_seconds=0.01)
    await asyncio.wait_for(client.run_forever(), timeout=5.0)
    assert len(calls) >= 3
    assert client.is_running_cycle is False


@pytest.mark.asyncio
async def test_stop_before_interval_elapses() -> None:
    async def quick():
        client.stop()
        return "ok"

    client = AutoClient(quick, interval_seconds=3600)
    await asyncio.wait_for(client.run_forever(), timeout=5.0)
    assert client.cycles_completed == 1


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])
    assert args.once is False
    assert args.dry_run is False
    assert args.amount is None
    assert args.profile is None


def test_cli_overrides_apply_on_top_of_settings() -> None:
    settings = AgentSettings(profile="moderate", total_amount=1000.0, interval_seconds=3600.0, dry_run=False)
    args = build_parser().parse_args(["--profile", "aggressive", "--amount", "2500", "--interval", "60", "--dry-run"])
    out = apply_cli_overrides(settings, args)
    assert out.profile == "aggressive"
    assert out.total_amount == 2500.0
    assert out.interval_seconds == 60.0
    assert out.dry_run is True
    assert settings.profile == "moderate"


def test_cli_without_overrides_keeps_settings() -> None:
    settings = AgentSettings()
    assert apply_cli_overrides(settings, build_parser().parse_args([])) is settings
