#!/usr/bin/env python3
"""
Auto client for YieldPilot.

Runs allocation cycles on a fixed wall-clock interval:
- first cycle fires immediately
- ticks are independent tasks; a tick that lands while a cycle is still
  running is dropped (not queued)
- the in-progress guard is reset in ``finally`` so a failed cycle never
  locks out later ones
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Set

from agent_deps import AgentDeps, build_deps
from allocation_cycle import CycleResult, run_cycle
from logging_utils import get_logger, setup_logging
from strategy_config import AgentSettings, load_agent_settings, load_config

DEFAULT_INTERVAL_SECONDS = 3600.0

CycleFn = Callable[[], Awaitable[Any]]


class AutoClient:
    def __init__(
        self,
        cycle: CycleFn,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        log=None,
    ) -> None:
        self.cycle = cycle
        self.interval_seconds = float(interval_seconds)
        self.log = log or get_logger("auto_client")
        self.is_running_cycle = False
        self.ticks_dropped = 0
        self.cycles_completed = 0
        self._stop = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    async def tick(self) -> Optional[Any]:
        """Run one cycle unless one is already in progress (then return None)."""
        if self.is_running_cycle:
            self.ticks_dropped += 1
            self.log.debug("Cycle still running; dropping tick")
            return None
        self.is_running_cycle = True
        try:
            result = await self.cycle()
            self.cycles_completed += 1
            return result
        finally:
            self.is_running_cycle = False

    async def _guarded_tick(self) -> None:
        try:
            await self.tick()
        except Exception as exc:
            self.log.exception(f"Allocation cycle crashed: {exc}")

    def _spawn_tick(self) -> asyncio.Task:
        task = asyncio.ensure_future(self._guarded_tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_forever(self) -> None:
        self._stop.clear()
        self.log.info(f"Auto client started (interval={self.interval_seconds:.0f}s)")
        try:
            while not self._stop.is_set():
                self._spawn_tick()
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    continue
        finally:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            self.log.info(
                f"Auto client stopped: completed={self.cycles_completed} dropped={self.ticks_dropped}"
            )

    def stop(self) -> None:
        self._stop.set()


def make_cycle(deps: AgentDeps, settings: AgentSettings) -> Callable[[], Awaitable[CycleResult]]:
    async def _cycle() -> CycleResult:
        return await run_cycle(deps, settings)

    return _cycle


def apply_cli_overrides(settings: AgentSettings, args: argparse.Namespace) -> AgentSettings:
    updates = {}
    if args.profile:
        updates["profile"] = args.profile
    if args.amount is not None:
        updates["total_amount"] = float(args.amount)
    if args.interval is not None:
        updates["interval_seconds"] = float(args.interval)
    if args.dry_run:
        updates["dry_run"] = True
    return replace(settings, **updates) if updates else settings


async def run_agent(args: argparse.Namespace, account: Any = None) -> int:
    config = load_config(args.config)
    settings = apply_cli_overrides(load_agent_settings(config), args)
    deps = build_deps(config, settings, account=account)
    try:
        if args.once:
            result = await run_cycle(deps, settings)
            return 0 if result.status in ("ok", "no_action") else 1
        client = AutoClient(make_cycle(deps, settings), interval_seconds=settings.interval_seconds)
        await client.run_forever()
    finally:
        await deps.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="YieldPilot auto allocation client")
    parser.add_argument("--config", default=None, help="Path to strategy.yaml")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between cycles")
    parser.add_argument("--profile", default=None, help="Risk profile label (conservative/moderate/aggressive)")
    parser.add_argument("--amount", type=float, default=None, help="Total USD amount to allocate")
    parser.add_argument("--dry-run", action="store_true", help="Never submit on-chain transactions")
    parser.add_argument("--log-file", default=None, help="Optional log file")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging("auto_client", log_file=args.log_file, verbose=args.verbose)
    try:
        return asyncio.run(run_agent(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
