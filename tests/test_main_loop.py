from __future__ import annotations

import asyncio
import unittest

import main
from tick_fakes import make_config
from trading.models import TickOutcome, TickResult
from trading.runtime_config import RuntimeConfig


class StubStore:
    def __init__(self, cfg: RuntimeConfig) -> None:
        self.cfg = cfg

    def read(self) -> RuntimeConfig:
        return self.cfg


class StoppingEngine:
    """Runs one tick and then asks the loop to stop."""

    def __init__(self, stop_event: asyncio.Event) -> None:
        self.stop_event = stop_event
        self.ticks = 0

    async def run_tick(self, cfg: RuntimeConfig) -> TickResult:
        self.ticks += 1
        self.stop_event.set()
        return TickResult(ok=True, message="Within band. No trade.", outcome=TickOutcome.WITHIN_BAND)


class SourceStatsFormatTests(unittest.TestCase):
    def test_brief_lists_sources_sorted(self) -> None:
        brief = main.format_source_stats_brief(
            {
                "rpc": {"ok": 1, "fail": 0, "retries": 0, "error_percent": 0.0, "latency_avg_ms": 5.0},
                "0x": {"ok": 3, "fail": 1, "retries": 2, "error_percent": 25.0, "latency_avg_ms": 120.4, "latency_max_ms": 300.0},
            }
        )
        self.assertEqual(
            brief,
            "0x:ok=3/fail=1/retry=2/err=25.0%/avg=120ms/max=300ms; rpc:ok=1/fail=0/retry=0/err=0.0%/avg=5ms/max=0ms",
        )

    def test_empty_stats(self) -> None:
        self.assertEqual(main.format_source_stats_brief({}), "none")


class RunLoopTests(unittest.IsolatedAsyncioTestCase):
    async def test_loop_logs_and_resets_http_stats_each_pass(self) -> None:
        stop_event = asyncio.Event()
        engine = StoppingEngine(stop_event)
        resets: list[bool] = []

        def stats_source(reset: bool = False) -> dict[str, dict[str, int | float]]:
            resets.append(reset)
            return {"0x": {"ok": 2, "fail": 0, "retries": 0, "error_percent": 0.0, "latency_avg_ms": 40.0}}

        with self.assertLogs("main", level="INFO") as logs:
            await main.run_loop(
                engine,  # type: ignore[arg-type]
                StubStore(make_config(paused=False)),  # type: ignore[arg-type]
                main.DecisionWriter(enabled=False),
                stop_event,
                stats_source=stats_source,
            )

        self.assertEqual(engine.ticks, 1)
        self.assertEqual(resets, [True])
        self.assertTrue(any("HTTP_STATS 0x:ok=2/fail=0" in line for line in logs.output))

    async def test_paused_config_skips_tick(self) -> None:
        stop_event = asyncio.Event()
        engine = StoppingEngine(stop_event)

        async def stop_soon() -> None:
            await asyncio.sleep(0.05)
            stop_event.set()

        stopper = asyncio.create_task(stop_soon())
        with self.assertLogs("main", level="INFO") as logs:
            await main.run_loop(
                engine,  # type: ignore[arg-type]
                StubStore(make_config(paused=True)),  # type: ignore[arg-type]
                main.DecisionWriter(enabled=False),
                stop_event,
            )
        await stopper

        self.assertEqual(engine.ticks, 0)
        self.assertTrue(any("LOOP_SKIP reason=paused" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
