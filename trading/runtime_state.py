"""Persisted per-wallet trading state: daily counters and the drawdown baseline."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterator

from utils.state_file import read_json_locked, state_file_lock, write_json_locked

logger = logging.getLogger(__name__)


def day_key_utc(now_ms: float | None = None) -> str:
    """UTC calendar day as `YYYY-MM-DD`."""
    if now_ms is None:
        dt = datetime.now(timezone.utc)
    else:
        dt = datetime.fromtimestamp(float(now_ms) / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d")


@dataclass(frozen=True)
class RuntimeState:
    day_key: str
    last_trade_at_ms: int | None = None
    trades_today: int = 0
    notional_today_usd: float = 0.0
    start_value_usd: float | None = None

    @classmethod
    def fresh(cls, day_key: str) -> "RuntimeState":
        return cls(day_key=day_key)

    def rolled_to(self, day_key: str) -> "RuntimeState":
        """Daily counters reset on a new day; last trade and baseline survive."""
        if self.day_key == day_key:
            return self
        return replace(self, day_key=day_key, trades_today=0, notional_today_usd=0.0)

    def with_baseline(self, portfolio_usd: float) -> "RuntimeState":
        """Set the drawdown baseline once; never overwritten afterwards."""
        if self.start_value_usd is not None:
            return self
        return replace(self, start_value_usd=float(portfolio_usd))

    def after_trade(self, now_ms: int, notional_usd: float) -> "RuntimeState":
        return replace(
            self,
            last_trade_at_ms=int(now_ms),
            trades_today=self.trades_today + 1,
            notional_today_usd=self.notional_today_usd + float(notional_usd),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dayKey": self.day_key,
            "lastTradeAtMs": self.last_trade_at_ms,
            "tradesToday": self.trades_today,
            "notionalTodayUsd": self.notional_today_usd,
            "startValueUsd": self.start_value_usd,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, default_day: str) -> "RuntimeState":
        last_trade = payload.get("lastTradeAtMs")
        start_value = payload.get("startValueUsd")
        return cls(
            day_key=str(payload.get("dayKey") or default_day),
            last_trade_at_ms=int(last_trade) if last_trade is not None else None,
            trades_today=max(0, int(payload.get("tradesToday", 0) or 0)),
            notional_today_usd=max(0.0, float(payload.get("notionalTodayUsd", 0.0) or 0.0)),
            start_value_usd=float(start_value) if start_value is not None else None,
        )


class JsonStateStore:
    """One JSON record per wallet; writes are atomic and file-locked."""

    def __init__(self, path: str, *, lock_timeout_seconds: float = 2.0) -> None:
        self.path = str(path)
        self._lock_timeout = float(lock_timeout_seconds)

    def load(self, today: str | None = None) -> RuntimeState:
        today = today or day_key_utc()
        if not os.path.exists(self.path):
            return RuntimeState.fresh(today)
        payload = read_json_locked(self.path, timeout_seconds=self._lock_timeout)
        if not isinstance(payload, dict):
            raise ValueError(f"state file is not a JSON object: {self.path}")
        stored = RuntimeState.from_dict(payload, default_day=today)
        state = stored.rolled_to(today)
        if state is not stored:
            logger.info("STATE_DAY_ROLLOVER from=%s to=%s", stored.day_key, today)
        return state

    def save(self, state: RuntimeState) -> None:
        write_json_locked(self.path, state.to_dict(), timeout_seconds=self._lock_timeout)

    @contextmanager
    def tick_lease(self) -> Iterator[None]:
        """Inter-process guard held for a whole tick (separate from the write lock)."""
        with state_file_lock(f"{self.path}.tick", timeout_seconds=0.0):
            yield
