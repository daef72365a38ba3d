"""Shared aiohttp client with bounded retry/backoff and per-source stats."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any

import aiohttp

import config

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 300


@dataclass
class HttpResult:
    ok: bool
    status: int
    data: Any | None
    error: str = ""


@dataclass
class HttpSourceStats:
    ok: int = 0
    fail: int = 0
    retries: int = 0
    latency_total_ms: float = 0.0
    latency_max_ms: float = 0.0
    latency_count: int = 0

    def observe_latency(self, started: float) -> None:
        elapsed_ms = max(0.0, (time.perf_counter() - started) * 1000.0)
        self.latency_total_ms += elapsed_ms
        self.latency_count += 1
        self.latency_max_ms = max(self.latency_max_ms, elapsed_ms)


class ResilientHttpClient:
    def __init__(
        self,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=max(1.0, float(timeout_seconds)))
        self._headers = dict(headers or {})
        self._max_attempts = max(1, int(max_attempts or config.HTTP_RETRY_ATTEMPTS))
        self._session: aiohttp.ClientSession | None = None
        self._semaphore = asyncio.Semaphore(max(1, int(config.HTTP_DEFAULT_CONCURRENCY)))
        self._stats: dict[str, HttpSourceStats] = {}

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and not session.closed:
            await session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=max(1, int(config.HTTP_CONNECTOR_LIMIT)))
            self._session = aiohttp.ClientSession(timeout=self._timeout, connector=connector)
        return self._session

    def _stats_row(self, source: str) -> HttpSourceStats:
        key = str(source or "default").strip().lower() or "default"
        row = self._stats.get(key)
        if row is None:
            row = HttpSourceStats()
            self._stats[key] = row
        return row

    def snapshot_stats(self, reset: bool = False) -> dict[str, dict[str, int | float]]:
        out: dict[str, dict[str, int | float]] = {}
        for source, row in self._stats.items():
            total = int(row.ok + row.fail)
            out[source] = {
                "ok": int(row.ok),
                "fail": int(row.fail),
                "total": total,
                "retries": int(row.retries),
                "error_percent": round((float(row.fail) / total * 100.0) if total > 0 else 0.0, 2),
                "latency_avg_ms": round(row.latency_total_ms / row.latency_count, 2) if row.latency_count else 0.0,
                "latency_max_ms": round(float(row.latency_max_ms), 2),
            }
        if reset:
            self._stats = {}
        return out

    @staticmethod
    def _compute_delay(attempt: int, status: int) -> float:
        base = float(config.HTTP_BACKOFF_BASE_SECONDS)
        cap = max(base, float(config.HTTP_BACKOFF_MAX_SECONDS))
        exp = min(cap, base * (2 ** max(0, attempt - 1)))
        if status == 429:
            exp = cap
        return max(0.01, exp + random.uniform(0.0, float(config.HTTP_JITTER_SECONDS)))

    async def get_json(
        self,
        url: str,
        *,
        source: str = "default",
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResult:
        req_headers = dict(self._headers)
        if headers:
            req_headers.update(headers)
        stats = self._stats_row(source)
        attempts = self._max_attempts

        for attempt in range(1, attempts + 1):
            status = 0
            async with self._semaphore:
                started = time.perf_counter()
                try:
                    session = await self._get_session()
                    async with session.get(url, params=params, headers=req_headers) as response:
                        stats.observe_latency(started)
                        status = int(response.status or 0)
                        if status == 200:
                            payload = await response.json(content_type=None)
                            stats.ok += 1
                            return HttpResult(ok=True, status=status, data=payload)
                        body = (await response.text())[:_ERROR_BODY_LIMIT]
                        retryable = status == 429 or 500 <= status <= 599
                        if not retryable or attempt >= attempts:
                            stats.fail += 1
                            return HttpResult(ok=False, status=status, data=None, error=f"http_status_{status} {body}".strip())
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                    stats.observe_latency(started)
                    if attempt >= attempts:
                        stats.fail += 1
                        return HttpResult(ok=False, status=status, data=None, error=f"http_error:{type(exc).__name__}:{exc}")

            stats.retries += 1
            delay = self._compute_delay(attempt=attempt, status=status)
            logger.debug(
                "HTTP_RETRY source=%s attempt=%s/%s status=%s delay=%.2fs url=%s",
                source,
                attempt,
                attempts,
                status,
                delay,
                url,
            )
            await asyncio.sleep(delay)

        return HttpResult(ok=False, status=0, data=None, error="http_exhausted")
