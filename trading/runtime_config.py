"""Runtime configuration: the operator-editable JSON document driving each tick."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field, replace
from typing import Any

from utils.addressing import is_evm_address
from utils.state_file import read_json_locked, write_json_locked

logger = logging.getLogger(__name__)

DEFAULT_BASE_SYMBOL = "USDC"
DEFAULT_PROBE_UNITS = 0.01
DEFAULT_PROBE_SIZES: dict[str, float] = {
    "WETH": 0.01,
    "AERO": 10.0,
    "DEGEN": 100.0,
}
DEFAULT_QUOTE_QUALITY_FLOOR = 0.88
SUPPORTED_QUOTE_PROVIDERS = {"0x"}


class ConfigValidationError(ValueError):
    """Raised when a runtime-config candidate fails validation."""


@dataclass(frozen=True)
class RuntimeConfig:
    chain_id: int
    paused: bool
    admin_token: str
    # Iteration order of `targets` is the drift tie-break order.
    targets: dict[str, float]
    band: float
    max_trade_usd: float
    min_trade_usd: float
    max_daily_notional_usd: float
    max_trades_per_day: int
    cooldown_minutes: int
    max_slippage_bps: int
    poll_minutes: int
    drawdown_stop_pct: float
    allow_tokens: dict[str, str]
    quote_provider: str = "0x"
    base_symbol: str = DEFAULT_BASE_SYMBOL
    probe_sizes: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_PROBE_SIZES))
    quote_quality_floor: float = DEFAULT_QUOTE_QUALITY_FLOOR

    def probe_units(self, symbol: str) -> float:
        return float(self.probe_sizes.get(symbol, DEFAULT_PROBE_UNITS))

    def with_paused(self, paused: bool) -> "RuntimeConfig":
        return replace(self, paused=bool(paused))

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "paused": self.paused,
            "adminToken": self.admin_token,
            "targets": dict(self.targets),
            "band": self.band,
            "maxTradeUsd": self.max_trade_usd,
            "minTradeUsd": self.min_trade_usd,
            "maxDailyNotionalUsd": self.max_daily_notional_usd,
            "maxTradesPerDay": self.max_trades_per_day,
            "cooldownMinutes": self.cooldown_minutes,
            "maxSlippageBps": self.max_slippage_bps,
            "pollMinutes": self.poll_minutes,
            "drawdownStopPct": self.drawdown_stop_pct,
            "allowTokens": dict(self.allow_tokens),
            "quote": {"provider": self.quote_provider},
            "baseSymbol": self.base_symbol,
            "probeSizes": dict(self.probe_sizes),
            "quoteQualityFloor": self.quote_quality_floor,
        }

    def public_dict(self) -> dict[str, Any]:
        """Same as `to_dict` with the admin credential masked."""
        payload = self.to_dict()
        payload["adminToken"] = "***"
        return payload


def _check_number(raw: Any, key: str, *, lo: float | None = None, hi: float | None = None,
                  positive: bool = False) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ConfigValidationError(f"{key}: expected a number, got {raw!r}")
    value = float(raw)
    if not math.isfinite(value):
        raise ConfigValidationError(f"{key}: must be finite")
    if positive and value <= 0:
        raise ConfigValidationError(f"{key}: must be > 0")
    if lo is not None and value < lo:
        raise ConfigValidationError(f"{key}: must be >= {lo}")
    if hi is not None and value > hi:
        raise ConfigValidationError(f"{key}: must be <= {hi}")
    return value


def _number(payload: dict[str, Any], key: str, *, default: float | None = None, **bounds: Any) -> float:
    return _check_number(payload.get(key, default), key, **bounds)


def _integer(payload: dict[str, Any], key: str, *, lo: int | None = None, hi: int | None = None) -> int:
    raw = payload.get(key)
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw) or float(raw) != int(raw):
        raise ConfigValidationError(f"{key}: expected an integer, got {raw!r}")
    value = int(raw)
    if lo is not None and value < lo:
        raise ConfigValidationError(f"{key}: must be >= {lo}")
    if hi is not None and value > hi:
        raise ConfigValidationError(f"{key}: must be <= {hi}")
    return value


def _mapping(payload: dict[str, Any], key: str) -> dict[str, Any]:
    raw = payload.get(key)
    if not isinstance(raw, dict):
        raise ConfigValidationError(f"{key}: expected an object")
    return raw


def parse_runtime_config(payload: Any) -> RuntimeConfig:
    """Validate a camelCase JSON document and build a `RuntimeConfig`."""
    if not isinstance(payload, dict):
        raise ConfigValidationError("config: expected a JSON object")

    paused = payload.get("paused")
    if not isinstance(paused, bool):
        raise ConfigValidationError("paused: expected a boolean")

    admin_token = payload.get("adminToken")
    if not isinstance(admin_token, str) or len(admin_token) < 8:
        raise ConfigValidationError("adminToken: expected a string of at least 8 characters")

    targets: dict[str, float] = {}
    for symbol, weight in _mapping(payload, "targets").items():
        targets[str(symbol)] = _check_number(weight, f"targets.{symbol}", lo=0.0, hi=1.0)

    allow_tokens: dict[str, str] = {}
    for symbol, address in _mapping(payload, "allowTokens").items():
        if not is_evm_address(address):
            raise ConfigValidationError(f"allowTokens.{symbol}: not a 0x-prefixed 20-byte address")
        allow_tokens[str(symbol)] = str(address).strip()

    quote = payload.get("quote") or {}
    provider = str(quote.get("provider", "")) if isinstance(quote, dict) else ""
    if provider not in SUPPORTED_QUOTE_PROVIDERS:
        raise ConfigValidationError(f"quote.provider: unsupported provider {provider!r}")

    probe_sizes = dict(DEFAULT_PROBE_SIZES)
    raw_probes = payload.get("probeSizes")
    if raw_probes is not None:
        if not isinstance(raw_probes, dict):
            raise ConfigValidationError("probeSizes: expected an object")
        for symbol, units in raw_probes.items():
            probe_sizes[str(symbol)] = _check_number(units, f"probeSizes.{symbol}", positive=True)

    base_symbol = payload.get("baseSymbol", DEFAULT_BASE_SYMBOL)
    if not isinstance(base_symbol, str) or not base_symbol.strip():
        raise ConfigValidationError("baseSymbol: expected a non-empty string")

    return RuntimeConfig(
        chain_id=_integer(payload, "chainId"),
        paused=paused,
        admin_token=admin_token,
        targets=targets,
        band=_number(payload, "band", lo=0.0, hi=0.5),
        max_trade_usd=_number(payload, "maxTradeUsd", positive=True),
        min_trade_usd=_number(payload, "minTradeUsd", positive=True, default=5),
        max_daily_notional_usd=_number(payload, "maxDailyNotionalUsd", positive=True),
        max_trades_per_day=_integer(payload, "maxTradesPerDay", lo=1),
        cooldown_minutes=_integer(payload, "cooldownMinutes", lo=1),
        max_slippage_bps=_integer(payload, "maxSlippageBps", lo=1, hi=500),
        poll_minutes=_integer(payload, "pollMinutes", lo=1, hi=1440),
        drawdown_stop_pct=_number(payload, "drawdownStopPct", lo=0.0, hi=0.9, default=0.2),
        allow_tokens=allow_tokens,
        quote_provider=provider,
        base_symbol=base_symbol.strip(),
        probe_sizes=probe_sizes,
        quote_quality_floor=_number(
            payload, "quoteQualityFloor", lo=0.5, hi=0.99, default=DEFAULT_QUOTE_QUALITY_FLOOR
        ),
    )


class RuntimeConfigStore:
    """JSON-file config provider with optional environment overrides."""

    def __init__(self, path: str, *, admin_token_override: str = "", paused_override: str = "") -> None:
        self.path = str(path)
        self._admin_token_override = str(admin_token_override or "").strip()
        self._paused_override = str(paused_override or "").strip().lower()

    def read(self) -> RuntimeConfig:
        try:
            payload = read_json_locked(self.path)
        except FileNotFoundError as exc:
            raise ConfigValidationError(f"config file not found: {self.path}") from exc
        except ValueError as exc:
            raise ConfigValidationError(f"config file is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigValidationError("config: expected a JSON object")
        payload = dict(payload)
        if self._admin_token_override:
            payload["adminToken"] = self._admin_token_override
        if self._paused_override:
            payload["paused"] = self._paused_override == "true"
        return parse_runtime_config(payload)

    def write(self, candidate: Any) -> RuntimeConfig:
        if isinstance(candidate, RuntimeConfig):
            candidate = candidate.to_dict()
        validated = parse_runtime_config(candidate)
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        write_json_locked(self.path, validated.to_dict())
        logger.info("RUNTIME_CONFIG_WRITE path=%s paused=%s", self.path, validated.paused)
        return validated
