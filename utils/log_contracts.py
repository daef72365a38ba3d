"""Stable log contracts for tick decision events."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Any

LOG_SCHEMA_VERSION = "2026-10-01.v1"

SCHEMA_TICK_DECISION = "tick_decision.v1"

_OUTCOME_REASON_CODES: dict[str, str] = {
    "no_targets": "DRIFT_NO_TARGETS",
    "within_band": "DRIFT_WITHIN_BAND",
    "no_counterpart": "DRIFT_NO_COUNTERPART",
    "insufficient_balance": "PLAN_INSUFFICIENT_BALANCE",
    "policy_blocked": "POLICY_BLOCKED",
    "quote_rejected": "QUOTE_TOO_POOR",
    "dry_run": "EXEC_DRY_RUN",
    "executed": "EXEC_SWAP_SENT",
    "drawdown_stop": "RISK_DRAWDOWN_STOP",
    "config_error": "ERROR_CONFIG",
    "market_data_error": "ERROR_MARKET_DATA",
    "provider_error": "ERROR_PROVIDER",
    "busy": "TICK_BUSY",
    "internal_error": "ERROR_INTERNAL",
}

REASON_CODE_TAXONOMY: dict[str, dict[str, str]] = {
    "DRIFT_NO_TARGETS": {"severity": "WARN", "category": "drift", "title": "No target weights configured"},
    "DRIFT_WITHIN_BAND": {"severity": "INFO", "category": "drift", "title": "Allocation within band"},
    "DRIFT_NO_COUNTERPART": {"severity": "INFO", "category": "drift", "title": "No token to trade against"},
    "PLAN_INSUFFICIENT_BALANCE": {"severity": "INFO", "category": "plan", "title": "Sell-side balance too small"},
    "POLICY_BLOCKED": {"severity": "INFO", "category": "policy", "title": "Trade blocked by policy"},
    "POLICY_PAUSED": {"severity": "INFO", "category": "policy", "title": "Trading paused"},
    "POLICY_BELOW_MIN_TRADE": {"severity": "INFO", "category": "policy", "title": "Trade below minimum size"},
    "POLICY_ABOVE_MAX_TRADE": {"severity": "WARN", "category": "policy", "title": "Trade above maximum size"},
    "POLICY_DAILY_NOTIONAL": {"severity": "INFO", "category": "policy", "title": "Daily notional cap reached"},
    "POLICY_DAILY_TRADES": {"severity": "INFO", "category": "policy", "title": "Daily trade count cap reached"},
    "POLICY_COOLDOWN": {"severity": "INFO", "category": "policy", "title": "Cooldown active"},
    "POLICY_NOT_ALLOWLISTED": {"severity": "WARN", "category": "policy", "title": "Token not allow-listed"},
    "QUOTE_TOO_POOR": {"severity": "WARN", "category": "quote", "title": "Quote below quality floor"},
    "EXEC_DRY_RUN": {"severity": "INFO", "category": "execute", "title": "Dry run, nothing sent"},
    "EXEC_SWAP_SENT": {"severity": "INFO", "category": "execute", "title": "Swap submitted"},
    "RISK_DRAWDOWN_STOP": {"severity": "ERROR", "category": "risk", "title": "Drawdown stop triggered"},
    "ERROR_CONFIG": {"severity": "ERROR", "category": "error", "title": "Invalid configuration"},
    "ERROR_MARKET_DATA": {"severity": "ERROR", "category": "error", "title": "Bad market data"},
    "ERROR_PROVIDER": {"severity": "ERROR", "category": "error", "title": "Chain or quote provider failure"},
    "ERROR_INTERNAL": {"severity": "ERROR", "category": "error", "title": "Unexpected internal error"},
    "TICK_BUSY": {"severity": "WARN", "category": "tick", "title": "Tick already in progress"},
}


def _as_ts(value: Any) -> float:
    if value is None or value == "":
        return datetime.now(timezone.utc).timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(timezone.utc).timestamp()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _iso_from_ts(ts: float) -> str:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat()


def _sanitize_code_token(value: str) -> str:
    text = re.sub(r"[^A-Z0-9]+", "_", str(value or "").strip().upper())
    text = re.sub(r"_+", "_", text).strip("_")
    return text or "UNKNOWN"


def _digest_seed(*parts: Any) -> str:
    seed = "|".join(str(p or "").strip() for p in parts)
    return hashlib.sha1(seed.encode("utf-8", errors="ignore")).hexdigest()


def reason_code_for_outcome(outcome: Any, reason_code: Any = "") -> str:
    """Specific code when the stage supplied one, else the outcome's default."""
    explicit = str(reason_code or "").strip()
    if explicit:
        return _sanitize_code_token(explicit)
    key = str(getattr(outcome, "value", outcome) or "").strip().lower()
    return _OUTCOME_REASON_CODES.get(key, f"TICK_{_sanitize_code_token(key)}")


def reason_code_meta(code: str) -> dict[str, str]:
    key = _sanitize_code_token(code)
    if key in REASON_CODE_TAXONOMY:
        return dict(REASON_CODE_TAXONOMY[key])
    return {
        "severity": "INFO",
        "category": "unknown",
        "title": key.replace("_", " ").title(),
    }


def _decision_id(payload: dict[str, Any], *, run_tag: str) -> str:
    raw = str(payload.get("decision_id", "") or "").strip()
    if raw:
        return raw
    proposed = payload.get("proposed") or {}
    return (
        "dec_"
        + _digest_seed(
            run_tag,
            payload.get("outcome", ""),
            payload.get("msg", ""),
            proposed.get("sellSymbol", ""),
            proposed.get("buySymbol", ""),
            payload.get("txHash", ""),
            f"{float(payload['ts']):.6f}",
        )[:20]
    )


def stamp_event(
    event: dict[str, Any],
    *,
    schema_name: str,
    event_type: str,
    run_tag: str = "",
) -> dict[str, Any]:
    payload = dict(event or {})
    ts = _as_ts(payload.get("ts", payload.get("timestamp")))
    payload["ts"] = float(ts)
    payload["timestamp"] = str(payload.get("timestamp", "") or _iso_from_ts(ts))
    payload.setdefault("schema_version", LOG_SCHEMA_VERSION)
    payload.setdefault("schema_name", schema_name)
    payload.setdefault("event_type", str(event_type or "event"))
    if run_tag:
        payload.setdefault("run_tag", str(run_tag))
    payload["decision_id"] = _decision_id(payload, run_tag=str(payload.get("run_tag", run_tag or "")))
    return payload


def tick_decision_event(event: dict[str, Any], *, run_tag: str = "") -> dict[str, Any]:
    """Normalize a `TickResult.to_dict()` payload into one decision log row."""
    payload = stamp_event(
        event,
        schema_name=SCHEMA_TICK_DECISION,
        event_type=str((event or {}).get("event_type", "tick_decision")),
        run_tag=run_tag,
    )
    payload["ok"] = bool(payload.get("ok", False))
    payload["msg"] = str(payload.get("msg", "") or "")
    payload["outcome"] = str(payload.get("outcome", "") or "unknown")
    payload["dry_run"] = bool(payload.get("dry_run", False))
    payload["reason_code"] = reason_code_for_outcome(payload["outcome"], payload.pop("reasonCode", ""))
    meta = reason_code_meta(payload["reason_code"])
    payload["reason_severity"] = meta["severity"]
    payload["reason_category"] = meta["category"]
    payload.setdefault("proposed", None)
    payload.setdefault("txHash", None)
    snapshot = payload.pop("snapshot", None) or {}
    payload["portfolio_usd"] = float(snapshot.get("portfolioUsd", 0.0) or 0.0)
    payload["alloc"] = dict(snapshot.get("alloc", {}) or {})
    return payload
