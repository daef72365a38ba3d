"""Single-tick rebalancing engine.

A tick runs Snapshot -> Drift -> Proposal -> Policy -> Execution -> Record
and always ends in exactly one `TickResult`. State is written only when the
drawdown baseline is first captured and after a swap has been submitted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable

from trading.capabilities import ChainClient, QuoteProvider, StateStore, TradeLog, TradeNotifier
from trading.errors import (
    ConfigurationError,
    DrawdownStop,
    InsufficientBalance,
    MarketDataError,
    PolicyViolation,
    ProviderError,
    QuoteQualityError,
    TickError,
)
from trading.models import MarketSnapshot, ProposedTrade, TickOutcome, TickResult, TradeRecord
from trading.rebalance import check_affordability, propose_trade, select_drift, with_sell_amount
from trading.runtime_config import RuntimeConfig
from trading.runtime_policy import check_policy, drawdown_stop_triggered
from trading.runtime_state import RuntimeState, day_key_utc
from trading.snapshot import build_snapshot
from trading.swap_pipeline import (
    check_quote_quality,
    ensure_exact_allowance,
    firm_quote,
    implied_buy_usd,
    submit_swap,
)
from utils.state_file import StateFileLockError

logger = logging.getLogger(__name__)

TARGET_SUM_TOLERANCE = 0.02

_FAILURE_OUTCOMES: list[tuple[type[TickError], TickOutcome]] = [
    (ConfigurationError, TickOutcome.CONFIG_ERROR),
    (MarketDataError, TickOutcome.MARKET_DATA_ERROR),
    (DrawdownStop, TickOutcome.DRAWDOWN_STOP),
    (ProviderError, TickOutcome.PROVIDER_ERROR),
    (PolicyViolation, TickOutcome.POLICY_BLOCKED),
    (InsufficientBalance, TickOutcome.INSUFFICIENT_BALANCE),
    (QuoteQualityError, TickOutcome.QUOTE_REJECTED),
]


def validate_tick_config(cfg: RuntimeConfig) -> None:
    total = sum(cfg.targets.values())
    if abs(total - 1.0) > TARGET_SUM_TOLERANCE:
        raise ConfigurationError(f"Targets must sum to ~1 (got {total:.4f}).")
    if cfg.base_symbol not in cfg.allow_tokens:
        raise ConfigurationError(f"{cfg.base_symbol} must be in allowTokens.")


class TickEngine:
    def __init__(
        self,
        *,
        chain: ChainClient,
        quotes: QuoteProvider,
        state_store: StateStore,
        trade_log: TradeLog,
        notifier: TradeNotifier | None = None,
        clock: Callable[[], float] = time.time,
        tx_timeout_seconds: float = 180.0,
    ) -> None:
        self.chain = chain
        self.quotes = quotes
        self.state_store = state_store
        self.trade_log = trade_log
        self.notifier = notifier
        self._clock = clock
        self._tx_timeout = float(tx_timeout_seconds)
        self._lock = asyncio.Lock()
        self._drawdown_alerted = False

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run_tick(self, cfg: RuntimeConfig) -> TickResult:
        return await self._guarded(cfg, dry_run=False)

    async def dry_run_tick(self, cfg: RuntimeConfig) -> TickResult:
        """Evaluate a full tick but stop before any approval or swap is sent."""
        return await self._guarded(cfg, dry_run=True)

    async def _guarded(self, cfg: RuntimeConfig, *, dry_run: bool) -> TickResult:
        if self._lock.locked():
            return TickResult(ok=False, message="Tick already in progress.", outcome=TickOutcome.BUSY)
        async with self._lock:
            try:
                with self.state_store.tick_lease():
                    return await self._run(cfg, dry_run=dry_run)
            except StateFileLockError:
                logger.warning("TICK_BUSY reason=state_lease_held")
                return TickResult(ok=False, message="Tick already in progress (state lease held).", outcome=TickOutcome.BUSY)

    async def _run(self, cfg: RuntimeConfig, *, dry_run: bool) -> TickResult:
        now_ms = int(self._clock() * 1000)
        snapshot: MarketSnapshot | None = None
        proposed: ProposedTrade | None = None
        try:
            validate_tick_config(cfg)
            state = await asyncio.to_thread(self.state_store.load, day_key_utc(now_ms))
            snapshot = await build_snapshot(cfg, self.chain, self.quotes, paused=cfg.paused or dry_run)

            if state.start_value_usd is None:
                state = state.with_baseline(snapshot.portfolio_usd)
                await asyncio.to_thread(self.state_store.save, state)
                logger.info("DRAWDOWN_BASELINE_SET start_value_usd=%.2f", snapshot.portfolio_usd)

            if drawdown_stop_triggered(cfg, state, snapshot.portfolio_usd):
                raise DrawdownStop(
                    f"Drawdown stop triggered (>{cfg.drawdown_stop_pct * 100:g}% down). Trading disabled."
                )
            self._drawdown_alerted = False

            selection = select_drift(cfg.targets, snapshot.allocation)
            if selection is None:
                return TickResult(ok=True, message="No targets.", outcome=TickOutcome.NO_TARGETS, snapshot=snapshot)
            if abs(selection.delta) < cfg.band:
                return TickResult(
                    ok=True, message="Within band. No trade.", outcome=TickOutcome.WITHIN_BAND, snapshot=snapshot
                )

            proposed = propose_trade(selection, cfg, snapshot.allocation)
            if proposed is None:
                return TickResult(
                    ok=True,
                    message=f"{selection.symbol} off target but no counter-token to trade against. No trade.",
                    outcome=TickOutcome.NO_COUNTERPART,
                    snapshot=snapshot,
                )
            check_affordability(proposed, snapshot, cfg)

            decision = check_policy(cfg, state, proposed, now_ms)
            if not decision.allowed:
                raise PolicyViolation(decision.reason, decision.code)

            proposed = with_sell_amount(proposed, snapshot, cfg)
            quote = await firm_quote(cfg, self.quotes, proposed, taker=snapshot.address)
            buy_usd = implied_buy_usd(quote, proposed, snapshot)
            check_quote_quality(buy_usd, proposed, cfg)

            if cfg.paused or dry_run:
                return TickResult(
                    ok=True,
                    message="PAUSED=true (dry run only).",
                    outcome=TickOutcome.DRY_RUN,
                    snapshot=snapshot,
                    proposed=proposed,
                )

            await ensure_exact_allowance(
                self.chain,
                token_address=cfg.allow_tokens[proposed.sell_symbol],
                spender=quote.spender,
                amount=proposed.sell_amount_raw,
                timeout_seconds=self._tx_timeout,
            )
            tx_id = await submit_swap(self.chain, quote)
        except TickError as exc:
            return await self._failure(exc, snapshot, proposed)
        except Exception as exc:
            logger.exception("TICK_INTERNAL_ERROR err=%s", exc)
            return TickResult(
                ok=False,
                message=f"Internal error: {exc}",
                outcome=TickOutcome.INTERNAL_ERROR,
                snapshot=snapshot,
                proposed=proposed,
            )

        return await self._record(state, proposed, buy_usd, tx_id, now_ms, snapshot)

    async def _record(
        self,
        state: RuntimeState,
        proposed: ProposedTrade,
        buy_usd: float,
        tx_id: str,
        now_ms: int,
        snapshot: MarketSnapshot,
    ) -> TickResult:
        record = TradeRecord(
            ts=datetime.fromtimestamp(now_ms / 1000.0, tz=timezone.utc).isoformat(),
            tx_hash=tx_id,
            sell_symbol=proposed.sell_symbol,
            buy_symbol=proposed.buy_symbol,
            notional_usd=proposed.notional_usd,
            est_buy_usd=buy_usd,
            reason=proposed.reason,
        )
        try:
            await asyncio.to_thread(self.state_store.save, state.after_trade(now_ms, proposed.notional_usd))
            await asyncio.to_thread(self.trade_log.append, record)
        except (OSError, StateFileLockError) as exc:
            logger.error("TRADE_RECORD_FAILED tx=%s err=%s", tx_id, exc)
            return TickResult(
                ok=False,
                message=f"Trade sent: {tx_id} but recording failed: {exc}",
                outcome=TickOutcome.INTERNAL_ERROR,
                snapshot=snapshot,
                proposed=proposed,
                transaction_id=tx_id,
            )

        await self._notify(
            f"Rebalance swap sent: {proposed.sell_symbol} -> {proposed.buy_symbol} "
            f"${proposed.notional_usd:.2f} (est ${buy_usd:.2f}) - {proposed.reason}\ntx {tx_id}"
        )
        return TickResult(
            ok=True,
            message=f"Trade sent: {tx_id}",
            outcome=TickOutcome.EXECUTED,
            snapshot=snapshot,
            proposed=proposed,
            transaction_id=tx_id,
        )

    async def _failure(
        self,
        exc: TickError,
        snapshot: MarketSnapshot | None,
        proposed: ProposedTrade | None,
    ) -> TickResult:
        outcome = TickOutcome.INTERNAL_ERROR
        for kind, mapped in _FAILURE_OUTCOMES:
            if isinstance(exc, kind):
                outcome = mapped
                break

        if isinstance(exc, PolicyViolation):
            return TickResult(
                ok=True,
                message=f"Trade blocked by policy: {exc.reason}",
                outcome=outcome,
                snapshot=snapshot,
                proposed=proposed,
                reason_code=exc.reason_code,
            )
        if not exc.benign:
            logger.warning("TICK_FAILED code=%s err=%s", exc.code, exc)
        if isinstance(exc, DrawdownStop) and not self._drawdown_alerted:
            # One alert per stop episode; re-armed once a tick clears the floor.
            self._drawdown_alerted = True
            await self._notify(str(exc))
        return TickResult(ok=exc.benign, message=str(exc), outcome=outcome, snapshot=snapshot, proposed=proposed)

    async def _notify(self, text: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(text)
        except Exception as exc:
            logger.warning("TRADE_ALERT_FAILED err=%s", exc)
