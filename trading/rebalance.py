"""Drift selection and single-step trade proposals toward the target weights."""

from __future__ import annotations

from dataclasses import replace

from trading.errors import InsufficientBalance, MarketDataError
from trading.models import DriftSelection, MarketSnapshot, ProposedTrade
from trading.runtime_config import RuntimeConfig
from utils.units import to_raw

# Affordability slack for non-base sells: absorbs probe-price imprecision.
SELL_BALANCE_SLACK = 0.98
# Fractional digits kept when sizing non-base sells from a USD notional.
PRICED_SELL_FRACTION_DIGITS = 8
BASE_SELL_FRACTION_DIGITS = 6


def drift_by_symbol(targets: dict[str, float], allocation: dict[str, float]) -> dict[str, float]:
    return {symbol: allocation.get(symbol, 0.0) - weight for symbol, weight in targets.items()}


def select_drift(targets: dict[str, float], allocation: dict[str, float]) -> DriftSelection | None:
    """Symbol with the largest absolute drift; ties keep the first in target order."""
    best: DriftSelection | None = None
    for symbol, delta in drift_by_symbol(targets, allocation).items():
        if best is None or abs(delta) > abs(best.delta):
            best = DriftSelection(symbol=symbol, delta=delta)
    return best


def _counterpart(drifts: dict[str, float], base: str, *, overweight: bool) -> DriftSelection | None:
    best: DriftSelection | None = None
    for symbol, delta in drifts.items():
        if symbol == base:
            continue
        if overweight and delta > 0 and (best is None or delta > best.delta):
            best = DriftSelection(symbol=symbol, delta=delta)
        if not overweight and delta < 0 and (best is None or delta < best.delta):
            best = DriftSelection(symbol=symbol, delta=delta)
    return best


def propose_trade(
    selection: DriftSelection,
    cfg: RuntimeConfig,
    allocation: dict[str, float],
) -> ProposedTrade | None:
    """Turn the selected drift into a trade of exactly `max_trade_usd`.

    Overweight tokens are sold into the base asset and underweight tokens are
    bought with it. When the base asset itself carries the largest drift the
    trade goes against the non-base token drifting hardest the other way;
    None is returned when no such token exists.
    """
    base = cfg.base_symbol
    notional = float(cfg.max_trade_usd)
    pct = abs(selection.delta) * 100.0

    if selection.symbol != base:
        if selection.delta > 0:
            return ProposedTrade(
                sell_symbol=selection.symbol,
                buy_symbol=base,
                notional_usd=notional,
                reason=f"{selection.symbol} overweight by {pct:.1f}%",
            )
        return ProposedTrade(
            sell_symbol=base,
            buy_symbol=selection.symbol,
            notional_usd=notional,
            reason=f"{selection.symbol} underweight by {pct:.1f}%",
        )

    drifts = drift_by_symbol(cfg.targets, allocation)
    if selection.delta > 0:
        other = _counterpart(drifts, base, overweight=False)
        if other is None:
            return None
        return ProposedTrade(
            sell_symbol=base,
            buy_symbol=other.symbol,
            notional_usd=notional,
            reason=f"{base} overweight by {pct:.1f}%; {other.symbol} underweight by {abs(other.delta) * 100.0:.1f}%",
        )
    other = _counterpart(drifts, base, overweight=True)
    if other is None:
        return None
    return ProposedTrade(
        sell_symbol=other.symbol,
        buy_symbol=base,
        notional_usd=notional,
        reason=f"{base} underweight by {pct:.1f}%; {other.symbol} overweight by {other.delta * 100.0:.1f}%",
    )


def check_affordability(trade: ProposedTrade, snapshot: MarketSnapshot, cfg: RuntimeConfig) -> None:
    if trade.sell_symbol == cfg.base_symbol:
        if snapshot.balances.get(cfg.base_symbol, 0.0) < cfg.min_trade_usd:
            raise InsufficientBalance(f"Not enough {cfg.base_symbol} to buy.")
        return
    price = snapshot.prices_usd.get(trade.sell_symbol, 0.0)
    if price <= 0:
        raise MarketDataError(f"Bad price for sell token {trade.sell_symbol}")
    needed = trade.notional_usd / price
    if snapshot.balances.get(trade.sell_symbol, 0.0) < needed * SELL_BALANCE_SLACK:
        raise InsufficientBalance(f"Not enough {trade.sell_symbol} to sell.")


def with_sell_amount(trade: ProposedTrade, snapshot: MarketSnapshot, cfg: RuntimeConfig) -> ProposedTrade:
    """Attach the sell amount in the sell token's native integer units."""
    decimals = snapshot.decimals[trade.sell_symbol]
    if trade.sell_symbol == cfg.base_symbol:
        raw = to_raw(trade.notional_usd, decimals, max_fraction_digits=BASE_SELL_FRACTION_DIGITS)
    else:
        sell_units = trade.notional_usd / snapshot.prices_usd[trade.sell_symbol]
        raw = to_raw(sell_units, decimals, max_fraction_digits=PRICED_SELL_FRACTION_DIGITS)
    return replace(trade, sell_amount_raw=raw)
