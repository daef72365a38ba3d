"""Market snapshot: balances, probe-derived USD prices and allocation."""

from __future__ import annotations

import asyncio
import logging
import math

from trading.capabilities import ChainClient, QuoteProvider
from trading.errors import MarketDataError
from trading.models import MarketSnapshot
from trading.runtime_config import RuntimeConfig
from utils.units import to_human, to_raw

logger = logging.getLogger(__name__)


async def probe_price_usd(
    cfg: RuntimeConfig,
    quotes: QuoteProvider,
    *,
    symbol: str,
    decimals: dict[str, int],
    taker: str,
) -> float:
    """USD price of `symbol` from a small sell quote into the base asset.

    Probes ignore slippage; only the quoted buy amount matters.
    """
    base = cfg.base_symbol
    probe_units = cfg.probe_units(symbol)
    sell_amount = to_raw(probe_units, decimals[symbol])
    if sell_amount <= 0:
        raise MarketDataError(f"Probe size for {symbol} rounds to zero ({probe_units})")
    quote = await quotes.quote(
        cfg.chain_id,
        cfg.allow_tokens[symbol],
        cfg.allow_tokens[base],
        sell_amount,
        taker_address=taker,
    )
    received = to_human(quote.buy_amount, decimals[base])
    price = received / probe_units
    if not math.isfinite(price) or price <= 0:
        raise MarketDataError(f"Bad price for {symbol}: {price}")
    return price


async def build_snapshot(
    cfg: RuntimeConfig,
    chain: ChainClient,
    quotes: QuoteProvider,
    *,
    paused: bool | None = None,
) -> MarketSnapshot:
    """Read every allow-listed token and value the wallet in USD.

    Any invalid price fails the whole snapshot; a partial snapshot is never
    returned.
    """
    wallet = chain.address
    symbols = list(cfg.allow_tokens)
    decimals: dict[str, int] = {}
    raw_balances: dict[str, int] = {}
    for symbol in symbols:
        address = cfg.allow_tokens[symbol]
        decimals[symbol] = int(await asyncio.to_thread(chain.decimals, address))
        raw_balances[symbol] = int(await asyncio.to_thread(chain.balance_of, address, wallet))

    prices: dict[str, float] = {cfg.base_symbol: 1.0}
    for symbol in symbols:
        if symbol == cfg.base_symbol:
            continue
        prices[symbol] = await probe_price_usd(cfg, quotes, symbol=symbol, decimals=decimals, taker=wallet)

    balances: dict[str, float] = {}
    values: dict[str, float] = {}
    portfolio_usd = 0.0
    for symbol in symbols:
        balances[symbol] = to_human(raw_balances[symbol], decimals[symbol])
        values[symbol] = balances[symbol] * prices[symbol]
        portfolio_usd += values[symbol]

    allocation = {
        symbol: (values[symbol] / portfolio_usd if portfolio_usd > 0 else 0.0) for symbol in symbols
    }
    logger.debug(
        "SNAPSHOT wallet=%s portfolio_usd=%.2f alloc=%s",
        wallet,
        portfolio_usd,
        ",".join(f"{s}:{allocation[s]:.3f}" for s in symbols),
    )
    return MarketSnapshot(
        address=wallet,
        portfolio_usd=portfolio_usd,
        balances=balances,
        prices_usd=prices,
        values_usd=values,
        allocation=allocation,
        targets=dict(cfg.targets),
        paused=cfg.paused if paused is None else bool(paused),
        decimals=decimals,
        addresses=dict(cfg.allow_tokens),
    )
