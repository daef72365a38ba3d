"""Firm quote, quote sanity, exact allowance and swap submission."""

from __future__ import annotations

import asyncio
import logging

from trading.capabilities import ChainClient, QuoteProvider
from trading.errors import MarketDataError, QuoteQualityError
from trading.models import MarketSnapshot, ProposedTrade, SwapQuote
from trading.runtime_config import RuntimeConfig
from utils.units import to_human

logger = logging.getLogger(__name__)


async def firm_quote(
    cfg: RuntimeConfig,
    quotes: QuoteProvider,
    trade: ProposedTrade,
    *,
    taker: str,
) -> SwapQuote:
    if trade.sell_amount_raw <= 0:
        raise MarketDataError(f"sell amount for {trade.sell_symbol} rounds to zero")
    return await quotes.quote(
        cfg.chain_id,
        cfg.allow_tokens[trade.sell_symbol],
        cfg.allow_tokens[trade.buy_symbol],
        trade.sell_amount_raw,
        taker_address=taker,
        slippage_bps=cfg.max_slippage_bps,
    )


def implied_buy_usd(quote: SwapQuote, trade: ProposedTrade, snapshot: MarketSnapshot) -> float:
    """USD value of what the quote says we would receive, at snapshot prices."""
    received = to_human(quote.buy_amount, snapshot.decimals[trade.buy_symbol])
    return received * snapshot.prices_usd.get(trade.buy_symbol, 0.0)


def check_quote_quality(buy_usd: float, trade: ProposedTrade, cfg: RuntimeConfig) -> None:
    floor_usd = trade.notional_usd * cfg.quote_quality_floor
    if buy_usd < floor_usd:
        raise QuoteQualityError(
            f"Quote too poor (likely impact): ${buy_usd:.2f} for ${trade.notional_usd:.2f} "
            f"(floor {cfg.quote_quality_floor:.0%}). Skipping."
        )


async def ensure_exact_allowance(
    chain: ChainClient,
    *,
    token_address: str,
    spender: str,
    amount: int,
    timeout_seconds: float,
) -> str | None:
    """Approve exactly `amount` for `spender` when the current allowance is short.

    Returns the approval tx id, or None when no approval was needed. The
    approval must be mined before this returns.
    """
    current = int(await asyncio.to_thread(chain.allowance, token_address, chain.address, spender))
    if current >= int(amount):
        return None
    approve_tx = await asyncio.to_thread(chain.approve, token_address, spender, int(amount))
    logger.info("APPROVE_SENT token=%s spender=%s amount=%s tx=%s", token_address, spender, amount, approve_tx)
    await asyncio.to_thread(chain.wait_for_confirmation, approve_tx, timeout_seconds)
    logger.info("APPROVE_MINED tx=%s", approve_tx)
    return approve_tx


async def submit_swap(chain: ChainClient, quote: SwapQuote) -> str:
    tx_id = await asyncio.to_thread(chain.send_transaction, quote.to, quote.data, int(quote.value))
    logger.info("SWAP_SENT to=%s value=%s tx=%s", quote.to, quote.value, tx_id)
    return tx_id
