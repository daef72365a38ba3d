"""Collaborator interfaces the tick engine is wired with."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol

from trading.models import SwapQuote, TradeRecord
from trading.runtime_state import RuntimeState


class ChainClient(Protocol):
    """Blocking on-chain reads and writes for one wallet."""

    @property
    def address(self) -> str: ...

    def decimals(self, token_address: str) -> int: ...

    def balance_of(self, token_address: str, owner: str) -> int: ...

    def allowance(self, token_address: str, owner: str, spender: str) -> int: ...

    def approve(self, token_address: str, spender: str, amount: int) -> str: ...

    def wait_for_confirmation(self, tx_id: str, timeout_seconds: float) -> dict[str, Any]: ...

    def send_transaction(self, to: str, data: str, value: int = 0) -> str: ...


class QuoteProvider(Protocol):
    async def quote(
        self,
        chain_id: int,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker_address: str | None = None,
        slippage_bps: int | None = None,
    ) -> SwapQuote: ...


class StateStore(Protocol):
    def load(self, today: str | None = None) -> RuntimeState: ...

    def save(self, state: RuntimeState) -> None: ...

    def tick_lease(self) -> AbstractContextManager[None]: ...


class TradeLog(Protocol):
    def append(self, record: TradeRecord) -> None: ...


class TradeNotifier(Protocol):
    async def notify(self, text: str) -> None: ...
