"""In-memory collaborators shared by the rebalancer tests."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from trading.models import SwapQuote, TradeRecord
from trading.runtime_config import RuntimeConfig, parse_runtime_config
from trading.runtime_state import RuntimeState
from utils.state_file import StateFileLockError

WALLET = "0x" + "a" * 40
ROUTER = "0x" + "e" * 40
SPENDER = "0x" + "f" * 40
USDC = "0x" + "1" * 40
WETH = "0x" + "2" * 40
AERO = "0x" + "3" * 40

TOKEN_DECIMALS = {USDC: 6, WETH: 18, AERO: 18}


def config_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "chainId": 8453,
        "paused": False,
        "adminToken": "secret-token-123",
        "targets": {"USDC": 0.5, "WETH": 0.5},
        "band": 0.05,
        "maxTradeUsd": 50,
        "minTradeUsd": 5,
        "maxDailyNotionalUsd": 200,
        "maxTradesPerDay": 5,
        "cooldownMinutes": 30,
        "maxSlippageBps": 100,
        "pollMinutes": 10,
        "drawdownStopPct": 0.2,
        "allowTokens": {"USDC": USDC, "WETH": WETH},
        "quote": {"provider": "0x"},
    }
    payload.update(overrides)
    return payload


def make_config(**overrides: Any) -> RuntimeConfig:
    return parse_runtime_config(config_payload(**overrides))


class FakeChain:
    def __init__(self, balances: dict[str, int], allowances: dict[tuple[str, str], int] | None = None) -> None:
        self.balances = dict(balances)
        self.allowances = dict(allowances or {})
        self.approvals: list[tuple[str, str, int]] = []
        self.sent: list[tuple[str, str, int]] = []
        self.waited: list[str] = []
        self.send_error: Exception | None = None
        self.wait_error: Exception | None = None

    @property
    def address(self) -> str:
        return WALLET

    def decimals(self, token_address: str) -> int:
        return TOKEN_DECIMALS[token_address]

    def balance_of(self, token_address: str, owner: str) -> int:
        return int(self.balances.get(token_address, 0))

    def allowance(self, token_address: str, owner: str, spender: str) -> int:
        return int(self.allowances.get((token_address, spender), 0))

    def approve(self, token_address: str, spender: str, amount: int) -> str:
        self.approvals.append((token_address, spender, int(amount)))
        self.allowances[(token_address, spender)] = int(amount)
        return f"0xapprove{len(self.approvals)}"

    def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((to, data, int(value)))
        return f"0xswap{len(self.sent)}"

    def wait_for_confirmation(self, tx_id: str, timeout_seconds: float) -> dict[str, Any]:
        self.waited.append(tx_id)
        if self.wait_error is not None:
            raise self.wait_error
        return {"status": 1, "transactionHash": tx_id}


class FakeQuotes:
    """Prices every token in USD; firm quotes can be degraded with `firm_fill_ratio`."""

    def __init__(self, prices_usd: dict[str, float]) -> None:
        self.prices_usd = dict(prices_usd)
        self.firm_fill_ratio = 1.0
        self.firm_error: Exception | None = None
        self.probe_error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    async def quote(
        self,
        chain_id: int,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker_address: str | None = None,
        slippage_bps: int | None = None,
    ) -> SwapQuote:
        firm = slippage_bps is not None
        self.calls.append(
            {
                "sell": sell_token,
                "buy": buy_token,
                "amount": int(sell_amount),
                "taker": taker_address,
                "slippage_bps": slippage_bps,
            }
        )
        if firm and self.firm_error is not None:
            raise self.firm_error
        if not firm and self.probe_error is not None:
            raise self.probe_error
        sell_units = int(sell_amount) / 10 ** TOKEN_DECIMALS[sell_token]
        usd = sell_units * self.prices_usd[sell_token]
        buy_units = usd / self.prices_usd[buy_token] if self.prices_usd[buy_token] else 0.0
        if firm:
            buy_units *= self.firm_fill_ratio
        return SwapQuote(
            buy_amount=int(round(buy_units * 10 ** TOKEN_DECIMALS[buy_token])),
            sell_amount=int(sell_amount),
            to=ROUTER,
            data="0xdeadbeef",
            value=0,
            allowance_target=SPENDER,
        )

    @property
    def firm_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["slippage_bps"] is not None]


class MemoryStateStore:
    def __init__(self, state: RuntimeState | None = None) -> None:
        self.state = state
        self.saves: list[RuntimeState] = []
        self.lease_held = False

    def load(self, today: str | None = None) -> RuntimeState:
        if self.state is None:
            return RuntimeState.fresh(today or "1970-01-01")
        return self.state.rolled_to(today) if today else self.state

    def save(self, state: RuntimeState) -> None:
        self.state = state
        self.saves.append(state)

    @contextmanager
    def tick_lease(self) -> Iterator[None]:
        if self.lease_held:
            raise StateFileLockError("E_STATE_LOCKED: lease held")
        self.lease_held = True
        try:
            yield
        finally:
            self.lease_held = False


class MemoryTradeLog:
    def __init__(self) -> None:
        self.records: list[TradeRecord] = []

    def append(self, record: TradeRecord) -> None:
        self.records.append(record)


class RecordingNotifier:
    def __init__(self, error: Exception | None = None) -> None:
        self.messages: list[str] = []
        self.error = error

    async def notify(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.messages.append(text)
