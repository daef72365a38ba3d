"""On-chain reads and transaction submission for the rebalancing wallet."""

from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import TimeExhausted

from trading.errors import ExecutionTimeout, ProviderError

logger = logging.getLogger(__name__)


ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


class LiveChainClient:
    """ERC-20 reads plus approve/swap submission for a single signing wallet.

    Every web3 failure surfaces as `ProviderError` with the original cause
    chained, so the tick engine can report it without inspecting web3 types.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        wallet_address: str = "",
        rpc_timeout_seconds: int = 20,
        max_gas_gwei: float = 2.0,
        priority_fee_gwei: float = 0.02,
        max_gas_limit: int = 600_000,
    ) -> None:
        if not rpc_url:
            raise ValueError("RPC_URL is empty")
        if not private_key:
            raise ValueError("PRIVATE_KEY is empty")

        self.w3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": rpc_timeout_seconds}))
        self.account = Account.from_key(private_key)
        self.wallet = self.w3.to_checksum_address(self.account.address)
        if wallet_address and wallet_address.strip().lower() != self.wallet.lower():
            raise ValueError("WALLET_ADDRESS does not match PRIVATE_KEY")
        self.chain_id = int(chain_id)
        self.max_gas_gwei = float(max_gas_gwei)
        self.priority_fee_gwei = float(priority_fee_gwei)
        self.max_gas_limit = int(max_gas_limit)

    @property
    def address(self) -> str:
        return self.wallet

    def _token(self, token_address: str) -> Any:
        return self.w3.eth.contract(address=self.w3.to_checksum_address(token_address), abi=ERC20_ABI)

    def decimals(self, token_address: str) -> int:
        try:
            return int(self._token(token_address).functions.decimals().call())
        except Exception as exc:
            raise ProviderError(f"decimals() failed token={token_address}: {exc}") from exc

    def balance_of(self, token_address: str, owner: str) -> int:
        try:
            return int(self._token(token_address).functions.balanceOf(self.w3.to_checksum_address(owner)).call())
        except Exception as exc:
            raise ProviderError(f"balanceOf() failed token={token_address}: {exc}") from exc

    def allowance(self, token_address: str, owner: str, spender: str) -> int:
        try:
            return int(
                self._token(token_address)
                .functions.allowance(self.w3.to_checksum_address(owner), self.w3.to_checksum_address(spender))
                .call()
            )
        except Exception as exc:
            raise ProviderError(f"allowance() failed token={token_address}: {exc}") from exc

    def approve(self, token_address: str, spender: str, amount: int) -> str:
        """Approve exactly `amount`; unlimited approvals are never issued."""
        if int(amount) <= 0:
            raise ValueError("approve amount must be positive")
        try:
            tx = self._token(token_address).functions.approve(
                self.w3.to_checksum_address(spender), int(amount)
            ).build_transaction(self._tx_params())
        except Exception as exc:
            raise ProviderError(f"approve build failed token={token_address}: {exc}") from exc
        return self._sign_and_send(tx)

    def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        tx: dict[str, Any] = self._tx_params(value_wei=int(value))
        tx["to"] = self.w3.to_checksum_address(to)
        tx["data"] = data
        return self._sign_and_send(tx)

    def wait_for_confirmation(self, tx_id: str, timeout_seconds: float) -> dict[str, Any]:
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_id, timeout=float(timeout_seconds))
        except TimeExhausted as exc:
            raise ExecutionTimeout(f"receipt wait timed out after {timeout_seconds:.0f}s tx={tx_id}") from exc
        except Exception as exc:
            raise ProviderError(f"receipt wait failed tx={tx_id}: {exc}") from exc
        if int(receipt["status"]) != 1:
            raise ProviderError(f"tx reverted tx={tx_id}")
        return dict(receipt)

    def _tx_params(self, value_wei: int = 0) -> dict[str, Any]:
        try:
            nonce = self.w3.eth.get_transaction_count(self.wallet, "pending")
            latest = self.w3.eth.get_block("latest")
            observed_gas_price = int(self.w3.eth.gas_price or 0)
        except Exception as exc:
            raise ProviderError(f"fee/nonce lookup failed: {exc}") from exc

        base_fee = int(latest.get("baseFeePerGas") or 0)
        priority = int(self.w3.to_wei(max(0.0, self.priority_fee_gwei), "gwei"))
        cap = int(self.w3.to_wei(max(0.0, self.max_gas_gwei), "gwei"))
        if cap <= 0:
            cap = int(self.w3.to_wei(1, "gwei"))
        if observed_gas_price > cap:
            obs_gwei = float(self.w3.from_wei(observed_gas_price, "gwei"))
            raise ProviderError(f"gas_price_too_high observed_gwei={obs_gwei:.3f} cap_gwei={self.max_gas_gwei:.3f}")

        max_fee = min(cap, max(observed_gas_price, (base_fee * 2) + priority))
        return {
            "from": self.wallet,
            "chainId": self.chain_id,
            "nonce": nonce,
            "value": int(value_wei),
            "maxFeePerGas": max_fee,
            "maxPriorityFeePerGas": min(priority, max_fee),
            "type": 2,
        }

    def _sign_and_send(self, tx: dict[str, Any]) -> str:
        try:
            gas = int(self.w3.eth.estimate_gas(tx))
        except Exception as exc:
            raise ProviderError(f"gas estimation failed: {exc}") from exc
        gas_limit = int(gas * 1.15)
        if gas_limit > self.max_gas_limit:
            raise ProviderError(f"gas_estimate_too_high gas={gas_limit} cap={self.max_gas_limit}")
        tx["gas"] = gas_limit

        try:
            balance = int(self.w3.eth.get_balance(self.wallet))
        except Exception as exc:
            raise ProviderError(f"native balance lookup failed: {exc}") from exc
        worst_cost = gas_limit * int(tx["maxFeePerGas"]) + int(tx.get("value") or 0)
        if worst_cost > balance:
            raise ProviderError(f"insufficient_native_balance have_wei={balance} want_wei={worst_cost}")

        signed = self.account.sign_transaction(tx)
        raw_tx = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
        if raw_tx is None:
            raise ProviderError("signed_tx_missing_raw_bytes")
        try:
            tx_hash = self.w3.eth.send_raw_transaction(raw_tx)
        except Exception as exc:
            raise ProviderError(f"send_raw_transaction failed: {exc}") from exc
        return self.w3.to_hex(tx_hash)
