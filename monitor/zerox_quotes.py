"""0x swap quotes: probe prices and firm, executable swap quotes."""

from __future__ import annotations

import logging
from typing import Any

from trading.errors import ProviderError
from trading.models import SwapQuote
from utils.http_client import ResilientHttpClient

logger = logging.getLogger(__name__)


def _as_int(payload: dict[str, Any], key: str, *, required: bool = True) -> int:
    raw = payload.get(key)
    if raw in (None, ""):
        if required:
            raise ProviderError(f"0x quote missing field {key}")
        return 0
    try:
        return int(str(raw))
    except ValueError as exc:
        raise ProviderError(f"0x quote field {key} is not an integer: {raw!r}") from exc


def parse_quote(payload: Any) -> SwapQuote:
    if not isinstance(payload, dict):
        raise ProviderError("0x quote payload is not an object")
    to = str(payload.get("to") or "")
    if not to:
        raise ProviderError("0x quote missing field to")
    data = str(payload.get("data") or "")
    if data in ("", "0x"):
        raise ProviderError("0x quote missing field data")
    return SwapQuote(
        buy_amount=_as_int(payload, "buyAmount"),
        sell_amount=_as_int(payload, "sellAmount", required=False),
        to=to,
        data=data,
        value=_as_int(payload, "value", required=False),
        allowance_target=str(payload.get("allowanceTarget") or ""),
    )


class ZeroXQuoteProvider:
    def __init__(
        self,
        *,
        api_url: str,
        api_key: str = "",
        timeout_seconds: float = 15.0,
        http: ResilientHttpClient | None = None,
    ) -> None:
        self.api_url = api_url
        headers = {"Accept": "application/json"}
        if api_key:
            headers["0x-api-key"] = api_key
        self._http = http or ResilientHttpClient(timeout_seconds=timeout_seconds, headers=headers)

    async def close(self) -> None:
        await self._http.close()

    def runtime_stats(self, reset: bool = False) -> dict[str, dict[str, int | float]]:
        return self._http.snapshot_stats(reset=reset)

    async def quote(
        self,
        chain_id: int,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker_address: str | None = None,
        slippage_bps: int | None = None,
    ) -> SwapQuote:
        params: dict[str, str] = {
            "chainId": str(int(chain_id)),
            "sellToken": sell_token,
            "buyToken": buy_token,
            "sellAmount": str(int(sell_amount)),
        }
        if taker_address:
            params["takerAddress"] = taker_address
        if slippage_bps is not None:
            params["slippagePercentage"] = str(int(slippage_bps) / 10_000)

        result = await self._http.get_json(self.api_url, source="0x", params=params)
        if not result.ok:
            logger.warning(
                "ZEROX_QUOTE_FAIL status=%s sell=%s buy=%s amount=%s err=%s",
                result.status,
                sell_token,
                buy_token,
                sell_amount,
                result.error,
            )
            raise ProviderError(f"0x quote failed: {result.status} {result.error}")
        return parse_quote(result.data)
