from __future__ import annotations

import csv
import os
import tempfile
import unittest

from trading.models import TradeRecord
from trading.trade_log import TRADE_LOG_FIELDS, CsvTradeLog


def _record(tx_hash: str, reason: str = "WETH underweight by 20.0%") -> TradeRecord:
    return TradeRecord(
        ts="2025-10-09T08:53:20+00:00",
        tx_hash=tx_hash,
        sell_symbol="USDC",
        buy_symbol="WETH",
        notional_usd=50.0,
        est_buy_usd=49.876543,
        reason=reason,
    )


class CsvTradeLogTests(unittest.TestCase):
    def test_header_written_once(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "state", "trades.csv")
            log = CsvTradeLog(path)
            log.append(_record("0x01"))
            log.append(_record("0x02"))
            with open(path, "r", encoding="utf-8", newline="") as f:
                lines = f.read().splitlines()
                f.seek(0)
                rows = list(csv.DictReader(f))

        self.assertEqual(lines[0], ",".join(TRADE_LOG_FIELDS))
        self.assertEqual(len(lines), 3)
        self.assertEqual([r["txHash"] for r in rows], ["0x01", "0x02"])
        self.assertEqual(rows[0]["estBuyUsd"], "49.8765")

    def test_commas_are_flattened(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "trades.csv")
            CsvTradeLog(path).append(_record("0x03", reason="USDC overweight by 20.0%, WETH underweight"))
            with open(path, "r", encoding="utf-8") as f:
                data_line = f.read().splitlines()[1]

        self.assertEqual(len(data_line.split(",")), len(TRADE_LOG_FIELDS))
        self.assertIn("USDC overweight by 20.0%  WETH underweight", data_line)


if __name__ == "__main__":
    unittest.main()
