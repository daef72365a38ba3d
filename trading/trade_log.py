"""Append-only CSV log of submitted swaps."""

from __future__ import annotations

import csv
import os

from trading.models import TradeRecord

TRADE_LOG_FIELDS = ["ts", "txHash", "sellSymbol", "buySymbol", "notionalUsd", "estBuyUsd", "reason"]


class CsvTradeLog:
    def __init__(self, path: str) -> None:
        self.path = str(path)

    def append(self, record: TradeRecord) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        write_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
        # Commas are flattened so the file stays trivially splittable.
        row = {key: str(value).replace(",", " ") for key, value in record.to_row().items()}
        with open(self.path, "a", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=TRADE_LOG_FIELDS)
            if write_header:
                writer.writeheader()
            writer.writerow(row)
