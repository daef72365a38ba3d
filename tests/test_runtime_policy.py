from __future__ import annotations

import unittest

from tick_fakes import make_config
from trading import runtime_policy
from trading.models import ProposedTrade
from trading.runtime_state import RuntimeState

NOW_MS = 1_760_000_000_000


def _trade(notional_usd: float = 50.0, sell: str = "WETH", buy: str = "USDC") -> ProposedTrade:
    return ProposedTrade(sell_symbol=sell, buy_symbol=buy, notional_usd=notional_usd, reason="test")


def _state(**kwargs: object) -> RuntimeState:
    return RuntimeState(day_key="2025-10-09", **kwargs)


class RuntimePolicyTests(unittest.TestCase):
    def test_allows_trade_inside_every_limit(self) -> None:
        decision = runtime_policy.check_policy(make_config(), _state(), _trade(), NOW_MS)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.reason, "ok")

    def test_paused_wins_over_everything_else(self) -> None:
        cfg = make_config(paused=True, maxTradeUsd=10)
        decision = runtime_policy.check_policy(cfg, _state(), _trade(notional_usd=100.0), NOW_MS)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, "paused")
        self.assertEqual(decision.code, runtime_policy.POLICY_PAUSED)

    def test_below_min_trade(self) -> None:
        decision = runtime_policy.check_policy(make_config(), _state(), _trade(notional_usd=4.99), NOW_MS)
        self.assertEqual(decision.reason, "below minTradeUsd")

    def test_above_max_trade(self) -> None:
        decision = runtime_policy.check_policy(make_config(), _state(), _trade(notional_usd=100.0), NOW_MS)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, "exceeds maxTradeUsd")
        self.assertEqual(decision.code, runtime_policy.POLICY_ABOVE_MAX_TRADE)

    def test_daily_notional_cap_counts_the_new_trade(self) -> None:
        state = _state(notional_today_usd=160.0)
        decision = runtime_policy.check_policy(make_config(), state, _trade(), NOW_MS)
        self.assertEqual(decision.reason, "exceeds maxDailyNotionalUsd")

        state = _state(notional_today_usd=150.0)
        self.assertTrue(runtime_policy.check_policy(make_config(), state, _trade(), NOW_MS).allowed)

    def test_daily_trade_count_cap(self) -> None:
        decision = runtime_policy.check_policy(make_config(), _state(trades_today=5), _trade(), NOW_MS)
        self.assertEqual(decision.reason, "exceeds maxTradesPerDay")
        self.assertEqual(decision.code, runtime_policy.POLICY_DAILY_TRADES)

    def test_cooldown_reports_elapsed_minutes(self) -> None:
        state = _state(last_trade_at_ms=NOW_MS - 10 * 60_000)
        decision = runtime_policy.check_policy(make_config(cooldownMinutes=30), state, _trade(), NOW_MS)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, "cooldown 10.0m < 30m")
        self.assertEqual(decision.code, runtime_policy.POLICY_COOLDOWN)

    def test_cooldown_elapsed_allows_trade(self) -> None:
        state = _state(last_trade_at_ms=NOW_MS - 30 * 60_000)
        self.assertTrue(runtime_policy.check_policy(make_config(cooldownMinutes=30), state, _trade(), NOW_MS).allowed)

    def test_unlisted_token_is_denied_last(self) -> None:
        decision = runtime_policy.check_policy(make_config(), _state(), _trade(sell="DEGEN"), NOW_MS)
        self.assertEqual(decision.reason, "token not allowlisted")
        self.assertEqual(decision.code, runtime_policy.POLICY_NOT_ALLOWLISTED)

    def test_rule_order_reports_first_failure(self) -> None:
        state = _state(trades_today=5, last_trade_at_ms=NOW_MS)
        decision = runtime_policy.check_policy(make_config(), state, _trade(sell="DEGEN"), NOW_MS)
        self.assertEqual(decision.reason, "exceeds maxTradesPerDay")


class DrawdownTests(unittest.TestCase):
    def test_floor_requires_positive_baseline(self) -> None:
        cfg = make_config(drawdownStopPct=0.2)
        self.assertIsNone(runtime_policy.drawdown_floor_usd(cfg, _state()))
        self.assertIsNone(runtime_policy.drawdown_floor_usd(cfg, _state(start_value_usd=0.0)))
        self.assertAlmostEqual(runtime_policy.drawdown_floor_usd(cfg, _state(start_value_usd=1000.0)), 800.0)

    def test_stop_triggers_strictly_below_floor(self) -> None:
        cfg = make_config(drawdownStopPct=0.2)
        state = _state(start_value_usd=1000.0)
        self.assertFalse(runtime_policy.drawdown_stop_triggered(cfg, state, 800.0))
        self.assertTrue(runtime_policy.drawdown_stop_triggered(cfg, state, 799.99))
        self.assertFalse(runtime_policy.drawdown_stop_triggered(cfg, _state(), 1.0))


if __name__ == "__main__":
    unittest.main()
