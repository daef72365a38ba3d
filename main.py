"""Entry point for the portfolio rebalancing agent."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Callable

import config
from api.control_server import ControlServer
from monitor.trade_alerter import build_trade_alerter
from monitor.zerox_quotes import ZeroXQuoteProvider
from trading.live_executor import LiveChainClient
from trading.models import TickResult
from trading.runtime_config import ConfigValidationError, RuntimeConfigStore
from trading.runtime_state import JsonStateStore
from trading.tick_engine import TickEngine
from trading.trade_log import CsvTradeLog
from utils.log_contracts import tick_decision_event

DEFAULT_POLL_MINUTES = 5


def configure_logging() -> None:
    os.makedirs(config.LOG_DIR, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(config.APP_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Avoid leaking RPC keys and bot tokens in verbose transport logs.
    for name in ("web3", "urllib3", "httpx", "aiohttp.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class DecisionWriter:
    def __init__(self, path: str = config.DECISIONS_LOG_FILE, enabled: bool = config.DECISIONS_LOG_ENABLED) -> None:
        self.path = path
        self.enabled = bool(enabled)

    def write(self, result: TickResult, dry_run: bool = False) -> None:
        if not self.enabled:
            return
        try:
            event = tick_decision_event({**result.to_dict(), "dry_run": dry_run}, run_tag=config.RUN_TAG)
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event, ensure_ascii=False, sort_keys=False) + "\n")
        except Exception:
            logger.exception("DECISION_LOG write failed")


StatsSource = Callable[..., dict[str, dict[str, int | float]]]


def format_source_stats_brief(source_stats: dict[str, dict[str, int | float]]) -> str:
    if not source_stats:
        return "none"
    parts: list[str] = []
    for source in sorted(source_stats.keys()):
        row = source_stats.get(source) or {}
        parts.append(
            (
                f"{source}:ok={int(row.get('ok', 0))}"
                f"/fail={int(row.get('fail', 0))}"
                f"/retry={int(row.get('retries', 0))}"
                f"/err={float(row.get('error_percent', 0.0)):.1f}%"
                f"/avg={float(row.get('latency_avg_ms', 0.0)):.0f}ms"
                f"/max={float(row.get('latency_max_ms', 0.0)):.0f}ms"
            )
        )
    return "; ".join(parts)


def log_tick_result(result: TickResult) -> None:
    level = logging.INFO if result.ok else logging.WARNING
    logger.log(
        level,
        "TICK_RESULT outcome=%s ok=%s code=%s tx=%s msg=%s",
        result.outcome.value,
        result.ok,
        result.reason_code or "-",
        result.transaction_id or "-",
        result.message,
    )


async def run_loop(
    engine: TickEngine,
    config_store: RuntimeConfigStore,
    decisions: DecisionWriter,
    stop_event: asyncio.Event,
    stats_source: StatsSource | None = None,
) -> None:
    while not stop_event.is_set():
        poll_minutes = DEFAULT_POLL_MINUTES
        try:
            cfg = config_store.read()
            poll_minutes = cfg.poll_minutes
            if cfg.paused:
                logger.info("LOOP_SKIP reason=paused")
            else:
                result = await engine.run_tick(cfg)
                log_tick_result(result)
                decisions.write(result)
        except ConfigValidationError as exc:
            logger.error("LOOP_CONFIG_INVALID err=%s", exc)
        except Exception:
            logger.exception("Rebalance loop error")

        if stats_source is not None:
            logger.info("HTTP_STATS %s", format_source_stats_brief(stats_source(reset=True)))

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=poll_minutes * 60)
        except asyncio.TimeoutError:
            pass


def _on_control_decision(decisions: DecisionWriter):
    def _sink(result: TickResult, dry_run: bool) -> None:
        log_tick_result(result)
        decisions.write(result, dry_run)

    return _sink


async def run_agent() -> None:
    if not config.RPC_URL or not config.PRIVATE_KEY:
        raise RuntimeError("RPC_URL and PRIVATE_KEY are required")

    config_store = RuntimeConfigStore(
        config.CONFIG_PATH,
        admin_token_override=config.ADMIN_TOKEN,
        paused_override=config.PAUSED,
    )
    cfg = config_store.read()
    chain = LiveChainClient(
        rpc_url=config.RPC_URL,
        private_key=config.PRIVATE_KEY,
        chain_id=cfg.chain_id,
        wallet_address=config.WALLET_ADDRESS,
        rpc_timeout_seconds=config.RPC_TIMEOUT_SECONDS,
        max_gas_gwei=config.LIVE_MAX_GAS_GWEI,
        priority_fee_gwei=config.LIVE_PRIORITY_FEE_GWEI,
        max_gas_limit=config.LIVE_MAX_SWAP_GAS,
    )
    quotes = ZeroXQuoteProvider(
        api_url=config.ZEROX_API_URL,
        api_key=config.ZEROX_API_KEY,
        timeout_seconds=config.QUOTE_TIMEOUT_SECONDS,
    )
    alerter = build_trade_alerter(config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_CHAT_ID)
    engine = TickEngine(
        chain=chain,
        quotes=quotes,
        state_store=JsonStateStore(config.STATE_PATH),
        trade_log=CsvTradeLog(config.TRADES_PATH),
        notifier=alerter,
        tx_timeout_seconds=config.LIVE_TX_TIMEOUT_SECONDS,
    )
    decisions = DecisionWriter()
    server = ControlServer(
        engine,
        config_store,
        host=config.CONTROL_HOST,
        port=config.CONTROL_PORT,
        on_decision=_on_control_decision(decisions),
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers; Ctrl+C still raises.
            pass

    logger.info(
        "AGENT_START wallet=%s chain_id=%s config=%s alerts=%s",
        chain.address,
        cfg.chain_id,
        config.CONFIG_PATH,
        "on" if alerter else "off",
    )
    await server.start()
    try:
        await run_loop(engine, config_store, decisions, stop_event, stats_source=quotes.runtime_stats)
    finally:
        logger.info("AGENT_STOP")
        await server.stop()
        await quotes.close()
        if alerter is not None:
            await alerter.close()


def main() -> None:
    configure_logging()
    try:
        asyncio.run(run_agent())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
