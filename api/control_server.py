"""Admin HTTP control surface for the rebalancer."""

from __future__ import annotations

import logging
from typing import Any, Callable

from aiohttp import web

from trading.models import TickOutcome, TickResult
from trading.runtime_config import ConfigValidationError, RuntimeConfig, RuntimeConfigStore
from trading.tick_engine import TickEngine

logger = logging.getLogger(__name__)

DecisionSink = Callable[[TickResult, bool], None]


class ControlServer:
    def __init__(
        self,
        engine: TickEngine,
        config_store: RuntimeConfigStore,
        *,
        host: str = "0.0.0.0",
        port: int = 8787,
        on_decision: DecisionSink | None = None,
    ) -> None:
        self.engine = engine
        self.config_store = config_store
        self.host = host
        self.port = int(port)
        self.on_decision = on_decision
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._auth_middleware])
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/config", self._handle_get_config)
        app.router.add_post("/config", self._handle_post_config)
        app.router.add_post("/pause", self._handle_pause)
        app.router.add_post("/resume", self._handle_resume)
        app.router.add_get("/status", self._handle_status)
        app.router.add_post("/run-once", self._handle_run_once)
        return app

    async def start(self) -> None:
        self.runner = web.AppRunner(self.build_app())
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()
        logger.info("Control server listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler: Callable[..., Any]) -> web.StreamResponse:
        if request.path == "/health":
            return await handler(request)
        try:
            cfg = self.config_store.read()
        except ConfigValidationError as exc:
            logger.error("CONTROL_CONFIG_UNREADABLE err=%s", exc)
            return web.json_response({"ok": False, "error": f"config unavailable: {exc}"}, status=503)

        header_token = request.headers.get("x-admin-token", "")
        query_token = request.query.get("token", "")
        if header_token != cfg.admin_token and query_token != cfg.admin_token:
            logger.warning("CONTROL_UNAUTHORIZED path=%s remote=%s", request.path, request.remote)
            return web.json_response({"ok": False, "error": "unauthorized"}, status=401)
        request["runtime_config"] = cfg
        return await handler(request)

    def _record(self, result: TickResult, dry_run: bool) -> None:
        if self.on_decision is None:
            return
        try:
            self.on_decision(result, dry_run)
        except Exception as exc:
            logger.warning("CONTROL_DECISION_SINK_FAILED err=%s", exc)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True})

    async def _handle_get_config(self, request: web.Request) -> web.Response:
        cfg: RuntimeConfig = request["runtime_config"]
        return web.json_response({"ok": True, "config": cfg.public_dict()})

    async def _handle_post_config(self, request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"ok": False, "error": "invalid_json"}, status=400)
        try:
            cfg = self.config_store.write(payload)
        except ConfigValidationError as exc:
            return web.json_response({"ok": False, "error": str(exc)}, status=400)
        return web.json_response({"ok": True, "config": cfg.public_dict()})

    async def _set_paused(self, request: web.Request, paused: bool) -> web.Response:
        cfg: RuntimeConfig = request["runtime_config"]
        updated = self.config_store.write(cfg.with_paused(paused))
        logger.info("CONTROL_%s", "PAUSE" if paused else "RESUME")
        return web.json_response({"ok": True, "paused": updated.paused})

    async def _handle_pause(self, request: web.Request) -> web.Response:
        return await self._set_paused(request, True)

    async def _handle_resume(self, request: web.Request) -> web.Response:
        return await self._set_paused(request, False)

    async def _handle_status(self, request: web.Request) -> web.Response:
        cfg: RuntimeConfig = request["runtime_config"]
        result = await self.engine.dry_run_tick(cfg)
        self._record(result, True)
        return web.json_response({"ok": True, "config": cfg.public_dict(), "result": result.to_dict()})

    async def _handle_run_once(self, request: web.Request) -> web.Response:
        cfg: RuntimeConfig = request["runtime_config"]
        result = await self.engine.run_tick(cfg)
        self._record(result, False)
        status = 409 if result.outcome == TickOutcome.BUSY else 200
        return web.json_response(result.to_dict(), status=status)
