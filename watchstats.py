# /watchstats.py
# WatchStats - watch status rollup and viewing analytics service
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable

import uvicorn
from fastapi import FastAPI, Request

from _logging import log
from api import register as register_api
from services.admin import AdminStatistics
from services.cache import DerivationCache
from services.milestones import AchievementLedger
from services.scheduling import StatsRefreshScheduler
from services.statistics import StatisticsComposer
from ws_platform.config_base import config_path, load_config, section
from ws_platform.store import WatchEventStore, store_from_config


def create_app(
    load_config_fn: Callable[[], dict[str, Any]] = load_config,
    *,
    store: WatchEventStore | None = None,
    clock: Callable[[], datetime] | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    cfg = load_config_fn() or {}
    store = store if store is not None else store_from_config(cfg)
    composer = StatisticsComposer(store, cfg, cache=DerivationCache.from_config(cfg), clock=clock)
    ledger = AchievementLedger.from_config(cfg)
    scheduler = StatsRefreshScheduler(load_config_fn, composer, ledger=ledger, log_fn=log)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        if start_scheduler:
            scheduler.start()
        try:
            yield
        finally:
            if start_scheduler:
                scheduler.stop()

    app = FastAPI(title="WatchStats", lifespan=_lifespan)
    app.state.store = store
    app.state.composer = composer
    app.state.admin = AdminStatistics(store, cfg, clock=clock)
    app.state.ledger = ledger
    app.state.scheduler = scheduler
    app.state.load_config = load_config_fn

    log.configure(cfg)
    debug_http = bool(section(cfg, "runtime").get("debug_http"))

    @app.middleware("http")
    async def conditional_access_logger(request: Request, call_next):
        t0 = time.time()
        response = await call_next(request)
        status = getattr(response, "status_code", 0) or 0
        if not debug_http and status >= 500:
            dt_ms = int((time.time() - t0) * 1000)
            path_qs = request.url.path + (f"?{request.url.query}" if request.url.query else "")
            log(f'"{request.method} {path_qs}" {status} ({dt_ms} ms)', level="WARN", module="HTTP")
        return response

    register_api(app)
    return app


# Entry point
def main(host: str = "0.0.0.0", port: int = 8788) -> None:
    cfg = load_config()
    rt = section(cfg, "runtime")
    print("\nWatchStats engine running:")
    print(f"  Local:   http://127.0.0.1:{port}")
    print(f"  Bind:    {host}:{port}")
    print(f"  Config:  {config_path()} (JSON)\n")

    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level=("debug" if rt.get("debug") else "warning"),
        access_log=bool(rt.get("debug_http")),
    )


if __name__ == "__main__":
    main()
