from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from dcm import db
from dcm.docker_ops import ContainerEngine
from dcm.errors import ConfigInvalid, DcmError, StatsCollectionPartial
from dcm.logs import setup_logging
from dcm.metrics import DockerMetrics
from dcm.reconciler import Reconciler
from dcm.runtime import ConfigStore
from dcm.settings import Settings, settings as default_settings
from dcm.stats import StatsAggregator

logger = logging.getLogger("dcm.main")


def create_app(
    engine: ContainerEngine | None = None,
    store: ConfigStore | None = None,
    sink: DockerMetrics | None = None,
    cfg: Settings = default_settings,
) -> FastAPI:
    """Wire the engine, config store, reconciler and metrics sink behind HTTP.

    Every endpoint is synchronous: the response waits for the whole operation.
    """
    engine = engine or ContainerEngine(
        timeout_s=cfg.docker_timeout_s,
        pull_timeout_s=cfg.pull_timeout_s,
        max_pool_size=max(10, cfg.stats_workers),
    )
    store = store or ConfigStore(cfg.config_path)
    sink = sink or DockerMetrics()
    reconciler = Reconciler(engine)
    aggregator = StatsAggregator(engine, max_workers=cfg.stats_workers)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.init_db()
        # An unreadable config at startup is fatal; ConfigInvalid propagates.
        snap = store.current() if store.loaded else store.reload()
        setup_logging(snap.config.app_config.debug)
        db.log_event("INFO", f"Started with config {snap.source} (version {snap.version})")
        yield

    app = FastAPI(title="Declarative Container Manager", lifespan=lifespan)
    app.state.engine = engine
    app.state.store = store
    app.state.sink = sink
    app.state.reconciler = reconciler
    app.state.aggregator = aggregator

    @app.exception_handler(DcmError)
    async def dcm_error_handler(request: Request, exc: DcmError) -> PlainTextResponse:
        return PlainTextResponse(f"{exc}\n", status_code=500)

    @app.api_route("/update", methods=["GET", "POST"], response_class=PlainTextResponse)
    def update() -> str:
        snap = store.current()
        logger.debug("Reconciling with config version %s", snap.version)
        reconciler.reconcile(snap.config)
        return "Containers reconciled\n"

    @app.api_route("/reload", methods=["GET", "POST"], response_class=PlainTextResponse)
    def reload() -> str:
        try:
            snap = store.reload()
        except ConfigInvalid as e:
            db.log_event("ERROR", f"Error reloading config, keeping the previous one: {e}")
            raise
        setup_logging(snap.config.app_config.debug)
        logger.debug("New config: %r", snap.config)
        db.log_event("INFO", f"Config reloaded (version {snap.version})")
        return "Config reloaded\n"

    @app.get("/metrics")
    def metrics() -> Response:
        try:
            containers = engine.list_containers()
        except DcmError as e:
            return PlainTextResponse(f"Could not list containers: {e}\n", status_code=500)

        collected, errors = aggregator.collect(containers)
        for m in collected:
            sink.update(m)
            logger.debug("Updated metrics for container %s", m.container_id)
        if cfg.prune_stale_metrics:
            for labels in sink.sweep((c.id, c.name) for c in containers):
                logger.debug("Dropped metrics of removed container %s (%s)", labels[1], labels[0])

        if errors:
            batch = StatsCollectionPartial(errors)
            if not cfg.serve_partial_metrics:
                raise batch
            logger.warning("%s", batch)
        return Response(sink.render(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/events")
    def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict[str, Any]]:
        return db.latest_events(limit)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
