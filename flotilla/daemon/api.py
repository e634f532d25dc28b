"""Daemon HTTP API (FastAPI). Long operations stream NDJSON lines."""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from flotilla.config import DaemonConfig
from flotilla.daemon.core import Daemon
from flotilla.deploy.params import DeployRequest
from flotilla.errors import FlotillaError
from flotilla.ledger import format_ps

logger = logging.getLogger(__name__)

NDJSON = "application/x-ndjson"


class DeployBody(BaseModel):
    definitions: list[dict] = Field(default_factory=list)
    names: list[str]
    force: bool = False
    only_selected: bool = False
    skip_checks: bool = False
    skip_readiness: bool = False
    environment_sets: list[str] = Field(default_factory=list)
    wait: bool = False
    serial: bool = False
    apply_fixes: bool = False


class StopBody(BaseModel):
    names: list[str]


Operation = Callable[[Callable[[str], None]], Awaitable[list[FlotillaError]]]


async def stream_operation(operation: Operation) -> AsyncIterator[bytes]:
    """Run an operation, yielding {"line": ...} objects then one {"ok": ..., "errors": [...]}.

    If the client disconnects the operation is cancelled, which also
    abandons any readiness wait it is blocked on.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def runner():
        try:
            errors = await operation(lambda line: queue.put_nowait({"line": line}))
        except Exception as e:
            logger.exception("Operation failed unexpectedly")
            queue.put_nowait({"ok": False, "errors": [f"Error: {e}"]})
            return
        queue.put_nowait({"ok": not errors, "errors": [err.render() for err in errors]})

    task = asyncio.create_task(runner())
    try:
        while True:
            item = await queue.get()
            yield (json.dumps(item) + "\n").encode()
            if "ok" in item:
                break
    finally:
        if not task.done():
            task.cancel()


def create_app(config: DaemonConfig, daemon: Daemon | None = None, on_shutdown: Callable[[], None] | None = None) -> FastAPI:
    """Build the API around one Daemon; its processes are stopped when the app shuts down."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Daemon ready (pid {os.getpid()}), logs in {config.logs_dir}")
        yield
        await app.state.daemon.close()

    app = FastAPI(title="flotilla daemon", lifespan=lifespan)
    app.state.daemon = daemon or Daemon(config)

    def _daemon() -> Daemon:
        return app.state.daemon

    @app.get("/health")
    async def health():
        return {"ok": True, "pid": os.getpid()}

    @app.post("/deploy")
    async def deploy(body: DeployBody):
        request = DeployRequest.from_dict(body.model_dump(exclude={"definitions"}))

        async def operation(emit):
            outcome = await _daemon().deploy(body.definitions, request, emit)
            return outcome.errors

        return StreamingResponse(stream_operation(operation), media_type=NDJSON)

    @app.post("/stop")
    async def stop(body: StopBody):
        return StreamingResponse(stream_operation(lambda emit: _daemon().stop(body.names, emit)), media_type=NDJSON)

    @app.post("/down")
    async def down():
        return StreamingResponse(stream_operation(_daemon().down), media_type=NDJSON)

    @app.get("/ps")
    async def ps():
        records = _daemon().ledger.snapshot()
        return {
            "table": format_ps(records),
            "modules": [record.to_dict() for record in records],
        }

    @app.get("/modules/{name}")
    async def module(name: str):
        try:
            return _daemon().module(name).to_dict()
        except FlotillaError as e:
            raise HTTPException(status_code=404, detail=e.render()) from e

    @app.post("/shutdown")
    async def shutdown():
        if on_shutdown is None:
            raise HTTPException(status_code=400, detail="Error: This daemon cannot be shut down remotely")
        on_shutdown()
        return {"ok": True}

    return app


def serve(config: DaemonConfig, host: str = "127.0.0.1") -> None:
    """Run the daemon in the foreground until SIGINT/SIGTERM or POST /shutdown."""
    server: uvicorn.Server | None = None

    def request_shutdown():
        server.should_exit = True

    app = create_app(config, on_shutdown=request_shutdown)
    # log_config=None keeps the handlers from setup_daemon_logging
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=config.port, log_config=None))
    server.run()
