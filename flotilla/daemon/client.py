"""HTTP client for the daemon, used by every CLI command."""

import asyncio
import json
import logging
import os
import subprocess
import sys
import time
from collections.abc import Callable

import httpx

from flotilla.deploy.params import DeployRequest
from flotilla.errors import DaemonUnavailable, FlotillaError

logger = logging.getLogger(__name__)

HEALTH_POLL_INTERVAL = 0.2


class DaemonClient:
    """Thin async wrapper around the daemon endpoints.

    Streaming endpoints call on_line for every progress line and return the
    rendered errors from the terminating object.
    """

    def __init__(self, base_url: str, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url
        # deploys wait on readiness probes, so no read timeout by default
        self._client = httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout, connect=5.0), transport=transport)

    async def __aenter__(self) -> "DaemonClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def health(self) -> dict | None:
        """Return the health payload, or None when nothing answers."""
        try:
            response = await self._client.get("/health", timeout=2.0)
        except httpx.TransportError:
            return None
        if response.status_code != 200:
            return None
        return response.json()

    async def ensure_running(self, start_timeout: float, config_path: str | None = None, output_file: str | None = None) -> None:
        """Start a detached daemon unless one already answers /health."""
        if await self.health() is not None:
            return
        logger.debug(f"No daemon at {self.base_url}, starting one")
        start_daemon_process(config_path=config_path, output_file=output_file)
        deadline = time.monotonic() + start_timeout
        while time.monotonic() < deadline:
            await asyncio.sleep(HEALTH_POLL_INTERVAL)
            if await self.health() is not None:
                return
        raise DaemonUnavailable(
            f"The daemon did not start within {start_timeout:g} seconds",
            details=f"Check the daemon output: {output_file}" if output_file else None,
        )

    async def stream(self, path: str, payload: dict | None, on_line: Callable[[str], None]) -> list[str]:
        errors: list[str] = ["Error: The daemon closed the connection before the operation finished"]
        try:
            async with self._client.stream("POST", path, json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise FlotillaError(_detail(response))
                async for raw in response.aiter_lines():
                    if not raw.strip():
                        continue
                    item = json.loads(raw)
                    if "line" in item:
                        on_line(item["line"])
                    elif "ok" in item:
                        errors = list(item.get("errors") or [])
                        break
        except httpx.ConnectError as e:
            raise DaemonUnavailable(f"Cannot reach the daemon at {self.base_url}") from e
        return errors

    async def deploy(self, documents: list[dict], request: DeployRequest, on_line: Callable[[str], None]) -> list[str]:
        payload = {"definitions": documents, **request.to_dict()}
        return await self.stream("/deploy", payload, on_line)

    async def stop(self, names: list[str], on_line: Callable[[str], None]) -> list[str]:
        return await self.stream("/stop", {"names": names}, on_line)

    async def down(self, on_line: Callable[[str], None]) -> list[str]:
        return await self.stream("/down", None, on_line)

    async def ps(self) -> str:
        response = await self._get("/ps")
        return response.json()["table"]

    async def module(self, name: str) -> dict:
        """Ledger record of one module (pid, log path, working dir, environment)."""
        response = await self._get(f"/modules/{name}")
        return response.json()

    async def shutdown(self) -> None:
        try:
            response = await self._client.post("/shutdown")
        except httpx.ConnectError as e:
            raise DaemonUnavailable(f"Cannot reach the daemon at {self.base_url}") from e
        if response.status_code != 200:
            raise FlotillaError(_detail(response))

    async def _get(self, path: str) -> httpx.Response:
        try:
            response = await self._client.get(path)
        except httpx.ConnectError as e:
            raise DaemonUnavailable(f"Cannot reach the daemon at {self.base_url}") from e
        if response.status_code != 200:
            raise FlotillaError(_detail(response))
        return response


def _detail(response: httpx.Response) -> str:
    """Message from a FastAPI error body, without the 'Error: ' prefix render() adds back."""
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if not isinstance(detail, str):
        detail = f"Daemon returned HTTP {response.status_code}"
    return detail.removeprefix("Error: ")


def start_daemon_process(config_path: str | None = None, output_file: str | None = None) -> int:
    """Spawn `flotilla daemon run` detached from this terminal; returns its pid."""
    cmd = [sys.executable, "-m", "flotilla.flotilla"]
    if config_path:
        cmd += ["--config", config_path]
    cmd += ["daemon", "run"]

    output = subprocess.DEVNULL
    if output_file:
        os.makedirs(os.path.dirname(output_file) or ".", exist_ok=True)
        output = open(output_file, "ab")
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=output,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    finally:
        if output is not subprocess.DEVNULL:
            output.close()
    logger.debug(f"Started daemon (pid {proc.pid}): {' '.join(cmd)}")
    return proc.pid
