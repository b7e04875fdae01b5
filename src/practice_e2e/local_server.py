"""Start the frontend dev server for local runs.

Only the ``local`` target needs this. Stage and prod are already deployed.
An already running server is reused unless CI is set.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
import time
from pathlib import Path
from typing import Optional

import httpx

from practice_e2e.config import settings

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]


def is_reachable(url: str, timeout: float = 2.0) -> bool:
    """True when ``url`` answers at all (any HTTP status)."""
    try:
        httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError:
        return False
    return True


class LocalAppServer:
    """Frontend server process for the local target.

    Usage:
        server = LocalAppServer()
        server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        command: Optional[str] = None,
        cwd: Optional[str] = None,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        reuse_existing: Optional[bool] = None,
        poll_interval: float = 1.0,
    ):
        self.command = command or settings.local_server_command
        workdir = Path(cwd or settings.local_server_cwd or ".")
        self.cwd = workdir if workdir.is_absolute() else (REPO_ROOT / workdir).resolve()
        self.url = url or settings.base_url
        self.timeout = settings.local_server_timeout if timeout is None else timeout
        self.reuse_existing = settings.reuse_existing_server if reuse_existing is None else reuse_existing
        self.poll_interval = poll_interval
        self.process: Optional[subprocess.Popen] = None

    @property
    def owned(self) -> bool:
        """True if this instance started the process (and must stop it)."""
        return self.process is not None

    def start(self) -> None:
        """Start the server and block until it answers, or raise RuntimeError."""
        if is_reachable(self.url):
            if self.reuse_existing:
                logger.info(f"Reusing server already running at {self.url}")
                return
            raise RuntimeError(f"{self.url} is already in use and reusing servers is disabled (CI)")

        if not self.cwd.is_dir():
            raise RuntimeError(f"Frontend checkout not found at {self.cwd}")

        logger.info(f"Starting '{self.command}' in {self.cwd}")
        self.process = subprocess.Popen(
            shlex.split(self.command),
            cwd=str(self.cwd),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self.process.poll() is not None:
                code = self.process.returncode
                self.process = None
                raise RuntimeError(f"'{self.command}' exited with code {code} before serving {self.url}")
            if is_reachable(self.url):
                logger.info(f"Server ready at {self.url}")
                return
            time.sleep(self.poll_interval)

        self.stop()
        raise RuntimeError(f"Server at {self.url} not ready after {self.timeout}s")

    def stop(self) -> None:
        if self.process is None:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=10)
        except subprocess.TimeoutExpired:
            logger.warning("Server did not terminate, killing it")
            self.process.kill()
            self.process.wait()
        self.process = None
