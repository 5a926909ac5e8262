"""ScopedServer — a candidate release's server run in its own process group."""

from __future__ import annotations

import logging
import os
import queue
import re
import signal
import socket
import subprocess
import threading
import time
from pathlib import Path
from typing import Sequence

from shipyard.config import READINESS_MARKERS

logger = logging.getLogger(__name__)


class ServerStartError(Exception):
    """The server exited early or never signalled readiness."""


def find_free_port(port_min: int, port_max: int, host: str = "127.0.0.1") -> int:
    """Return the first port in ``[port_min, port_max]`` that can be bound."""
    for port in range(port_min, port_max + 1):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                continue
            return port
    raise ServerStartError(f"No available ports in range {port_min}-{port_max}")


def readiness_pattern(port: int) -> re.Pattern[str]:
    markers = [re.escape(m) for m in READINESS_MARKERS]
    markers.append(re.escape(f":{port}"))
    return re.compile("|".join(markers), re.IGNORECASE)


class ScopedServer:
    """Run *command* detached in a new session and reap its whole group.

    Use as a context manager; leaving the block always terminates every
    process in the group (SIGTERM, grace period, then SIGKILL).

    Parameters
    ----------
    command:
        Argument vector of the start command.
    cwd:
        Working directory (the package directory inside the release).
    port:
        Scratch port, exported as ``PORT``.
    env:
        Extra environment variables.
    grace_period:
        Seconds to wait after SIGTERM before SIGKILL.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: str | Path,
        port: int,
        env: dict[str, str] | None = None,
        grace_period: float = 10.0,
    ) -> None:
        self.command = list(command)
        self.cwd = Path(cwd)
        self.port = port
        self.env = dict(env or {})
        self.grace_period = grace_period
        self.output: list[str] = []
        self._proc: subprocess.Popen[str] | None = None
        self._lines: queue.Queue[str | None] = queue.Queue()
        self._reader: threading.Thread | None = None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    def __enter__(self) -> ScopedServer:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def start(self) -> None:
        env = {**os.environ, "PORT": str(self.port), **self.env}
        try:
            self._proc = subprocess.Popen(
                self.command,
                cwd=self.cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                start_new_session=True,
            )
        except OSError as exc:
            raise ServerStartError(f"Could not start {self.command[0]}: {exc}") from exc
        self._reader = threading.Thread(target=self._pump, daemon=True)
        self._reader.start()
        logger.debug("Started test server pid=%s port=%s", self._proc.pid, self.port)

    def wait_ready(self, timeout: float) -> str:
        """Block until an output line signals readiness.

        Returns the matching line.

        Raises
        ------
        ServerStartError
            If the process exits first or *timeout* elapses.
        """
        pattern = readiness_pattern(self.port)
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ServerStartError(f"Server failed to start within {timeout:.0f}s")
            try:
                line = self._lines.get(timeout=min(remaining, 0.5))
            except queue.Empty:
                continue
            if line is None:
                code = self._proc.wait() if self._proc else None
                raise ServerStartError(f"Server exited with code {code}")
            if pattern.search(line):
                return line

    def stop(self) -> None:
        """Terminate the process group; idempotent."""
        proc = self._proc
        if proc is None:
            return
        self._signal_group(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.grace_period)
            logger.debug("Test server terminated")
        except subprocess.TimeoutExpired:
            logger.debug("Test server did not exit, force killing")
            self._signal_group(proc, signal.SIGKILL)
            proc.wait()
        # Children that ignored SIGTERM outlive the leader.
        self._signal_group(proc, signal.SIGKILL)
        if self._reader is not None:
            self._reader.join(timeout=1.0)
        self._proc = None

    def _pump(self) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        for raw in self._proc.stdout:
            line = raw.rstrip()
            self.output.append(line)
            logger.debug("[server] %s", line)
            self._lines.put(line)
        self._lines.put(None)

    @staticmethod
    def _signal_group(proc: subprocess.Popen[str], sig: signal.Signals) -> None:
        try:
            os.killpg(proc.pid, sig)
        except (ProcessLookupError, PermissionError):
            pass
