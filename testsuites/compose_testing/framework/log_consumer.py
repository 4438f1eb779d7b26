"""
Container log streaming.

A log consumer is any callable taking one decoded log line. LoguruLogConsumer
forwards lines to the harness logger; ComposeLogFollower runs
`docker compose logs --follow` for one service in a background thread and
feeds every line to its consumers while keeping a copy for reports.
"""

from __future__ import annotations

import subprocess
import threading
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger


LogConsumer = Callable[[str], None]


class LoguruLogConsumer:
    """Forward container output to loguru, tagged with the service name."""

    def __init__(self, service: str, level: str = "INFO") -> None:
        self.service = service
        self.level = level
        self._logger = logger.bind(service=service)

    def __call__(self, line: str) -> None:
        self._logger.log(self.level, f"[{self.service}] {line}")


class ComposeLogFollower:
    """Follow the logs of one compose service until stopped."""

    def __init__(
        self,
        command: Sequence[str],
        service: str,
        consumers: Sequence[LogConsumer],
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> None:
        """
        Args:
            command: Compose argv prefix including -p/-f options
            service: Service to follow
            consumers: Callables receiving each line
            env: Process environment for the compose CLI
            cwd: Working directory for the compose CLI
        """
        self.service = service
        self._command = list(command) + [
            "logs", "--follow", "--no-color", "--no-log-prefix", service,
        ]
        self._consumers = list(consumers)
        self._env = env
        self._cwd = cwd
        self._lines: List[str] = []
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ComposeLogFollower":
        self._process = subprocess.Popen(
            self._command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            env=self._env,
            cwd=self._cwd,
        )
        self._thread = threading.Thread(
            target=self._pump,
            args=(self._process,),
            name=f"compose-logs-{self.service}",
            daemon=True,
        )
        self._thread.start()
        return self

    def _pump(self, process: subprocess.Popen) -> None:
        stream = process.stdout
        for raw_line in iter(stream.readline, ""):
            line = raw_line.rstrip("\n")
            with self._lock:
                self._lines.append(line)
            for consumer in self._consumers:
                try:
                    consumer(line)
                except Exception as e:
                    logger.warning(f"Log consumer for {self.service} failed: {e}")
        stream.close()

    @property
    def output(self) -> str:
        with self._lock:
            return "\n".join(self._lines)

    def join(self, timeout: float = 30.0) -> None:
        """Wait for the follower to exit on its own (container gone)."""
        if self._process is not None:
            self._process.wait(timeout=timeout)
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def stop(self, timeout: float = 5.0) -> None:
        """Terminate the follower process; safe to call more than once."""
        process, self._process = self._process, None
        if process is not None and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=timeout)


__all__ = [
    "ComposeLogFollower",
    "LogConsumer",
    "LoguruLogConsumer",
]
