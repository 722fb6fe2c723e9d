#!/usr/bin/env python3
"""
MACWATCH Alert Runner
=====================

Runs the configured alert command for classified outcomes.

The command is invoked as ``<command> <verb> <address> <mac> <iface> [extra]``
on a bounded thread pool with a capped backlog. Output is captured and
logged. Failures (launch errors, timeouts, non-zero exit) are logged and
counted, never retried. Alerts beyond the backlog are dropped and counted.
"""

import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from .metrics import MetricsRegistry


@dataclass
class AlertResult:
    """Result of one alert command invocation."""
    args: List[str]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.error


class AlertRunner:
    """
    Fire-and-forget alert command executor.

    Args:
        command: Path of the alert executable
        metrics: MetricsRegistry for invocation counters
        max_concurrent: Maximum simultaneously running commands
        max_pending: Maximum running plus queued invocations; extra alerts are dropped
        timeout: Seconds before a running command is killed (None = no limit)
    """

    def __init__(self, command: str,
                 metrics: Optional[MetricsRegistry] = None,
                 max_concurrent: int = 8,
                 timeout: Optional[float] = 30.0,
                 max_pending: int = 1000):
        self.command = command
        self.metrics = metrics or MetricsRegistry()
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_concurrent), thread_name_prefix="Alert")
        # Running plus waiting invocations
        self._slots = threading.BoundedSemaphore(max(1, max_pending))
        logger.info(
            f"AlertRunner initialized (command={command}, max_concurrent={max_concurrent}, "
            f"max_pending={max_pending})"
        )

    def submit(self, args: List[str]) -> Optional[Future]:
        """
        Queue an invocation and return immediately.

        Returns:
            Future of the AlertResult, or None if the backlog is full and the
            alert was dropped
        """
        if not self._slots.acquire(blocking=False):
            self.metrics.inc("alerts_dropped_total")
            logger.warning(f"Alert backlog full - dropping alert {list(args)}")
            return None
        try:
            future = self._pool.submit(self.run, list(args))
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        return future

    def run(self, args: List[str]) -> AlertResult:
        """
        Run the alert command synchronously.

        Args:
            args: Positional arguments after the command

        Returns:
            AlertResult
        """
        cmd = [self.command] + list(args)
        logger.info(f"Running command: {cmd}")
        self.metrics.inc("alerts_run_total")

        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            self.metrics.inc("alert_failures_total")
            logger.error(f"Alert command timed out after {self.timeout}s: {cmd}")
            return AlertResult(args=cmd, returncode=None,
                               stdout=_text(e.stdout), stderr=_text(e.stderr),
                               error="timeout")
        except OSError as e:
            self.metrics.inc("alert_failures_total")
            logger.error(f"Error running alert command {cmd}: {e}")
            return AlertResult(args=cmd, returncode=None, error=str(e))

        result = AlertResult(
            args=cmd,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

        if result.returncode != 0:
            self.metrics.inc("alert_failures_total")
            logger.error(f"Alert command exited with status {result.returncode}: {cmd}")
            logger.error(f"stdout: {result.stdout}")
            logger.error(f"stderr: {result.stderr}")
        else:
            logger.info("Alert command ran successfully")
            if result.stdout:
                logger.info(result.stdout.rstrip())

        return result

    def close(self, wait: bool = True) -> None:
        """Stop accepting alerts, optionally waiting for running ones."""
        self._pool.shutdown(wait=wait)


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
