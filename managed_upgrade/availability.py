"""Checks that external dependencies are reachable before an upgrade."""

from __future__ import annotations

import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

import requests

DEFAULT_HTTP_TIMEOUT = 15

T = TypeVar("T")


class AvailabilityError(Exception):
    """An external dependency was found unavailable."""


class StopRetry(Exception):
    """Wraps an error that must not be retried."""

    def __init__(self, error: BaseException) -> None:
        super().__init__(str(error))
        self.error = error


@dataclass
class HTTPTargets:
    """HTTP endpoints to check and the per-request timeout in seconds."""

    timeout: int = DEFAULT_HTTP_TIMEOUT
    urls: list[str] = field(default_factory=list)


@dataclass
class ExtDependencyAvailabilityCheck:
    """Configuration of the external dependency checks."""

    http: HTTPTargets = field(default_factory=HTTPTargets)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ExtDependencyAvailabilityCheck":
        http = (data or {}).get("http") or {}
        timeout = http.get("timeout")
        return cls(
            http=HTTPTargets(
                timeout=DEFAULT_HTTP_TIMEOUT if timeout is None else int(timeout),
                urls=[str(url) for url in http.get("urls") or []],
            )
        )

    def timeout(self) -> timedelta:
        return timedelta(seconds=self.http.timeout)


@dataclass
class HTTPConfig:
    """Targets and timeout for an HTTP checker."""

    targets: list[str] = field(default_factory=list)
    timeout: timedelta = field(default_factory=timedelta)


def retry(attempts: int, sleep: Union[float, timedelta], func: Callable[[], T]) -> T:
    """Call ``func`` up to ``attempts`` times, backing off between tries.

    Each pause gets a random jitter of up to half its length and the
    next pause is twice as long. A ``StopRetry`` ends the loop at once
    and its wrapped error is raised.
    """
    delay = sleep.total_seconds() if isinstance(sleep, timedelta) else float(sleep)
    while True:
        try:
            return func()
        except StopRetry as stop:
            raise stop.error from None
        except Exception:
            attempts -= 1
            if attempts <= 0:
                raise
        jitter = random.uniform(0, delay)
        delay += jitter / 2
        time.sleep(delay)
        delay *= 2


@dataclass
class HTTPAvailabilityChecker:
    """Checks that every target URL answers without an error status."""

    targets: list[str] = field(default_factory=list)
    timeout: timedelta = field(default_factory=timedelta)
    attempts: int = 3
    retry_sleep: float = 1.0

    def availability_check(self) -> None:
        """Check all targets concurrently; raise the first failure found."""
        if not self.targets:
            return
        with ThreadPoolExecutor(max_workers=len(self.targets)) as pool:
            outcomes = list(pool.map(self._check_target, self.targets))
        for error in outcomes:
            if error is not None:
                raise error

    def _check_target(self, url: str) -> Optional[AvailabilityError]:
        try:
            retry(self.attempts, self.retry_sleep, lambda: self._probe(url))
        except AvailabilityError as exc:
            return exc
        return None

    def _probe(self, url: str) -> None:
        timeout = self.timeout.total_seconds() or None
        try:
            response = requests.get(url, timeout=timeout)
        except requests.RequestException as exc:
            raise AvailabilityError(f"client request error for {url}: {exc}") from exc
        status = response.status_code
        response.close()
        if status >= 500:
            raise AvailabilityError(f"server error for {url}: {status}")
        if status >= 400:
            raise StopRetry(AvailabilityError(f"client error for {url}: {status}"))


def get_http_availability_checker(config: object) -> HTTPAvailabilityChecker:
    """Build an HTTP checker from an ``HTTPConfig``."""
    if not isinstance(config, HTTPConfig):
        raise TypeError("Attempt to get HTTP implementation failed ascertation as HTTPConfig")
    return HTTPAvailabilityChecker(targets=list(config.targets), timeout=config.timeout)


def get_availability_checkers(config: ExtDependencyAvailabilityCheck) -> list[HTTPAvailabilityChecker]:
    """All checkers that the configuration asks for."""
    checkers: list[HTTPAvailabilityChecker] = []
    if config.http.urls:
        checkers.append(
            get_http_availability_checker(
                HTTPConfig(targets=list(config.http.urls), timeout=config.timeout())
            )
        )
    return checkers