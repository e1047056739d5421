"""Shared building blocks for check plugins.

HTTP plugins subclass ``HttpCheck`` and implement ``probe``; transport-level
failures (connect errors, httpx timeouts) are mapped to results here so
plugins only deal with responses.
"""

from __future__ import annotations

import time
from abc import abstractmethod

import httpx

from ..health.engine import CheckExecutor, CheckRunResult, Deadline, ErrorCode, Status


def elapsed_ms(t0: float) -> int:
    return max(0, int((time.perf_counter() - t0) * 1000))


def not_configured(t0: float, message: str = "Not configured") -> CheckRunResult:
    """Prerequisite configuration absent: not applicable, not a failure."""
    return CheckRunResult(status=Status.UNKNOWN, latency_ms=elapsed_ms(t0), message=message)


def secret_unavailable(t0: float, message: str, detail: str) -> CheckRunResult:
    """A credential reference exists but cannot be resolved on this host."""
    return CheckRunResult(
        status=Status.DOWN,
        latency_ms=elapsed_ms(t0),
        message=message,
        error_code=ErrorCode.SECRET_UNAVAILABLE.value,
        error_detail=detail,
    )


def reachable(response: httpx.Response, t0: float, message: str = "Reachable") -> CheckRunResult:
    return CheckRunResult(
        status=Status.UP,
        latency_ms=elapsed_ms(t0),
        message=message,
        http_status_code=response.status_code,
    )


def invalid_response(
    response: httpx.Response, t0: float, message: str, detail: str,
) -> CheckRunResult:
    """2xx reply whose payload failed a required check."""
    return CheckRunResult(
        status=Status.DOWN,
        latency_ms=elapsed_ms(t0),
        message=message,
        raw_message=response.text,
        http_status_code=response.status_code,
        error_code=ErrorCode.INVALID_RESPONSE.value,
        error_detail=detail,
    )


def http_failure(provider: str, response: httpx.Response, t0: float) -> CheckRunResult:
    """Map a non-2xx response: 429 degrades, auth failures and the rest are down."""
    code = response.status_code
    if code == 429:
        status, error_code, message = Status.DEGRADED, ErrorCode.HTTP_FAILURE, "Rate limited (HTTP 429)"
    elif code in (401, 403):
        status, error_code, message = Status.DOWN, ErrorCode.AUTHENTICATION_FAILURE, "Authentication failed"
    else:
        status, error_code, message = Status.DOWN, ErrorCode.HTTP_FAILURE, f"HTTP {code}"

    return CheckRunResult(
        status=status,
        latency_ms=elapsed_ms(t0),
        message=message,
        raw_message=response.text,
        http_status_code=code,
        error_code=error_code.value,
        error_detail=f"{provider} returned HTTP {code}.",
    )


class HttpCheck(CheckExecutor):
    """Base for plugins that verify a provider with an HTTP round trip."""

    provider: str = "Upstream"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport  # injectable for tests

    def client(self, deadline: Deadline) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=max(deadline.remaining(), 0.1),
            transport=self._transport,
            follow_redirects=True,
        )

    async def execute(self, deadline: Deadline) -> CheckRunResult:
        t0 = time.perf_counter()
        try:
            return await self.probe(deadline, t0)
        except httpx.TimeoutException as e:
            return CheckRunResult(
                status=Status.DOWN,
                latency_ms=elapsed_ms(t0),
                message="Timed out",
                error_code=ErrorCode.TIMEOUT.value,
                error_detail=f"{self.provider} request timed out: {type(e).__name__}",
            )
        except httpx.TransportError as e:
            return CheckRunResult(
                status=Status.DOWN,
                latency_ms=elapsed_ms(t0),
                message="Connection error",
                error_code=ErrorCode.HTTP_FAILURE.value,
                error_detail=f"{self.provider} unreachable: {type(e).__name__}: {e}",
            )

    @abstractmethod
    async def probe(self, deadline: Deadline, t0: float) -> CheckRunResult:
        ...
