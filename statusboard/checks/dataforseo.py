"""DataForSEO (SERP / keyword data) account check."""

from __future__ import annotations

import httpx

from ..health.engine import CheckDefinition, CheckRunResult, Deadline
from .base import HttpCheck, http_failure, invalid_response, not_configured, reachable

# DataForSEO wraps every reply in an envelope; 20000 means "Ok."
_OK_STATUS = 20000


class DataForSeoAccountCheck(HttpCheck):
    provider = "DataForSEO"
    definition = CheckDefinition(
        key="dataforseo.account",
        display_name="DataForSEO Account",
        category="SERP Data",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=2500,
    )

    def __init__(
        self,
        login: str,
        password: str,
        base_url: str = "https://api.dataforseo.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport)
        self.login = (login or "").strip()
        self.password = (password or "").strip()
        self.base_url = (base_url or "").strip().rstrip("/")

    async def probe(self, deadline: Deadline, t0: float) -> CheckRunResult:
        if not self.login or not self.password or not self.base_url:
            return not_configured(t0)

        async with self.client(deadline) as client:
            resp = await client.get(
                f"{self.base_url}/v3/appendix/user_data",
                auth=(self.login, self.password),
            )

        if not resp.is_success:
            return http_failure(self.provider, resp, t0)

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or body.get("status_code") != _OK_STATUS:
            status_message = body.get("status_message") if isinstance(body, dict) else None
            return invalid_response(
                resp, t0,
                "Unexpected response",
                f"DataForSEO status: {status_message or 'missing envelope'}.",
            )
        return reachable(resp, t0)
