"""Companies House (company registry) search ping."""

from __future__ import annotations

import httpx

from ..health.engine import CheckDefinition, CheckRunResult, Deadline
from .base import HttpCheck, http_failure, not_configured, reachable


class CompaniesHousePingCheck(HttpCheck):
    provider = "Companies House"
    definition = CheckDefinition(
        key="companieshouse.ping",
        display_name="Companies House API",
        category="Company Data",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=2000,
    )

    def __init__(
        self,
        api_key: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport)
        self.api_key = (api_key or "").strip()
        self.base_url = (base_url or "").strip().rstrip("/")

    async def probe(self, deadline: Deadline, t0: float) -> CheckRunResult:
        if not self.api_key or not self.base_url:
            return not_configured(t0)

        # API key goes in the basic-auth username with an empty password
        async with self.client(deadline) as client:
            resp = await client.get(
                f"{self.base_url}/search/companies",
                params={"q": "limited", "items_per_page": 1},
                auth=(self.api_key, ""),
                headers={"Accept": "application/json"},
            )

        if resp.is_success:
            return reachable(resp, t0)
        return http_failure(self.provider, resp, t0)
