"""SendGrid (transactional email) profile check."""

from __future__ import annotations

import httpx

from ..health.engine import CheckDefinition, CheckRunResult, Deadline
from .base import HttpCheck, http_failure, not_configured, reachable


class SendGridProfileCheck(HttpCheck):
    """GET /v3/user/profile with the configured API key."""

    provider = "SendGrid"
    definition = CheckDefinition(
        key="sendgrid.profile",
        display_name="SendGrid API",
        category="Email",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=2000,
    )

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.sendgrid.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport)
        self.api_key = (api_key or "").strip()
        self.base_url = (base_url or "").strip().rstrip("/")

    async def probe(self, deadline: Deadline, t0: float) -> CheckRunResult:
        if not self.api_key or not self.base_url:
            return not_configured(t0)

        async with self.client(deadline) as client:
            resp = await client.get(
                f"{self.base_url}/v3/user/profile",
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

        if resp.is_success:
            return reachable(resp, t0)
        return http_failure(self.provider, resp, t0)
