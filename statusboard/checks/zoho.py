"""Zoho CRM ping: refresh an access token, then read one lead."""

from __future__ import annotations

import httpx

from ..health.engine import CheckDefinition, CheckRunResult, Deadline
from ..secrets import SecretResolver
from .base import (
    HttpCheck,
    http_failure,
    invalid_response,
    not_configured,
    reachable,
    secret_unavailable,
)


class ZohoCrmCheck(HttpCheck):
    provider = "Zoho CRM"
    definition = CheckDefinition(
        key="zoho.crm",
        display_name="Zoho CRM API",
        category="CRM",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=2500,
    )

    def __init__(
        self,
        accounts_base_url: str,
        crm_base_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: str = "",
        refresh_token_ref: str = "",
        resolver: SecretResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport)
        self.accounts_base_url = (accounts_base_url or "").strip().rstrip("/")
        self.crm_base_url = (crm_base_url or "").strip().rstrip("/")
        self.client_id = (client_id or "").strip()
        self.client_secret = (client_secret or "").strip()
        self.refresh_token = (refresh_token or "").strip()
        self.refresh_token_ref = (refresh_token_ref or "").strip()
        self.resolver = resolver or SecretResolver()

    async def probe(self, deadline: Deadline, t0: float) -> CheckRunResult:
        if not (self.accounts_base_url and self.crm_base_url and self.client_id and self.client_secret):
            return not_configured(t0)

        refresh_token = self.refresh_token
        if not refresh_token and self.refresh_token_ref:
            refresh_token = self.resolver.resolve(self.refresh_token_ref) or ""
            if not refresh_token:
                return secret_unavailable(
                    t0,
                    "Stored token is unreadable",
                    "A Zoho refresh token exists in storage but could not be read on this host.",
                )
        if not refresh_token:
            return not_configured(t0, "Not connected")

        async with self.client(deadline) as client:
            token_resp = await client.post(
                f"{self.accounts_base_url}/oauth/v2/token",
                params={
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                },
            )
            if not token_resp.is_success:
                return http_failure("Zoho accounts", token_resp, t0)

            try:
                body = token_resp.json()
            except ValueError:
                body = {}
            access_token = body.get("access_token") if isinstance(body, dict) else None
            if not access_token:
                # Zoho answers 200 with {"error": "invalid_code"} for revoked tokens
                error = body.get("error") if isinstance(body, dict) else None
                return invalid_response(
                    token_resp, t0,
                    "Token refresh failed",
                    f"Zoho token response did not include an access token ({error or 'no error given'}).",
                )

            resp = await client.get(
                f"{self.crm_base_url}/Leads",
                params={"per_page": 1, "page": 1},
                headers={"Authorization": f"Zoho-oauthtoken {access_token}"},
            )

        if resp.is_success:
            return reachable(resp, t0)
        return http_failure(self.provider, resp, t0)
