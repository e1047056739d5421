"""Google checks: Places key presence and Business Profile OAuth refresh."""

from __future__ import annotations

import time

import httpx

from ..health.engine import CheckDefinition, CheckExecutor, CheckRunResult, Deadline, Status
from ..secrets import SecretResolver
from .base import (
    HttpCheck,
    elapsed_ms,
    http_failure,
    invalid_response,
    not_configured,
    secret_unavailable,
)


class GooglePlacesConfigCheck(CheckExecutor):
    """Configuration-only check: Up when a Places API key is set."""

    definition = CheckDefinition(
        key="google.places.config",
        display_name="Google Places Configuration",
        category="Google",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=None,
    )

    def __init__(self, api_key: str) -> None:
        self.api_key = (api_key or "").strip()

    def execute(self, deadline: Deadline) -> CheckRunResult:
        t0 = time.perf_counter()
        if not self.api_key:
            return not_configured(t0)
        return CheckRunResult(status=Status.UP, latency_ms=elapsed_ms(t0), message="Configured")


class GoogleOAuthCheck(HttpCheck):
    """Exchanges the stored refresh token for an access token."""

    provider = "Google OAuth"
    definition = CheckDefinition(
        key="google.oauth",
        display_name="Google OAuth Token Refresh",
        category="Google",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=2500,
    )

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str = "",
        refresh_token_ref: str = "",
        token_url: str = "https://oauth2.googleapis.com/token",
        resolver: SecretResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport)
        self.client_id = (client_id or "").strip()
        self.client_secret = (client_secret or "").strip()
        self.refresh_token = (refresh_token or "").strip()
        self.refresh_token_ref = (refresh_token_ref or "").strip()
        self.token_url = (token_url or "").strip()
        self.resolver = resolver or SecretResolver()

    def _resolve_refresh_token(self) -> str:
        if self.refresh_token:
            return self.refresh_token
        if self.refresh_token_ref:
            return self.resolver.resolve(self.refresh_token_ref) or ""
        return ""

    async def probe(self, deadline: Deadline, t0: float) -> CheckRunResult:
        refresh_token = self._resolve_refresh_token()
        if not self.client_id or not self.client_secret or not refresh_token:
            if self.client_id and self.client_secret and self.refresh_token_ref and not refresh_token:
                return secret_unavailable(
                    t0,
                    "Stored token is unreadable",
                    "Google OAuth refresh token appears to exist but could not be read on this host.",
                )
            return not_configured(t0)

        async with self.client(deadline) as client:
            resp = await client.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if not resp.is_success:
            return http_failure(self.provider, resp, t0)

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token.strip():
            return invalid_response(
                resp, t0,
                "Token refresh failed",
                "Google OAuth response did not include an access token.",
            )

        return CheckRunResult(
            status=Status.UP,
            latency_ms=elapsed_ms(t0),
            message="Token refresh succeeded",
            http_status_code=resp.status_code,
        )
