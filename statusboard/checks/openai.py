"""OpenAI (LLM provider) configuration check."""

from __future__ import annotations

import time

from ..health.engine import CheckDefinition, CheckExecutor, CheckRunResult, Deadline, Status
from ..secrets import SecretResolver
from .base import elapsed_ms, not_configured, secret_unavailable


class OpenAIConfigCheck(CheckExecutor):
    """Up when an API key (plain or via reference) and a base URL are available."""

    definition = CheckDefinition(
        key="openai.config",
        display_name="OpenAI Configuration",
        category="AI",
        interval_seconds=300,
        timeout_seconds=10,
        degraded_threshold_ms=None,
    )

    def __init__(
        self,
        api_key: str = "",
        api_key_ref: str = "",
        base_url: str = "https://api.openai.com/v1",
        resolver: SecretResolver | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.api_key_ref = (api_key_ref or "").strip()
        self.base_url = (base_url or "").strip()
        self.resolver = resolver or SecretResolver()

    def execute(self, deadline: Deadline) -> CheckRunResult:
        t0 = time.perf_counter()
        key = self.api_key
        if not key and self.api_key_ref:
            key = self.resolver.resolve(self.api_key_ref) or ""

        if not self.base_url or not key:
            if self.api_key_ref and not key:
                return secret_unavailable(
                    t0,
                    "Stored key is unreadable",
                    "An OpenAI key reference is configured but could not be read on this host.",
                )
            return not_configured(t0)

        return CheckRunResult(status=Status.UP, latency_ms=elapsed_ms(t0), message="Configured")
