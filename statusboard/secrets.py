"""Credential reference resolution.

A reference is a pointer to where a secret lives rather than the secret
itself. Supported forms:

  env:NAME         value of environment variable NAME
  file:/some/path  first line of a file readable on this host

Resolution failures are not exceptions: the caller gets ``None`` and decides
whether that means "not configured" or "configured but unreadable here".
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class SecretResolver:
    """Resolves ``env:`` and ``file:`` secret references."""

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def resolve(self, reference: str) -> str | None:
        ref = (reference or "").strip()
        if not ref:
            return None

        scheme, _, target = ref.partition(":")
        target = target.strip()
        if not target:
            logger.warning("Malformed secret reference: %r", ref)
            return None

        if scheme == "env":
            value = self._environ.get(target, "").strip()
            return value or None

        if scheme == "file":
            try:
                text = Path(target).read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Secret file unreadable (%s): %s", target, e)
                return None
            value = text.strip().splitlines()[0].strip() if text.strip() else ""
            return value or None

        logger.warning("Unsupported secret reference scheme: %s", scheme)
        return None
