from __future__ import annotations

import re
from typing import Optional, Pattern

import structlog

logger = structlog.get_logger(__name__)


class DomainAllowList:
    """
    Compiled form of the operator's ALLOWED_DOMAINS pattern.

    The pattern is compiled once, on first use, and kept for the lifetime of
    the object. An invalid pattern is logged and then matches nothing.
    """

    def __init__(self, pattern: Optional[str]) -> None:
        self.pattern = (pattern or "").strip()
        self._compiled: Optional[Pattern[str]] = None
        self._ready = False

    def _regex(self) -> Optional[Pattern[str]]:
        if not self._ready:
            self._ready = True
            if self.pattern:
                try:
                    self._compiled = re.compile(self.pattern, re.IGNORECASE)
                except re.error as ex:
                    logger.warning("allowed_domains.invalid_pattern", pattern=self.pattern, error=str(ex))
        return self._compiled

    def matches(self, fqdn: str) -> bool:
        regex = self._regex()
        if regex is None:
            return False
        return regex.search(fqdn) is not None
