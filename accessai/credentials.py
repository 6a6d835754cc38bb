"""Credential suppliers for the realtime session."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .config import CREDENTIAL_TIMEOUT, OPENAI_API_KEY


@dataclass
class CredentialResult:
    success: bool
    token: str = ""
    error: str = ""


class CredentialSupplier:
    """Produces a token for the streaming service, bounded by a timeout."""

    def __init__(self, timeout: float = CREDENTIAL_TIMEOUT, logger=None):
        self.timeout = timeout
        self.logger = logger or logging.getLogger("AccessAI.CredentialSupplier")

    async def _fetch(self) -> CredentialResult:
        raise NotImplementedError

    async def fetch(self) -> CredentialResult:
        try:
            return await asyncio.wait_for(self._fetch(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"Credential request timed out after {self.timeout}s")
            return CredentialResult(False, error="Credential request timed out")


class EnvCredentialSupplier(CredentialSupplier):
    """Reads the API key from configuration."""

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else OPENAI_API_KEY

    async def _fetch(self) -> CredentialResult:
        if not self.api_key:
            return CredentialResult(False, error="OPENAI_API_KEY environment variable not set")
        return CredentialResult(True, token=self.api_key)


class CallableCredentialSupplier(CredentialSupplier):
    """Wraps a coroutine function that returns a token (e.g. from a relay)."""

    def __init__(self, fetch_token: Callable[[], Awaitable[str]], **kwargs):
        super().__init__(**kwargs)
        self.fetch_token = fetch_token

    async def _fetch(self) -> CredentialResult:
        try:
            token = await self.fetch_token()
        except Exception as exc:
            self.logger.error(f"Credential fetch failed: {exc}")
            return CredentialResult(False, error=str(exc))
        if not token:
            return CredentialResult(False, error="Empty credential")
        return CredentialResult(True, token=token)
