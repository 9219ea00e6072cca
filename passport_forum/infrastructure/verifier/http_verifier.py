"""HTTP adapter for a remote proof verification service."""

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from cachetools import TTLCache
from pydantic import BaseModel, Field, ValidationError

from ...domain.models.verification import VerifierConfig
from ...domain.ports.identity_verifier import (
    IdentityVerifier,
    VerificationOutcome,
    VerifierUnavailableError,
)

logger = logging.getLogger(__name__)


class HTTPVerifierConfig(BaseModel):
    """Configuration for the HTTP verifier adapter."""

    base_url: str = Field(default="http://localhost:3001", description="Verification service URL")
    timeout: float = Field(default=10.0, description="Request timeout in seconds")
    cache_ttl: int = Field(default=300, description="Outcome cache TTL in seconds")
    cache_maxsize: int = Field(default=1000, description="Maximum cached outcomes")


class HTTPIdentityVerifier(IdentityVerifier):
    """Identity verifier backed by a remote verification service.

    The service exposes ``POST /identifier`` to extract the correlation
    token from public signals and ``POST /verify`` to check a proof.
    Outcomes are cached per (proof, signals, config) so a replayed
    callback does not trigger a second remote check.
    """

    def __init__(
        self,
        config: Optional[HTTPVerifierConfig] = None,
        provider_name: str = "HTTP",
    ):
        """Initialize the adapter.

        Args:
            config: Adapter configuration
            provider_name: Name of the verifier
        """
        self._config = config or HTTPVerifierConfig()
        self._name = provider_name
        self._client: Optional[httpx.AsyncClient] = None
        self._initialized = False
        self._cache = TTLCache(
            maxsize=self._config.cache_maxsize,
            ttl=self._config.cache_ttl,
        )

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout,
            )
        self._initialized = True

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._initialized = False
        self._cache.clear()

    async def get_user_identifier(self, public_signals: List[str]) -> Optional[str]:
        """Ask the service for the identifier embedded in the public signals."""
        data = await self._post("/identifier", {"publicSignals": public_signals, "userIdType": "uuid"})
        identifier = data.get("userIdentifier")
        return str(identifier) if identifier else None

    async def verify(
        self,
        proof: Dict[str, Any],
        public_signals: List[str],
        config: VerifierConfig,
    ) -> VerificationOutcome:
        """Check a proof remotely.

        Raises:
            VerifierUnavailableError: On transport errors, error statuses or
                an unreadable response
        """
        payload = {
            "proof": proof,
            "publicSignals": public_signals,
            "config": config.to_wire(),
        }
        cache_key = self._cache_key(payload)
        if cache_key in self._cache:
            logger.debug(f"Verification outcome cache hit for {config.correlation_token}")
            return self._cache[cache_key]

        data = await self._post("/verify", payload)
        try:
            outcome = VerificationOutcome.model_validate(data)
        except ValidationError as e:
            raise VerifierUnavailableError(f"Unexpected verifier response: {e}")

        self._cache[cache_key] = outcome
        return outcome

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._initialized or self._client is None:
            raise VerifierUnavailableError("Verifier not initialized")
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise VerifierUnavailableError(
                f"Verifier returned {e.response.status_code} for {path}"
            )
        except (httpx.HTTPError, ValueError) as e:
            raise VerifierUnavailableError(f"Verifier request to {path} failed: {e}")

        if not isinstance(data, dict):
            raise VerifierUnavailableError(f"Verifier returned a non-object body for {path}")
        return data

    @staticmethod
    def _cache_key(payload: Dict[str, Any]) -> str:
        encoded = json.dumps(payload, sort_keys=True, default=str).encode()
        return hashlib.sha256(encoded).hexdigest()

    @property
    def provider_name(self) -> str:
        """Get the verifier name."""
        return self._name

    @property
    def is_available(self) -> bool:
        """Check if the verifier is ready."""
        return self._initialized and self._client is not None
