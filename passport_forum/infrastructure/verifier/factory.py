"""Registry building identity verifiers from the service configuration."""

import logging
from typing import Any, Callable, Dict, Optional

from ...domain.ports.identity_verifier import IdentityVerifier
from ..config import ForumConfig
from .http_verifier import HTTPIdentityVerifier, HTTPVerifierConfig
from .mock_verifier import MockIdentityVerifier

logger = logging.getLogger(__name__)

# Builds the constructor arguments of an adapter from the service configuration
OptionsBuilder = Callable[[ForumConfig], Dict[str, Any]]


def _http_options(config: ForumConfig) -> Dict[str, Any]:
    return {
        "config": HTTPVerifierConfig(
            base_url=config.verifier_base_url,
            timeout=config.verifier_timeout,
            cache_ttl=config.verifier_cache_ttl,
        )
    }


def _no_options(config: ForumConfig) -> Dict[str, Any]:
    return {}


class VerifierFactory:
    """Creates, tracks and shuts down identity verifiers.

    Each registered adapter comes with an options builder, so the adapter
    selected by ``VERIFIER_PROVIDER`` is built without the caller knowing
    its settings.
    """

    def __init__(self):
        self._registry: Dict[str, tuple] = {}
        self._active: Dict[str, IdentityVerifier] = {}

        self.register_verifier("http", HTTPIdentityVerifier, _http_options)
        self.register_verifier("mock", MockIdentityVerifier)

    def register_verifier(
        self,
        name: str,
        verifier_class: Callable[..., IdentityVerifier],
        options: Optional[OptionsBuilder] = None,
    ) -> None:
        """Register an adapter under ``name``.

        Raises:
            ValueError: If the name is taken
        """
        if name in self._registry:
            raise ValueError(f"Verifier {name} already registered")
        self._registry[name] = (verifier_class, options or _no_options)

    async def create_from_config(self, config: ForumConfig) -> IdentityVerifier:
        """Create and initialize the adapter named by ``config.verifier_provider``."""
        name = config.verifier_provider
        if name not in self._registry:
            raise ValueError(f"Verifier {name} not registered")
        _, options = self._registry[name]
        return await self.create_verifier(name, **options(config))

    async def create_verifier(self, name: str, **options) -> IdentityVerifier:
        """Create and initialize an adapter with explicit constructor options.

        Raises:
            ValueError: If the verifier is not registered
            RuntimeError: If initialization fails
        """
        if name not in self._registry:
            raise ValueError(f"Verifier {name} not registered")

        verifier_class, _ = self._registry[name]
        verifier = verifier_class(**options)
        try:
            await verifier.initialize()
        except Exception as e:
            raise RuntimeError(f"Failed to initialize verifier {name}: {e}") from e

        self._active[name] = verifier
        logger.info(f"🪪 {verifier.provider_name} identity verifier ready")
        return verifier

    def get_verifier(self, name: str) -> Optional[IdentityVerifier]:
        return self._active.get(name)

    async def shutdown_all(self) -> None:
        """Shut down every active verifier."""
        while self._active:
            _, verifier = self._active.popitem()
            await verifier.shutdown()

    @property
    def available_verifiers(self) -> Dict[str, bool]:
        """Registered verifiers and whether an instance is active."""
        return {name: name in self._active for name in self._registry}
