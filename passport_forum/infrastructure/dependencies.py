"""Dependency injection configuration for hexagonal architecture."""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from ..domain.ports.identity_verifier import IdentityVerifier
from ..domain.services.publication_service import PublicationService
from .config import ForumConfig
from .persistence.sql_rewards import SQLRewardLedger
from .persistence.sql_store import SQLEntityStore
from .verifier.factory import VerifierFactory

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Service container for dependency injection."""

    def __init__(self, config: Optional[ForumConfig] = None):
        """Initialize service container.

        Args:
            config: Service configuration, read from the environment by default
        """
        self._config = config or ForumConfig.from_env()
        self._verifier_factory = VerifierFactory()
        self._services: Dict[str, Any] = {}
        self._setup_services()

    def _setup_services(self):
        """Setup services that need no I/O to construct."""
        logger.info("🔧 Setting up service container...")

        entity_store = SQLEntityStore(database_url=self._config.database_url)
        reward_ledger = SQLRewardLedger(entity_store.engine)

        # PublicationService needs an initialized verifier, created in startup()
        self._services = {
            "config": self._config,
            "entity_store": entity_store,
            "reward_ledger": reward_ledger,
            "publication_service": None,
        }

    async def _create_verifier(self) -> IdentityVerifier:
        logger.info(f"🪪 Setting up {self._config.verifier_provider} identity verifier...")
        return await self._verifier_factory.create_from_config(self._config)

    async def startup(self) -> None:
        """Create tables, initialize the verifier and build the pipeline."""
        if self._services["publication_service"] is not None:
            return

        entity_store: SQLEntityStore = self._services["entity_store"]
        await entity_store.initialize()
        verifier = await self._create_verifier()

        self._services["publication_service"] = PublicationService(
            store=entity_store,
            verifier=verifier,
            reward_ledger=self._services["reward_ledger"],
            settings=self._config.publication_settings(),
        )
        logger.info("✅ Service container setup completed")

    async def shutdown(self) -> None:
        """Release the verifier and the database engine."""
        logger.info("🔄 Shutting down service container...")
        service = self._services["publication_service"]
        if service is not None:
            await service.wait_for_rewards()
        await self._verifier_factory.shutdown_all()
        await self._services["entity_store"].shutdown()
        self._services["publication_service"] = None

    def get(self, service_name: str) -> Any:
        """Get a service by name.

        Raises:
            KeyError: If service not found
        """
        if service_name not in self._services:
            raise KeyError(f"Service '{service_name}' not found")
        return self._services[service_name]

    @property
    def config(self) -> ForumConfig:
        return self._config

    @property
    def verifier_factory(self) -> VerifierFactory:
        return self._verifier_factory

    def get_publication_service(self) -> PublicationService:
        """Get the publication pipeline.

        Raises:
            RuntimeError: If the container was not started
        """
        service = self.get("publication_service")
        if service is None:
            raise RuntimeError("Service container not started")
        return service


# Global service container instance
@lru_cache()
def get_service_container() -> ServiceContainer:
    """Get global service container instance."""
    return ServiceContainer()


# Convenience functions for FastAPI dependency injection
def get_publication_service() -> PublicationService:
    """FastAPI dependency for the publication pipeline."""
    return get_service_container().get_publication_service()


def get_config() -> ForumConfig:
    """FastAPI dependency for the service configuration."""
    return get_service_container().config
