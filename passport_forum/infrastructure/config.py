"""Service configuration loaded from the environment."""

import logging
import os
from typing import List

from pydantic import BaseModel

from ..domain.models.restriction import MissingAttributePolicy
from ..domain.services.publication_service import PublicationSettings

logger = logging.getLogger(__name__)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class ForumConfig(BaseModel):
    """Configuration for the forum verification service."""

    database_url: str = "sqlite+aiosqlite:///./passport_forum.db"
    verifier_provider: str = "http"  # 'http' or 'mock'
    verifier_base_url: str = "http://localhost:3001"
    verifier_timeout: float = 10.0
    verifier_cache_ttl: int = 300
    post_scope: str = "self-sphere-post"
    comment_scope: str = "self-sphere-comment"
    verify_post_endpoint: str = "http://localhost:8000/verify/post"
    verify_comment_endpoint: str = "http://localhost:8000/verify/comment"
    mock_passport: bool = False
    missing_attribute_policy: MissingAttributePolicy = MissingAttributePolicy.DENY
    pending_ttl_seconds: int = 900
    cors_origins: List[str] = ["*"]

    @classmethod
    def from_env(cls) -> "ForumConfig":
        """Create configuration from environment variables."""
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        config = cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            verifier_provider=os.getenv("VERIFIER_PROVIDER", defaults.verifier_provider).lower(),
            verifier_base_url=os.getenv("VERIFIER_BASE_URL", defaults.verifier_base_url),
            verifier_timeout=float(os.getenv("VERIFIER_TIMEOUT", defaults.verifier_timeout)),
            verifier_cache_ttl=int(os.getenv("VERIFIER_CACHE_TTL", defaults.verifier_cache_ttl)),
            post_scope=os.getenv("POST_SCOPE", defaults.post_scope),
            comment_scope=os.getenv("COMMENT_SCOPE", defaults.comment_scope),
            verify_post_endpoint=os.getenv("VERIFY_POST_ENDPOINT", defaults.verify_post_endpoint),
            verify_comment_endpoint=os.getenv("VERIFY_COMMENT_ENDPOINT", defaults.verify_comment_endpoint),
            mock_passport=_flag("MOCK_PASSPORT"),
            missing_attribute_policy=os.getenv(
                "MISSING_ATTRIBUTE_POLICY", defaults.missing_attribute_policy.value
            ).lower(),
            pending_ttl_seconds=int(os.getenv("PENDING_TTL_SECONDS", defaults.pending_ttl_seconds)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else ["*"],
        )

        if config.missing_attribute_policy == MissingAttributePolicy.ALLOW:
            logger.warning("⚠️ Restrictions fail open: undisclosed attributes skip their predicate")
        if config.mock_passport:
            logger.warning("⚠️ Mock passports are accepted by the verifier")
        logger.info(f"🔧 Verifier provider: {config.verifier_provider}, database: {config.database_url.split('://')[0]}")
        return config

    def publication_settings(self) -> PublicationSettings:
        """Settings for the publication pipeline."""
        return PublicationSettings(
            post_scope=self.post_scope,
            comment_scope=self.comment_scope,
            post_endpoint=self.verify_post_endpoint,
            comment_endpoint=self.verify_comment_endpoint,
            mock_passport=self.mock_passport,
            missing_attribute_policy=self.missing_attribute_policy,
        )
