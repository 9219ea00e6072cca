"""In-process verifier accepting mock passports, for development and tests."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from ...domain.models.claim import calculate_age
from ...domain.models.verification import VerifierConfig
from ...domain.ports.identity_verifier import IdentityVerifier, VerificationOutcome

logger = logging.getLogger(__name__)


class MockIdentityVerifier(IdentityVerifier):
    """Verifier that trusts mock proofs.

    A mock proof is ``{"isValid": bool, "credentialSubject": {...}}`` and
    the first public signal is the correlation token. The configured
    minimum age, nationality and excluded countries are still enforced and
    only the requested disclosures are returned, like the real verifier.
    """

    def __init__(self, provider_name: str = "Mock", today: Optional[date] = None):
        self._name = provider_name
        self._today = today
        self._initialized = False

    async def initialize(self) -> None:
        logger.warning("🎭 Mock identity verifier in use - proofs are not checked")
        self._initialized = True

    async def shutdown(self) -> None:
        self._initialized = False

    async def get_user_identifier(self, public_signals: List[str]) -> Optional[str]:
        if not public_signals:
            return None
        return str(public_signals[0]) or None

    async def verify(
        self,
        proof: Dict[str, Any],
        public_signals: List[str],
        config: VerifierConfig,
    ) -> VerificationOutcome:
        subject: Dict[str, Any] = dict(proof.get("credentialSubject") or {})
        details = {
            "isValidProof": bool(proof.get("isValid", True)),
            "isValidScope": bool(config.scope),
            "isValidMinimumAge": self._check_minimum_age(subject, config.minimum_age),
            "isValidNationality": (
                config.nationality is None or subject.get("nationality") == config.nationality
            ),
            "isValidExcludedCountries": subject.get("nationality") not in config.excluded_countries,
        }
        is_valid = all(details.values())

        disclosed = {
            name: value
            for name, value in subject.items()
            if config.disclosures.get(name, False)
        }
        return VerificationOutcome(
            is_valid=is_valid,
            credential_subject=disclosed if is_valid else {},
            is_valid_details=details,
        )

    def _check_minimum_age(self, subject: Dict[str, Any], minimum_age: Optional[int]) -> bool:
        if not minimum_age:
            return True
        date_of_birth = subject.get("date_of_birth")
        if not date_of_birth:
            return False
        try:
            today = self._today or datetime.now(timezone.utc).date()
            return calculate_age(date_of_birth, today) >= minimum_age
        except ValueError:
            return False

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def is_available(self) -> bool:
        return self._initialized
