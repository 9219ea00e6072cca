"""Protocol for external identity verifiers."""

from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, Field

from ..models.verification import VerifierConfig


class VerifierUnavailableError(Exception):
    """The verifier could not be reached or answered with garbage."""


class VerificationOutcome(BaseModel):
    """Untrusted result of a proof check by the external verifier."""

    is_valid: bool = Field(..., alias="isValid")
    credential_subject: Dict[str, Any] = Field(default_factory=dict, alias="credentialSubject")
    is_valid_details: Optional[Union[Dict[str, Any], str]] = Field(None, alias="isValidDetails")

    class Config:
        """Pydantic model configuration."""
        frozen = True
        populate_by_name = True


class IdentityVerifier(Protocol):
    """Protocol defining the interface for identity verifiers."""

    async def initialize(self) -> None:
        """Initialize the verifier."""
        ...

    async def shutdown(self) -> None:
        """Clean up resources."""
        ...

    async def get_user_identifier(self, public_signals: List[str]) -> Optional[str]:
        """Extract the correlation token embedded in the proof's public signals."""
        ...

    async def verify(
        self,
        proof: Dict[str, Any],
        public_signals: List[str],
        config: VerifierConfig,
    ) -> VerificationOutcome:
        """Check a proof under the given configuration."""
        ...

    @property
    def provider_name(self) -> str:
        """Get the verifier name."""
        ...

    @property
    def is_available(self) -> bool:
        """Check if the verifier is ready."""
        ...
