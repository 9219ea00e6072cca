"""Domain models for verifier configuration and verification sessions."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .entity import EntityKind


class VerifierConfig(BaseModel):
    """Constraints and disclosures handed to the external verifier.

    The same config is embedded in the QR code request at creation time and
    rebuilt from the stored entity when the callback arrives.
    """

    scope: str = Field(..., description="Application scope registered with the verifier")
    endpoint: str = Field(..., description="Callback endpoint the verifier posts proofs to")
    correlation_token: str = Field(..., alias="correlationToken")
    user_id_type: str = Field(default="uuid", alias="userIdType")
    minimum_age: Optional[int] = Field(None, alias="minimumAge")
    excluded_countries: List[str] = Field(default_factory=list, alias="excludedCountries")
    nationality: Optional[str] = Field(None, description="Single allow-listed nationality")
    ofac: bool = False
    disclosures: Dict[str, bool] = Field(default_factory=dict)
    mock_passport: bool = Field(default=False, alias="mockPassport")

    class Config:
        """Pydantic model configuration."""
        frozen = True
        populate_by_name = True

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the verifier's camelCase field names."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def options_summary(self) -> Dict[str, Any]:
        """The enforced options echoed back to clients after a callback."""
        return {
            "minimumAge": self.minimum_age,
            "ofac": self.ofac,
            "excludedCountries": list(self.excluded_countries),
            "nationality": self.nationality,
        }


class VerificationSession(BaseModel):
    """Handle for one outstanding verification attempt.

    Created once when a draft advances to verification; the correlation
    token doubles as the pending entity's identifier.
    """

    entity_kind: EntityKind
    correlation_token: str
    config: VerifierConfig

    class Config:
        """Pydantic model configuration."""
        frozen = True
