"""Domain model for an author's disclosure preferences."""

from typing import Dict, List, Tuple

from pydantic import BaseModel

# Attributes a verifier may disclose, in display order.
DISCLOSABLE_ATTRIBUTES: Tuple[str, ...] = (
    "nationality",
    "gender",
    "issuing_state",
    "name",
    "date_of_birth",
    "expiry_date",
    "passport_number",
)

NOT_DISCLOSED = "Not disclosed"


class DisclosurePreferences(BaseModel):
    """Which claim attributes may ever be persisted or shown publicly."""

    nationality: bool = False
    gender: bool = False
    issuing_state: bool = False
    name: bool = False
    date_of_birth: bool = False
    expiry_date: bool = False
    passport_number: bool = False

    class Config:
        """Pydantic model configuration."""
        frozen = True
        extra = "ignore"

    def is_disclosed(self, attribute: str) -> bool:
        return bool(getattr(self, attribute, False))

    @property
    def enabled(self) -> List[str]:
        """Names of the attributes the author chose to disclose."""
        return [name for name in DISCLOSABLE_ATTRIBUTES if self.is_disclosed(name)]

    def as_flags(self) -> Dict[str, bool]:
        return {name: self.is_disclosed(name) for name in DISCLOSABLE_ATTRIBUTES}
