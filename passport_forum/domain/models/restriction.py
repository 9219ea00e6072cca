"""Domain models for comment restrictions and eligibility decisions."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator

from .claim import Gender

COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


class NationalityMode(str, Enum):
    """How the nationality country set is applied."""

    INCLUDE = "include"  # Only listed nationalities may comment
    EXCLUDE = "exclude"  # Listed nationalities may not comment


class MissingAttributePolicy(str, Enum):
    """What an active predicate does when the claim lacks its attribute."""

    ALLOW = "allow"  # Predicate is skipped (fail open)
    DENY = "deny"  # Predicate denies (fail closed)


class DenialReason(str, Enum):
    """Why a commenter was found ineligible."""

    NATIONALITY_NOT_ALLOWED = "NationalityNotAllowed"
    GENDER_MISMATCH = "GenderMismatch"
    AGE_BELOW_MINIMUM = "AgeBelowMinimum"
    ISSUING_STATE_MISMATCH = "IssuingStateMismatch"
    ATTRIBUTE_NOT_DISCLOSED = "AttributeNotDisclosed"


class NationalityRule(BaseModel):
    """Nationality predicate: a mode plus a set of ISO-3166 alpha-3 codes."""

    mode: NationalityMode = NationalityMode.INCLUDE
    countries: FrozenSet[str] = Field(..., description="Country codes the rule applies to")

    class Config:
        """Pydantic model configuration."""
        frozen = True

    @field_validator("countries", mode="before")
    @classmethod
    def _normalize_countries(cls, value):
        if isinstance(value, str):
            value = [value]
        codes = frozenset(str(code).strip().upper() for code in value or [])
        if not codes:
            raise ValueError("Nationality restriction needs at least one country")
        invalid = sorted(code for code in codes if not COUNTRY_CODE_PATTERN.match(code))
        if invalid:
            raise ValueError(f"Invalid ISO-3166 alpha-3 codes: {', '.join(invalid)}")
        return codes

    @property
    def single_allowed_country(self) -> Optional[str]:
        """The allow-listed country when the rule is a one-country include list."""
        if self.mode == NationalityMode.INCLUDE and len(self.countries) == 1:
            return next(iter(self.countries))
        return None


class CommentRestriction(BaseModel):
    """Eligibility rule set a post author attaches to the comment section.

    A field's presence means the predicate is active; all active
    predicates must pass.
    """

    nationality: Optional[NationalityRule] = None
    gender: Optional[Gender] = None
    minimum_age: Optional[int] = Field(None, alias="minimumAge", ge=0)
    issuing_state: Optional[str] = None

    class Config:
        """Pydantic model configuration."""
        frozen = True
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "nationality": {"mode": "include", "countries": ["USA"]},
                "minimumAge": 18,
            }
        }

    @field_validator("gender", mode="before")
    @classmethod
    def _empty_gender(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("issuing_state", mode="before")
    @classmethod
    def _normalize_state(cls, value):
        if isinstance(value, str):
            value = value.strip().upper()
            return value or None
        return value

    @property
    def age_enabled(self) -> bool:
        return bool(self.minimum_age and self.minimum_age > 0)

    @property
    def is_empty(self) -> bool:
        """True when no predicate is active."""
        return (
            self.nationality is None
            and self.gender is None
            and not self.age_enabled
            and self.issuing_state is None
        )

    @property
    def required_attributes(self) -> List[str]:
        """Claim attributes the verifier must disclose to evaluate this restriction."""
        required = []
        if self.nationality is not None:
            required.append("nationality")
        if self.gender is not None:
            required.append("gender")
        if self.age_enabled:
            required.append("date_of_birth")
        if self.issuing_state is not None:
            required.append("issuing_state")
        return required

    def to_storage(self) -> Optional[Dict[str, Any]]:
        """Serialize to the stored allowed_commenters JSON, None when empty."""
        if self.is_empty:
            return None
        data: Dict[str, Any] = {}
        if self.nationality is not None:
            data["nationality"] = {
                "mode": self.nationality.mode.value,
                "countries": sorted(self.nationality.countries),
            }
        if self.gender is not None:
            data["gender"] = self.gender.value
        if self.age_enabled:
            data["minimumAge"] = self.minimum_age
        if self.issuing_state is not None:
            data["issuing_state"] = self.issuing_state
        return data

    @classmethod
    def from_storage(cls, data: Optional[Dict[str, Any]]) -> Optional["CommentRestriction"]:
        """Validate a stored allowed_commenters blob, None when absent or empty."""
        if not data:
            return None
        restriction = cls.model_validate(data)
        return None if restriction.is_empty else restriction


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating a restriction against a claim."""

    allowed: bool
    reason: Optional[DenialReason] = None
    detail: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, detail: str = "") -> "Decision":
        return cls(allowed=False, reason=reason, detail=detail)

    def __bool__(self) -> bool:
        return self.allowed
