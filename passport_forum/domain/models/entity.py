"""Domain models for posts and comments gated on proof verification."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .disclosure import DisclosurePreferences
from .restriction import COUNTRY_CODE_PATTERN, CommentRestriction


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EntityStatus(str, Enum):
    """Lifecycle states of a verifiable post or comment."""

    PENDING = "pending"  # Waiting for the verifier callback
    POSTED = "posted"  # Verified and published
    FAILED = "failed"  # Verification failed, denied or superseded


class EntityKind(str, Enum):
    """Kinds of entities whose publication is gated on verification."""

    POST = "post"
    COMMENT = "comment"


class RewardType(int, Enum):
    """Reward schemes a post author can enable."""

    FIRST_COMMENTER = 1  # Token for the first commenter
    PARTICIPATION = 2  # NFT for every commenter


class VerificationOptions(BaseModel):
    """Constraints a post author asks the verifier to enforce on themselves."""

    minimum_age: Optional[int] = Field(None, alias="minimumAge", ge=0)
    excluded_countries: List[str] = Field(default_factory=list, alias="excludedCountries")
    ofac: bool = False

    class Config:
        """Pydantic model configuration."""
        frozen = True
        populate_by_name = True

    @field_validator("excluded_countries", mode="before")
    @classmethod
    def _normalize_countries(cls, value):
        codes = sorted({str(code).strip().upper() for code in value or []})
        invalid = [code for code in codes if not COUNTRY_CODE_PATTERN.match(code)]
        if invalid:
            raise ValueError(f"Invalid ISO-3166 alpha-3 codes: {', '.join(invalid)}")
        return codes

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class PostDraft(BaseModel):
    """Everything the author supplies before advancing to verification."""

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    wallet_address: str = Field(..., min_length=1)
    disclosures: DisclosurePreferences = Field(default_factory=DisclosurePreferences)
    comment_restriction: Optional[CommentRestriction] = None
    verification: VerificationOptions = Field(default_factory=VerificationOptions)
    reward_enabled: bool = False
    reward_type: Optional[RewardType] = None

    @model_validator(mode="after")
    def _reward_type_required(self) -> "PostDraft":
        if self.reward_enabled and self.reward_type is None:
            raise ValueError("reward_type is required when rewards are enabled")
        return self


class CommentDraft(BaseModel):
    """Everything a commenter supplies before advancing to verification."""

    content: str = Field(..., min_length=1)
    wallet_address: str = Field(..., min_length=1)
    disclosures: DisclosurePreferences = Field(default_factory=DisclosurePreferences)


class Post(BaseModel):
    """A forum post as persisted."""

    post_id: str
    author_id: str
    title: str
    content: str
    status: EntityStatus
    disclosure_preferences: DisclosurePreferences = Field(default_factory=DisclosurePreferences)
    disclosed_attributes: Dict[str, Any] = Field(default_factory=dict)
    comment_restriction: Optional[CommentRestriction] = None
    verification_options: VerificationOptions = Field(default_factory=VerificationOptions)
    reward_enabled: bool = False
    reward_type: Optional[RewardType] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status != EntityStatus.PENDING


class Comment(BaseModel):
    """A comment on a post as persisted."""

    comment_id: str
    post_id: str
    author_id: str
    content: str
    status: EntityStatus
    disclosure_preferences: DisclosurePreferences = Field(default_factory=DisclosurePreferences)
    disclosed_attributes: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status != EntityStatus.PENDING
