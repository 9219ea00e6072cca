"""Port interface for the persisted post/comment store."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel

from ..models.disclosure import DisclosurePreferences
from ..models.entity import (
    Comment,
    EntityKind,
    EntityStatus,
    Post,
    RewardType,
    VerificationOptions,
)
from ..models.restriction import CommentRestriction


class StoreUnavailableError(Exception):
    """The store could not complete a read or write."""


class NewPost(BaseModel):
    """Insert request for a pending post."""

    author_id: str
    title: str
    content: str
    disclosure_preferences: DisclosurePreferences
    comment_restriction: Optional[CommentRestriction] = None
    verification_options: VerificationOptions
    reward_enabled: bool = False
    reward_type: Optional[RewardType] = None


class NewComment(BaseModel):
    """Insert request for a pending comment."""

    post_id: str
    author_id: str
    content: str
    disclosure_preferences: DisclosurePreferences


class EntityStore(Protocol):
    """Protocol for stores holding verifiable posts and comments.

    Implementations must make the create operations atomic: superseding
    earlier pending entities and inserting the new one happen in one
    transaction. ``finalize`` is a compare-and-swap on ``status = pending``.
    """

    async def get_or_create_user(self, wallet_address: str) -> str:
        """Resolve a wallet address to a user id, creating the user if needed."""
        ...

    async def create_pending_post(self, post: NewPost) -> Post:
        """Fail the author's pending posts and insert a new pending post."""
        ...

    async def create_pending_comment(self, comment: NewComment) -> Comment:
        """Fail pending comments of the same (author, post) and insert a new one."""
        ...

    async def get_post(self, post_id: str) -> Optional[Post]:
        ...

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        ...

    async def list_comments(
        self,
        post_id: str,
        status: Optional[EntityStatus] = EntityStatus.POSTED,
    ) -> List[Comment]:
        """List comments of a post, oldest first."""
        ...

    async def finalize(
        self,
        kind: EntityKind,
        entity_id: str,
        status: EntityStatus,
        disclosed_attributes: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Move a pending entity to a terminal status.

        Returns:
            False when the entity was not pending anymore (or does not exist)
        """
        ...

    async def expire_pending(self, created_before: datetime) -> Dict[str, int]:
        """Fail every entity still pending that was created before the cutoff.

        Returns:
            Number of expired entities per kind
        """
        ...
