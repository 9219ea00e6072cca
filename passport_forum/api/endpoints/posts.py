"""Post and comment endpoints."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...domain.models.entity import Comment, CommentDraft, EntityStatus, Post, PostDraft
from ...domain.models.verification import VerificationSession
from ...domain.services.publication_service import PublicationService
from ...infrastructure.dependencies import get_publication_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


class SessionResponse(BaseModel):
    """Verification session handed to the client for the QR code request."""

    entity_kind: str
    correlation_token: str
    verifier_config: Dict[str, Any] = Field(..., description="Verifier request, camelCase")

    @classmethod
    def from_session(cls, session: VerificationSession) -> "SessionResponse":
        return cls(
            entity_kind=session.entity_kind.value,
            correlation_token=session.correlation_token,
            verifier_config=session.config.to_wire(),
        )


class PostView(BaseModel):
    """Public view of a post; content is hidden until the post is verified."""

    post_id: str
    status: EntityStatus
    title: Optional[str] = None
    content: Optional[str] = None
    disclosed_attributes: Dict[str, Any] = Field(default_factory=dict)
    allowed_commenters: Optional[Dict[str, Any]] = None
    reward_enabled: bool = False
    reward_type: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_post(cls, post: Post) -> "PostView":
        visible = post.status == EntityStatus.POSTED
        return cls(
            post_id=post.post_id,
            status=post.status,
            title=post.title if visible else None,
            content=post.content if visible else None,
            disclosed_attributes=post.disclosed_attributes if visible else {},
            allowed_commenters=(
                post.comment_restriction.to_storage() if post.comment_restriction else None
            ),
            reward_enabled=post.reward_enabled,
            reward_type=post.reward_type.value if post.reward_type is not None else None,
            created_at=post.created_at,
        )


class CommentView(BaseModel):
    """Public view of a posted comment."""

    comment_id: str
    post_id: str
    content: str
    disclosed_attributes: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentView":
        return cls(
            comment_id=comment.comment_id,
            post_id=comment.post_id,
            content=comment.content,
            disclosed_attributes=comment.disclosed_attributes,
            created_at=comment.created_at,
        )


@router.post("", response_model=SessionResponse, status_code=201)
async def create_post(
    draft: PostDraft,
    service: PublicationService = Depends(get_publication_service),
) -> SessionResponse:
    """Create a pending post and open its verification session."""
    session = await service.create_post(draft)
    return SessionResponse.from_session(session)


@router.get("/{post_id}", response_model=PostView)
async def get_post(
    post_id: str,
    service: PublicationService = Depends(get_publication_service),
) -> PostView:
    """Read a post."""
    return PostView.from_post(await service.get_post(post_id))


@router.post("/{post_id}/comments", response_model=SessionResponse, status_code=201)
async def create_comment(
    post_id: str,
    draft: CommentDraft,
    service: PublicationService = Depends(get_publication_service),
) -> SessionResponse:
    """Create a pending comment and open its verification session.

    Any earlier pending comment of the same author on this post is
    superseded.
    """
    session = await service.create_comment(post_id, draft)
    return SessionResponse.from_session(session)


@router.get("/{post_id}/comments", response_model=List[CommentView])
async def list_comments(
    post_id: str,
    service: PublicationService = Depends(get_publication_service),
) -> List[CommentView]:
    """List the verified comments of a post."""
    comments = await service.list_comments(post_id)
    return [CommentView.from_comment(comment) for comment in comments]
