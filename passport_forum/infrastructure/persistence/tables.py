"""SQLAlchemy models for users, posts, comments and rewards."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ...domain.models.entity import utcnow

PENDING = text("status = 'pending'")


class Base(DeclarativeBase):
    """Declarative base for the forum tables."""


class UserRecord(Base):
    """Forum user, identified by wallet address."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class PostRecord(Base):
    """Post row; ``post_id`` doubles as the verification correlation token."""

    __tablename__ = "posts"

    post_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # pending | posted | failed
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    disclosure_preferences: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    disclosed_attributes: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    allowed_commenters: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    verification_options: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    reward_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reward_type: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_posts_user_status", "user_id", "status"),
    )


class CommentRecord(Base):
    """Comment row; ``comment_id`` doubles as the verification correlation token."""

    __tablename__ = "comments"

    comment_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(36), ForeignKey("posts.post_id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    disclosure_preferences: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    disclosed_attributes: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_comments_post_status", "post_id", "status"),
        # At most one live verification attempt per author per post
        Index(
            "uq_comments_single_pending",
            "post_id",
            "user_id",
            unique=True,
            sqlite_where=PENDING,
            postgresql_where=PENDING,
        ),
    )


class RewardRecord(Base):
    """Reward owed to a commenter, disbursed elsewhere."""

    __tablename__ = "rewards"

    reward_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(36), ForeignKey("posts.post_id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=False)
    reward_type: Mapped[int] = mapped_column(Integer, nullable=False)
    # pending | claimed | failed
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("uq_rewards_post_user_type", "post_id", "user_id", "reward_type", unique=True),
        # A single first-commenter reward per post
        Index(
            "uq_rewards_first_commenter",
            "post_id",
            unique=True,
            sqlite_where=text("reward_type = 1"),
            postgresql_where=text("reward_type = 1"),
        ),
    )
