"""SQLAlchemy implementation of the entity store port."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Type, Union
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ...domain.models.disclosure import DisclosurePreferences
from ...domain.models.entity import (
    Comment,
    EntityKind,
    EntityStatus,
    Post,
    RewardType,
    VerificationOptions,
    utcnow,
)
from ...domain.models.restriction import CommentRestriction
from ...domain.ports.entity_store import EntityStore, NewComment, NewPost, StoreUnavailableError
from .tables import Base, CommentRecord, PostRecord, UserRecord

logger = logging.getLogger(__name__)

PENDING = EntityStatus.PENDING.value
FAILED = EntityStatus.FAILED.value


class SQLEntityStore(EntityStore):
    """Relational store for users, posts and comments.

    Creation supersedes older pending entities inside the insert's
    transaction and terminal writes are conditional on ``status =
    'pending'``, so replays and concurrent attempts cannot both win.
    """

    def __init__(
        self,
        database_url: str = "sqlite+aiosqlite:///./passport_forum.db",
        engine: Optional[AsyncEngine] = None,
    ):
        """Initialize the store.

        Args:
            database_url: SQLAlchemy async database URL
            engine: Existing engine to share, overrides ``database_url``
        """
        self._engine = engine or create_async_engine(database_url)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def initialize(self) -> None:
        """Create missing tables."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not initialize store: {e}") from e
        logger.info("🗄️ Entity store ready")

    async def shutdown(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    yield session
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"❌ Store operation failed: {e}")
            raise StoreUnavailableError(str(e)) from e

    async def get_or_create_user(self, wallet_address: str) -> str:
        wallet_address = wallet_address.strip().lower()
        query = select(UserRecord.user_id).where(UserRecord.wallet_address == wallet_address)
        try:
            async with self._transaction() as session:
                user_id = await session.scalar(query)
                if user_id is not None:
                    return user_id
                user_id = str(uuid4())
                session.add(UserRecord(user_id=user_id, wallet_address=wallet_address))
            logger.info(f"👤 Created user {user_id}")
            return user_id
        except IntegrityError:
            # Another request registered the same wallet first
            async with self._transaction() as session:
                return await session.scalar(query)

    async def create_pending_post(self, post: NewPost) -> Post:
        now = utcnow()
        record = PostRecord(
            post_id=str(uuid4()),
            user_id=post.author_id,
            title=post.title,
            content=post.content,
            status=PENDING,
            disclosure_preferences=post.disclosure_preferences.as_flags(),
            disclosed_attributes={},
            allowed_commenters=(
                post.comment_restriction.to_storage() if post.comment_restriction else None
            ),
            verification_options=post.verification_options.to_storage(),
            reward_enabled=post.reward_enabled,
            reward_type=post.reward_type.value if post.reward_type is not None else None,
            created_at=now,
            updated_at=now,
        )
        async with self._transaction() as session:
            superseded = await session.execute(
                update(PostRecord)
                .where(PostRecord.user_id == post.author_id, PostRecord.status == PENDING)
                .values(status=FAILED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            session.add(record)
        if superseded.rowcount:
            logger.info(f"♻️ Superseded {superseded.rowcount} pending post(s) of user {post.author_id}")
        return self._to_post(record)

    async def create_pending_comment(self, comment: NewComment) -> Comment:
        # One retry: a concurrent insert for the same (author, post) trips the
        # partial unique index, and the retry supersedes it.
        for attempt in range(2):
            now = utcnow()
            record = CommentRecord(
                comment_id=str(uuid4()),
                post_id=comment.post_id,
                user_id=comment.author_id,
                content=comment.content,
                status=PENDING,
                disclosure_preferences=comment.disclosure_preferences.as_flags(),
                disclosed_attributes={},
                created_at=now,
                updated_at=now,
            )
            try:
                async with self._transaction() as session:
                    superseded = await session.execute(
                        update(CommentRecord)
                        .where(
                            CommentRecord.post_id == comment.post_id,
                            CommentRecord.user_id == comment.author_id,
                            CommentRecord.status == PENDING,
                        )
                        .values(status=FAILED, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    session.add(record)
            except IntegrityError as e:
                if attempt:
                    raise StoreUnavailableError(f"Could not insert pending comment: {e}") from e
                logger.warning(f"⚠️ Concurrent pending comment on post {comment.post_id}, retrying")
                continue

            if superseded.rowcount:
                logger.info(
                    f"♻️ Superseded {superseded.rowcount} pending comment(s) of user "
                    f"{comment.author_id} on post {comment.post_id}"
                )
            return self._to_comment(record)

    async def get_post(self, post_id: str) -> Optional[Post]:
        async with self._transaction() as session:
            record = await session.get(PostRecord, post_id)
            return self._to_post(record) if record else None

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        async with self._transaction() as session:
            record = await session.get(CommentRecord, comment_id)
            return self._to_comment(record) if record else None

    async def list_comments(
        self,
        post_id: str,
        status: Optional[EntityStatus] = EntityStatus.POSTED,
    ) -> List[Comment]:
        query = select(CommentRecord).where(CommentRecord.post_id == post_id)
        if status is not None:
            query = query.where(CommentRecord.status == status.value)
        query = query.order_by(CommentRecord.created_at, CommentRecord.comment_id)
        async with self._transaction() as session:
            records = (await session.scalars(query)).all()
            return [self._to_comment(record) for record in records]

    async def finalize(
        self,
        kind: EntityKind,
        entity_id: str,
        status: EntityStatus,
        disclosed_attributes: Optional[Dict[str, Any]] = None,
    ) -> bool:
        model = self._model(kind)
        key = model.post_id if kind == EntityKind.POST else model.comment_id
        values: Dict[str, Any] = {"status": status.value, "updated_at": utcnow()}
        if disclosed_attributes is not None:
            values["disclosed_attributes"] = disclosed_attributes

        async with self._transaction() as session:
            result = await session.execute(
                update(model)
                .where(key == entity_id, model.status == PENDING)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            swapped = result.rowcount == 1

        if not swapped:
            logger.warning(f"⚠️ {kind.value} {entity_id} was not pending, {status.value} not applied")
        return swapped

    async def expire_pending(self, created_before: datetime) -> Dict[str, int]:
        expired: Dict[str, int] = {}
        now = utcnow()
        async with self._transaction() as session:
            for kind in EntityKind:
                model = self._model(kind)
                result = await session.execute(
                    update(model)
                    .where(model.status == PENDING, model.created_at < created_before)
                    .values(status=FAILED, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                expired[kind.value] = result.rowcount
        return expired

    @staticmethod
    def _model(kind: EntityKind) -> Type[Union[PostRecord, CommentRecord]]:
        return PostRecord if kind == EntityKind.POST else CommentRecord

    @staticmethod
    def _to_post(record: PostRecord) -> Post:
        return Post(
            post_id=record.post_id,
            author_id=record.user_id,
            title=record.title,
            content=record.content,
            status=EntityStatus(record.status),
            disclosure_preferences=DisclosurePreferences.model_validate(record.disclosure_preferences or {}),
            disclosed_attributes=record.disclosed_attributes or {},
            comment_restriction=CommentRestriction.from_storage(record.allowed_commenters),
            verification_options=VerificationOptions.model_validate(record.verification_options or {}),
            reward_enabled=record.reward_enabled,
            reward_type=RewardType(record.reward_type) if record.reward_type is not None else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @staticmethod
    def _to_comment(record: CommentRecord) -> Comment:
        return Comment(
            comment_id=record.comment_id,
            post_id=record.post_id,
            author_id=record.user_id,
            content=record.content,
            status=EntityStatus(record.status),
            disclosure_preferences=DisclosurePreferences.model_validate(record.disclosure_preferences or {}),
            disclosed_attributes=record.disclosed_attributes or {},
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
