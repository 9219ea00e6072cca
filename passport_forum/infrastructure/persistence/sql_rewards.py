"""SQLAlchemy implementation of the reward ledger port."""

import logging
from typing import List, Tuple
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ...domain.models.entity import RewardType
from ...domain.ports.entity_store import StoreUnavailableError
from ...domain.ports.reward_ledger import RewardLedger
from .tables import RewardRecord

logger = logging.getLogger(__name__)


class SQLRewardLedger(RewardLedger):
    """Records pending rewards for commenters.

    First-commenter rewards go to a single user per post; participation
    rewards go to every commenter once.
    """

    def __init__(self, engine: AsyncEngine):
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    async def notify_eligible_for_reward(
        self,
        post_id: str,
        user_id: str,
        reward_type: RewardType,
    ) -> bool:
        reward_type = RewardType(reward_type)
        existing = select(func.count()).select_from(RewardRecord).where(
            RewardRecord.post_id == post_id,
            RewardRecord.reward_type == reward_type.value,
        )
        if reward_type == RewardType.PARTICIPATION:
            existing = existing.where(RewardRecord.user_id == user_id)

        try:
            async with self._sessions() as session:
                async with session.begin():
                    if await session.scalar(existing):
                        return False
                    session.add(
                        RewardRecord(
                            reward_id=str(uuid4()),
                            post_id=post_id,
                            user_id=user_id,
                            reward_type=reward_type.value,
                            status="pending",
                        )
                    )
        except IntegrityError:
            # Lost the race for a unique reward slot
            return False
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not record reward: {e}") from e

        logger.info(f"🎁 Reward (type {reward_type.value}) created for user {user_id} on post {post_id}")
        return True

    async def list_rewards(self, post_id: str) -> List[Tuple[str, int, str]]:
        """Rewards recorded for a post as (user_id, reward_type, status) tuples."""
        query = (
            select(RewardRecord.user_id, RewardRecord.reward_type, RewardRecord.status)
            .where(RewardRecord.post_id == post_id)
            .order_by(RewardRecord.created_at)
        )
        async with self._sessions() as session:
            rows = (await session.execute(query)).all()
        return [(row.user_id, row.reward_type, row.status) for row in rows]
