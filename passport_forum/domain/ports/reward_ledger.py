"""Protocol for the reward accounting subsystem."""

from typing import Protocol

from ..models.entity import RewardType


class RewardLedger(Protocol):
    """Records commenters who became eligible for a post's reward."""

    async def notify_eligible_for_reward(
        self,
        post_id: str,
        user_id: str,
        reward_type: RewardType,
    ) -> bool:
        """Record eligibility.

        Returns:
            True if a reward record was created
        """
        ...
