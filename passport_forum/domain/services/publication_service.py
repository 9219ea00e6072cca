"""Service orchestrating creation and verification of posts and comments."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ValidationError

from ..models.claim import IdentityClaim
from ..models.entity import (
    Comment,
    CommentDraft,
    EntityKind,
    EntityStatus,
    Post,
    PostDraft,
    utcnow,
)
from ..models.restriction import DenialReason, MissingAttributePolicy, NationalityMode
from ..models.verification import VerificationSession, VerifierConfig
from ..ports.entity_store import EntityStore, NewComment, NewPost
from ..ports.identity_verifier import IdentityVerifier, VerifierUnavailableError
from ..ports.reward_ledger import RewardLedger
from .disclosure_filter import filter_for_publication, filter_for_response
from .restriction_evaluator import evaluate
from .verification_state import EntityAlreadyFinalizedError, ensure_transition

logger = logging.getLogger(__name__)

REQUIREMENTS_NOT_MET = "User does not meet posting requirements"


class InvalidRequestError(Exception):
    """The caller sent input that cannot start or complete a verification."""


class EntityNotFoundError(Exception):
    """No post or comment exists for the given identifier."""

    def __init__(self, kind: EntityKind, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"No {kind.value} found with id {entity_id}")


class PublicationSettings(BaseModel):
    """Verifier scopes, endpoints and policies used by the pipeline."""

    post_scope: str = "self-sphere-post"
    comment_scope: str = "self-sphere-comment"
    post_endpoint: str = "http://localhost:8000/verify/post"
    comment_endpoint: str = "http://localhost:8000/verify/comment"
    mock_passport: bool = False
    missing_attribute_policy: MissingAttributePolicy = MissingAttributePolicy.DENY


@dataclass
class CallbackResult:
    """Outcome of processing one verifier callback."""

    entity_kind: EntityKind
    entity_id: str
    status: EntityStatus
    message: str
    credential_subject: Optional[Dict[str, Any]] = None
    denial_reason: Optional[DenialReason] = None
    details: Optional[Any] = None
    verification_options: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == EntityStatus.POSTED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the callback response body."""
        if self.succeeded:
            return {
                "status": "success",
                "result": True,
                "credentialSubject": self.credential_subject or {},
                "verificationOptions": self.verification_options,
            }
        body = {
            "status": "error",
            "result": False,
            "message": self.message,
            "details": self.details,
        }
        if self.denial_reason is not None:
            body["reason"] = self.denial_reason.value
        return body


class PublicationService:
    """Drives posts and comments from pending to posted or failed.

    Creation persists a pending entity and returns the verification session
    for the client; the verifier callback re-checks the returned claim,
    filters what may be published and performs the terminal transition.
    """

    def __init__(
        self,
        store: EntityStore,
        verifier: IdentityVerifier,
        reward_ledger: Optional[RewardLedger] = None,
        settings: Optional[PublicationSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """Initialize the service.

        Args:
            store: Store for posts, comments and users
            verifier: External identity verifier
            reward_ledger: Reward accounting, optional
            settings: Scopes, endpoints and policies
            today: Clock for age computations, defaults to the UTC date
        """
        self._store = store
        self._verifier = verifier
        self._rewards = reward_ledger
        self._settings = settings or PublicationSettings()
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._reward_tasks: Set[asyncio.Task] = set()
        logger.info(f"🔧 PublicationService initialized with verifier {verifier.provider_name}")

    @property
    def settings(self) -> PublicationSettings:
        return self._settings

    async def create_post(self, draft: PostDraft) -> VerificationSession:
        """Persist a pending post and open its verification session."""
        author_id = await self._store.get_or_create_user(draft.wallet_address)
        post = await self._store.create_pending_post(
            NewPost(
                author_id=author_id,
                title=draft.title,
                content=draft.content,
                disclosure_preferences=draft.disclosures,
                comment_restriction=draft.comment_restriction,
                verification_options=draft.verification,
                reward_enabled=draft.reward_enabled,
                reward_type=draft.reward_type,
            )
        )
        logger.info(f"📝 Pending post {post.post_id} created for user {author_id}")
        return VerificationSession(
            entity_kind=EntityKind.POST,
            correlation_token=post.post_id,
            config=self.post_verifier_config(post),
        )

    async def create_comment(self, post_id: str, draft: CommentDraft) -> VerificationSession:
        """Persist a pending comment and open its verification session.

        Any earlier pending comment by the same author on the same post is
        failed in the same transaction.
        """
        post = await self._store.get_post(post_id)
        if post is None:
            raise EntityNotFoundError(EntityKind.POST, post_id)
        if post.status != EntityStatus.POSTED:
            raise InvalidRequestError(f"Post {post_id} is not open for comments")

        author_id = await self._store.get_or_create_user(draft.wallet_address)
        comment = await self._store.create_pending_comment(
            NewComment(
                post_id=post_id,
                author_id=author_id,
                content=draft.content,
                disclosure_preferences=draft.disclosures,
            )
        )
        logger.info(f"💬 Pending comment {comment.comment_id} created on post {post_id}")
        return VerificationSession(
            entity_kind=EntityKind.COMMENT,
            correlation_token=comment.comment_id,
            config=self.comment_verifier_config(post, comment),
        )

    def post_verifier_config(self, post: Post) -> VerifierConfig:
        """Verifier configuration for a post, from the author's own options."""
        options = post.verification_options
        return VerifierConfig(
            scope=self._settings.post_scope,
            endpoint=self._settings.post_endpoint,
            correlation_token=post.post_id,
            minimum_age=options.minimum_age or None,
            excluded_countries=list(options.excluded_countries),
            ofac=options.ofac,
            disclosures=post.disclosure_preferences.as_flags(),
            mock_passport=self._settings.mock_passport,
        )

    def comment_verifier_config(self, post: Post, comment: Comment) -> VerifierConfig:
        """Verifier configuration for a comment, derived from the post's restriction."""
        restriction = post.comment_restriction
        disclosures = comment.disclosure_preferences.as_flags()
        minimum_age = None
        nationality = None
        excluded: List[str] = []

        if restriction is not None:
            # The gate needs these even when the commenter keeps them private
            for attribute in restriction.required_attributes:
                disclosures[attribute] = True
            if restriction.age_enabled:
                minimum_age = restriction.minimum_age
            rule = restriction.nationality
            if rule is not None:
                nationality = rule.single_allowed_country
                if rule.mode == NationalityMode.EXCLUDE:
                    excluded = sorted(rule.countries)

        return VerifierConfig(
            scope=self._settings.comment_scope,
            endpoint=self._settings.comment_endpoint,
            correlation_token=comment.comment_id,
            minimum_age=minimum_age,
            excluded_countries=excluded,
            nationality=nationality,
            disclosures=disclosures,
            mock_passport=self._settings.mock_passport,
        )

    async def handle_post_callback(
        self,
        proof: Dict[str, Any],
        public_signals: List[str],
    ) -> CallbackResult:
        """Process the verifier callback for a pending post."""
        post_id = await self._resolve_token(proof, public_signals)
        post = await self._store.get_post(post_id)
        if post is None:
            raise EntityNotFoundError(EntityKind.POST, post_id)
        if post.is_terminal:
            raise EntityAlreadyFinalizedError(EntityKind.POST, post_id, post.status)

        config = self.post_verifier_config(post)
        claim, details = await self._verify(EntityKind.POST, post_id, proof, public_signals, config)
        if claim is None:
            await self._finalize(EntityKind.POST, post_id, EntityStatus.FAILED)
            return CallbackResult(
                entity_kind=EntityKind.POST,
                entity_id=post_id,
                status=EntityStatus.FAILED,
                message="Verification failed",
                details=details,
            )

        public = filter_for_publication(claim, post.disclosure_preferences, self._today())
        await self._finalize(EntityKind.POST, post_id, EntityStatus.POSTED, public)
        logger.info(f"✅ Post {post_id} posted with attributes {sorted(public)}")
        return CallbackResult(
            entity_kind=EntityKind.POST,
            entity_id=post_id,
            status=EntityStatus.POSTED,
            message="Post verified",
            credential_subject=filter_for_response(claim, post.disclosure_preferences),
            verification_options=config.options_summary(),
        )

    async def handle_comment_callback(
        self,
        proof: Dict[str, Any],
        public_signals: List[str],
    ) -> CallbackResult:
        """Process the verifier callback for a pending comment.

        The claim is evaluated against the post's restriction even though
        the verifier was configured with it; both must agree.
        """
        comment_id = await self._resolve_token(proof, public_signals)
        comment = await self._store.get_comment(comment_id)
        if comment is None:
            raise EntityNotFoundError(EntityKind.COMMENT, comment_id)
        if comment.is_terminal:
            raise EntityAlreadyFinalizedError(EntityKind.COMMENT, comment_id, comment.status)

        post = await self._store.get_post(comment.post_id)
        if post is None:
            raise EntityNotFoundError(EntityKind.POST, comment.post_id)

        config = self.comment_verifier_config(post, comment)
        claim, details = await self._verify(
            EntityKind.COMMENT, comment_id, proof, public_signals, config
        )
        if claim is None:
            await self._finalize(EntityKind.COMMENT, comment_id, EntityStatus.FAILED)
            return CallbackResult(
                entity_kind=EntityKind.COMMENT,
                entity_id=comment_id,
                status=EntityStatus.FAILED,
                message="Verification failed",
                details=details,
            )

        decision = evaluate(
            post.comment_restriction,
            claim,
            today=self._today(),
            missing_attribute_policy=self._settings.missing_attribute_policy,
        )
        if not decision.allowed:
            await self._finalize(EntityKind.COMMENT, comment_id, EntityStatus.FAILED)
            logger.info(f"🚫 Comment {comment_id} denied: {decision.reason.value}")
            return CallbackResult(
                entity_kind=EntityKind.COMMENT,
                entity_id=comment_id,
                status=EntityStatus.FAILED,
                message=REQUIREMENTS_NOT_MET,
                denial_reason=decision.reason,
                details=decision.detail,
            )

        public = filter_for_publication(claim, comment.disclosure_preferences, self._today())
        await self._finalize(EntityKind.COMMENT, comment_id, EntityStatus.POSTED, public)
        logger.info(f"✅ Comment {comment_id} posted on post {post.post_id}")

        if post.reward_enabled and post.reward_type is not None:
            self._schedule_reward(post, comment)

        return CallbackResult(
            entity_kind=EntityKind.COMMENT,
            entity_id=comment_id,
            status=EntityStatus.POSTED,
            message="Comment verified",
            credential_subject=filter_for_response(claim, comment.disclosure_preferences),
            verification_options=config.options_summary(),
        )

    async def expire_stale_pending(self, older_than: timedelta) -> Dict[str, int]:
        """Fail every entity that has been pending for longer than ``older_than``."""
        cutoff = utcnow() - older_than
        expired = await self._store.expire_pending(cutoff)
        logger.info(f"🧹 Expired stale pending entities created before {cutoff.isoformat()}: {expired}")
        return expired

    @property
    def pending_reward_count(self) -> int:
        return len(self._reward_tasks)

    async def wait_for_rewards(self) -> None:
        """Wait for scheduled reward notifications to finish."""
        if self._reward_tasks:
            logger.info(f"⏳ Waiting for {len(self._reward_tasks)} reward notification(s)")
            await asyncio.gather(*list(self._reward_tasks), return_exceptions=True)

    async def get_post(self, post_id: str) -> Post:
        post = await self._store.get_post(post_id)
        if post is None:
            raise EntityNotFoundError(EntityKind.POST, post_id)
        return post

    async def list_comments(self, post_id: str) -> List[Comment]:
        """Posted comments of a post; pending and failed ones are never shown."""
        await self.get_post(post_id)
        return await self._store.list_comments(post_id, EntityStatus.POSTED)

    async def _resolve_token(self, proof: Dict[str, Any], public_signals: List[str]) -> str:
        if not proof or not public_signals:
            raise InvalidRequestError("Proof and publicSignals are required")
        token = await self._verifier.get_user_identifier(public_signals)
        if not token:
            raise InvalidRequestError("Correlation token not found in public signals")
        return token

    async def _verify(
        self,
        kind: EntityKind,
        entity_id: str,
        proof: Dict[str, Any],
        public_signals: List[str],
        config: VerifierConfig,
    ) -> Tuple[Optional[IdentityClaim], Optional[Any]]:
        """Run the external check and parse the claim.

        Returns:
            The claim, or None with failure details when verification failed
        """
        logger.info(f"🔍 Verifying proof for {kind.value} {entity_id}")
        try:
            outcome = await self._verifier.verify(proof, public_signals, config)
        except VerifierUnavailableError as e:
            logger.warning(f"⚠️ Verifier unavailable for {kind.value} {entity_id}: {e}")
            return None, str(e)

        if not outcome.is_valid:
            logger.info(f"❌ Proof rejected for {kind.value} {entity_id}")
            return None, outcome.is_valid_details

        try:
            claim = IdentityClaim.model_validate(outcome.credential_subject)
        except ValidationError as e:
            logger.warning(f"⚠️ Malformed credential subject for {kind.value} {entity_id}: {e}")
            return None, "Credential subject is malformed"

        logger.info(f"🪪 Claim for {kind.value} {entity_id} discloses {list(claim.present_attributes())}")
        return claim, None

    async def _finalize(
        self,
        kind: EntityKind,
        entity_id: str,
        status: EntityStatus,
        disclosed_attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        ensure_transition(EntityStatus.PENDING, status)
        if not await self._store.finalize(kind, entity_id, status, disclosed_attributes):
            # Lost the compare-and-swap: a replayed callback, a newer attempt or the sweep won
            raise EntityAlreadyFinalizedError(kind, entity_id)

    def _schedule_reward(self, post: Post, comment: Comment) -> None:
        """Notify the reward ledger without holding up the callback response."""
        if self._rewards is None:
            logger.debug(f"No reward ledger configured, skipping reward for post {post.post_id}")
            return
        task = asyncio.create_task(self._notify_reward(post, comment))
        self._reward_tasks.add(task)
        task.add_done_callback(self._reward_tasks.discard)

    async def _notify_reward(self, post: Post, comment: Comment) -> None:
        try:
            created = await self._rewards.notify_eligible_for_reward(
                post.post_id, comment.author_id, post.reward_type
            )
            if created:
                logger.info(f"🎁 Reward type {post.reward_type.value} recorded for user {comment.author_id}")
        except Exception as e:
            logger.error(f"❌ Reward notification failed for post {post.post_id}: {e}", exc_info=True)
