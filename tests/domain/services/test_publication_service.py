"""Tests for the publication pipeline."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from passport_forum.domain.models.disclosure import NOT_DISCLOSED, DisclosurePreferences
from passport_forum.domain.models.entity import CommentDraft, EntityKind, EntityStatus, PostDraft, RewardType
from passport_forum.domain.models.restriction import CommentRestriction, DenialReason, MissingAttributePolicy
from passport_forum.domain.ports.identity_verifier import VerifierUnavailableError
from passport_forum.domain.services.publication_service import (
    REQUIREMENTS_NOT_MET,
    EntityNotFoundError,
    InvalidRequestError,
    PublicationService,
    PublicationSettings,
)
from passport_forum.domain.services.verification_state import EntityAlreadyFinalizedError


def proof(**subject) -> dict:
    return {"isValid": True, "credentialSubject": subject}


async def publish_post(service, draft, **subject):
    session = await service.create_post(draft)
    result = await service.handle_post_callback(
        proof(**(subject or {"nationality": "USA"})), [session.correlation_token]
    )
    assert result.succeeded
    return session.correlation_token


@pytest.mark.asyncio
async def test_create_post_opens_session(service, post_draft):
    session = await service.create_post(post_draft)

    assert session.entity_kind == EntityKind.POST
    assert session.config.scope == "self-sphere-post"
    assert session.config.correlation_token == session.correlation_token
    assert session.config.disclosures["nationality"] is True
    assert session.config.mock_passport is True

    post = await service.get_post(session.correlation_token)
    assert post.status == EntityStatus.PENDING


@pytest.mark.asyncio
async def test_post_callback_publishes_disclosed_attributes(service, post_draft):
    session = await service.create_post(post_draft)

    result = await service.handle_post_callback(
        proof(nationality="USA", date_of_birth="01-01-90", name="JANE DOE"),
        [session.correlation_token],
    )

    assert result.succeeded
    body = result.to_dict()
    assert body["status"] == "success"
    assert body["credentialSubject"]["nationality"] == "USA"
    assert body["credentialSubject"]["name"] == NOT_DISCLOSED

    post = await service.get_post(session.correlation_token)
    assert post.status == EntityStatus.POSTED
    assert post.disclosed_attributes == {"nationality": "USA", "date_of_birth": "01-01-90", "age": 35}


@pytest.mark.asyncio
async def test_post_verification_failure_persists_nothing(service, post_draft):
    session = await service.create_post(post_draft)

    result = await service.handle_post_callback(
        {"isValid": False, "credentialSubject": {"nationality": "USA"}},
        [session.correlation_token],
    )

    assert not result.succeeded
    assert result.to_dict()["result"] is False
    post = await service.get_post(session.correlation_token)
    assert post.status == EntityStatus.FAILED
    assert post.disclosed_attributes == {}


@pytest.mark.asyncio
async def test_post_minimum_age_enforced_by_verifier(service):
    draft = PostDraft(
        title="Adults",
        content="Only adults",
        wallet_address="0xYoung",
        verification={"minimumAge": 18},
    )
    session = await service.create_post(draft)
    assert session.config.minimum_age == 18

    result = await service.handle_post_callback(
        proof(date_of_birth="01-01-20"), [session.correlation_token]
    )

    assert result.status == EntityStatus.FAILED
    assert result.details["isValidMinimumAge"] is False


@pytest.mark.asyncio
async def test_callback_replay_is_rejected(service, post_draft):
    session = await service.create_post(post_draft)
    signals = [session.correlation_token]
    await service.handle_post_callback(proof(nationality="USA"), signals)

    with pytest.raises(EntityAlreadyFinalizedError):
        await service.handle_post_callback(proof(nationality="GBR"), signals)

    post = await service.get_post(session.correlation_token)
    assert post.disclosed_attributes == {"nationality": "USA"}


@pytest.mark.asyncio
async def test_callback_requires_proof_and_signals(service):
    with pytest.raises(InvalidRequestError):
        await service.handle_post_callback({}, ["token"])
    with pytest.raises(InvalidRequestError):
        await service.handle_post_callback(proof(), [])


@pytest.mark.asyncio
async def test_callback_for_unknown_entity(service):
    with pytest.raises(EntityNotFoundError):
        await service.handle_comment_callback(proof(), ["missing-id"])


@pytest.mark.asyncio
async def test_new_post_supersedes_pending_post(service, post_draft):
    first = await service.create_post(post_draft)
    second = await service.create_post(post_draft)

    assert (await service.get_post(first.correlation_token)).status == EntityStatus.FAILED
    assert (await service.get_post(second.correlation_token)).status == EntityStatus.PENDING


@pytest.mark.asyncio
async def test_comment_on_pending_post_is_rejected(service, post_draft, comment_draft):
    session = await service.create_post(post_draft)

    with pytest.raises(InvalidRequestError):
        await service.create_comment(session.correlation_token, comment_draft)


@pytest.mark.asyncio
async def test_comment_on_unknown_post(service, comment_draft):
    with pytest.raises(EntityNotFoundError):
        await service.create_comment("no-such-post", comment_draft)


@pytest.mark.asyncio
async def test_comment_config_follows_restriction(service, post_draft, comment_draft):
    draft = post_draft.model_copy(
        update={"comment_restriction": CommentRestriction(nationality={"countries": ["USA"]}, minimumAge=18)}
    )
    post_id = await publish_post(service, draft)

    session = await service.create_comment(post_id, comment_draft)

    config = session.config
    assert config.scope == "self-sphere-comment"
    assert config.minimum_age == 18
    assert config.nationality == "USA"
    assert config.disclosures["nationality"] is True
    assert config.disclosures["date_of_birth"] is True
    assert config.disclosures["name"] is False


@pytest.mark.asyncio
async def test_comment_config_excluded_countries(service, post_draft, comment_draft):
    draft = post_draft.model_copy(
        update={"comment_restriction": CommentRestriction(nationality={"mode": "exclude", "countries": ["PRK", "IRN"]})}
    )
    post_id = await publish_post(service, draft)

    session = await service.create_comment(post_id, comment_draft)

    assert session.config.nationality is None
    assert session.config.excluded_countries == ["IRN", "PRK"]


@pytest.mark.asyncio
async def test_restricted_comment_denied(service, post_draft, comment_draft):
    """USA-only post, a Japanese commenter is turned away."""
    draft = post_draft.model_copy(
        update={"comment_restriction": CommentRestriction(nationality={"countries": ["USA", "GBR"]})}
    )
    post_id = await publish_post(service, draft)
    session = await service.create_comment(post_id, comment_draft)

    result = await service.handle_comment_callback(proof(nationality="JPN"), [session.correlation_token])

    assert result.status == EntityStatus.FAILED
    assert result.message == REQUIREMENTS_NOT_MET
    assert result.to_dict()["reason"] == DenialReason.NATIONALITY_NOT_ALLOWED.value
    assert await service.list_comments(post_id) == []


@pytest.mark.asyncio
async def test_allowed_comment_is_published(service, post_draft):
    draft = post_draft.model_copy(
        update={"comment_restriction": CommentRestriction(nationality={"countries": ["USA", "GBR"]})}
    )
    post_id = await publish_post(service, draft)
    comment = CommentDraft(
        content="Hi",
        wallet_address="0xCommenter",
        disclosures=DisclosurePreferences(gender=True),
    )
    session = await service.create_comment(post_id, comment)

    result = await service.handle_comment_callback(
        proof(nationality="GBR", gender="F"), [session.correlation_token]
    )

    assert result.succeeded
    comments = await service.list_comments(post_id)
    assert [c.comment_id for c in comments] == [session.correlation_token]
    # Nationality was disclosed to the gate only, never published
    assert comments[0].disclosed_attributes == {"gender": "F"}


@pytest.mark.asyncio
async def test_undisclosed_attribute_denied_by_default(service, post_draft, comment_draft):
    draft = post_draft.model_copy(update={"comment_restriction": CommentRestriction(gender="F")})
    post_id = await publish_post(service, draft)
    session = await service.create_comment(post_id, comment_draft)

    result = await service.handle_comment_callback(proof(nationality="USA"), [session.correlation_token])

    assert result.denial_reason == DenialReason.ATTRIBUTE_NOT_DISCLOSED


@pytest.mark.asyncio
async def test_fail_open_policy(store, mock_verifier, today, post_draft, comment_draft):
    service = PublicationService(
        store=store,
        verifier=mock_verifier,
        settings=PublicationSettings(missing_attribute_policy=MissingAttributePolicy.ALLOW),
        today=lambda: today,
    )
    draft = post_draft.model_copy(update={"comment_restriction": CommentRestriction(gender="F")})
    post_id = await publish_post(service, draft)
    session = await service.create_comment(post_id, comment_draft)

    result = await service.handle_comment_callback(proof(nationality="USA"), [session.correlation_token])

    assert result.succeeded


@pytest.mark.asyncio
async def test_new_comment_supersedes_pending_attempt(service, post_draft, comment_draft):
    post_id = await publish_post(service, post_draft)
    first = await service.create_comment(post_id, comment_draft)
    second = await service.create_comment(post_id, comment_draft)

    with pytest.raises(EntityAlreadyFinalizedError):
        await service.handle_comment_callback(proof(), [first.correlation_token])

    result = await service.handle_comment_callback(proof(), [second.correlation_token])
    assert result.succeeded
    assert len(await service.list_comments(post_id)) == 1


@pytest.mark.asyncio
async def test_verifier_outage_fails_entity(store, today, post_draft):
    verifier = AsyncMock()
    verifier.provider_name = "Broken"
    verifier.get_user_identifier.side_effect = lambda signals: signals[0]
    verifier.verify.side_effect = VerifierUnavailableError("timeout")
    service = PublicationService(store=store, verifier=verifier, today=lambda: today)

    session = await service.create_post(post_draft)
    result = await service.handle_post_callback(proof(), [session.correlation_token])

    assert result.status == EntityStatus.FAILED
    assert (await service.get_post(session.correlation_token)).status == EntityStatus.FAILED


@pytest.mark.asyncio
async def test_malformed_subject_fails_entity(service, post_draft):
    session = await service.create_post(post_draft)

    result = await service.handle_post_callback(
        proof(nationality="USA", date_of_birth="not-a-date"), [session.correlation_token]
    )

    assert result.status == EntityStatus.FAILED


@pytest.mark.asyncio
async def test_first_commenter_reward(service, reward_ledger, post_draft):
    draft = post_draft.model_copy(update={"reward_enabled": True, "reward_type": RewardType.FIRST_COMMENTER})
    post_id = await publish_post(service, draft)

    for wallet in ("0xFirst", "0xSecond"):
        session = await service.create_comment(post_id, CommentDraft(content="Hi", wallet_address=wallet))
        assert (await service.handle_comment_callback(proof(), [session.correlation_token])).succeeded

    await service.wait_for_rewards()
    rewards = await reward_ledger.list_rewards(post_id)
    assert len(rewards) == 1
    assert rewards[0][1] == RewardType.FIRST_COMMENTER.value


@pytest.mark.asyncio
async def test_reward_failure_does_not_block_comment(store, mock_verifier, today, post_draft, comment_draft):
    ledger = AsyncMock()
    ledger.notify_eligible_for_reward.side_effect = RuntimeError("ledger down")
    service = PublicationService(store=store, verifier=mock_verifier, reward_ledger=ledger, today=lambda: today)
    draft = post_draft.model_copy(update={"reward_enabled": True, "reward_type": RewardType.PARTICIPATION})
    post_id = await publish_post(service, draft)
    session = await service.create_comment(post_id, comment_draft)

    result = await service.handle_comment_callback(proof(), [session.correlation_token])

    assert result.succeeded
    await service.wait_for_rewards()
    ledger.notify_eligible_for_reward.assert_awaited_once()


@pytest.mark.asyncio
async def test_expire_stale_pending(service, post_draft):
    session = await service.create_post(post_draft)

    assert await service.expire_stale_pending(timedelta(hours=1)) == {"post": 0, "comment": 0}
    assert await service.expire_stale_pending(timedelta(seconds=-1)) == {"post": 1, "comment": 0}

    with pytest.raises(EntityAlreadyFinalizedError):
        await service.handle_post_callback(proof(), [session.correlation_token])


@pytest.mark.asyncio
async def test_slow_ledger_does_not_delay_callback(store, mock_verifier, today, post_draft, comment_draft):
    release = asyncio.Event()

    async def slow_notify(post_id, user_id, reward_type):
        await release.wait()
        return True

    ledger = AsyncMock()
    ledger.notify_eligible_for_reward.side_effect = slow_notify
    service = PublicationService(store=store, verifier=mock_verifier, reward_ledger=ledger, today=lambda: today)
    draft = post_draft.model_copy(update={"reward_enabled": True, "reward_type": RewardType.PARTICIPATION})
    post_id = await publish_post(service, draft)
    session = await service.create_comment(post_id, comment_draft)

    result = await asyncio.wait_for(
        service.handle_comment_callback(proof(), [session.correlation_token]), timeout=5
    )

    assert result.succeeded
    assert service.pending_reward_count == 1

    release.set()
    await service.wait_for_rewards()
    assert service.pending_reward_count == 0
    ledger.notify_eligible_for_reward.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_comment_submissions_leave_one_pending(service, store, post_draft, comment_draft):
    post_id = await publish_post(service, post_draft)

    sessions = await asyncio.gather(
        *(service.create_comment(post_id, comment_draft) for _ in range(5))
    )

    pending = await store.list_comments(post_id, EntityStatus.PENDING)
    assert len(pending) == 1
    assert pending[0].comment_id in {s.correlation_token for s in sessions}
    assert len(await store.list_comments(post_id, EntityStatus.FAILED)) == 4


@pytest.mark.asyncio
async def test_concurrent_duplicate_callbacks_have_one_winner(service, post_draft):
    session = await service.create_post(post_draft)
    signals = [session.correlation_token]

    outcomes = await asyncio.gather(
        *(service.handle_post_callback(proof(nationality="USA"), signals) for _ in range(3)),
        return_exceptions=True,
    )

    successes = [o for o in outcomes if not isinstance(o, Exception) and o.succeeded]
    rejected = [o for o in outcomes if isinstance(o, EntityAlreadyFinalizedError)]
    assert len(successes) == 1
    assert len(rejected) == 2
    assert (await service.get_post(session.correlation_token)).status == EntityStatus.POSTED
