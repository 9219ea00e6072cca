"""Evaluation of comment restrictions against a commenter's identity claim."""

from datetime import date, datetime, timezone
from typing import Optional

from ..models.claim import IdentityClaim
from ..models.restriction import (
    CommentRestriction,
    Decision,
    DenialReason,
    MissingAttributePolicy,
    NationalityMode,
)


def _missing(attribute: str, policy: MissingAttributePolicy) -> Optional[Decision]:
    if policy == MissingAttributePolicy.DENY:
        return Decision.deny(
            DenialReason.ATTRIBUTE_NOT_DISCLOSED,
            f"{attribute} is required but was not disclosed",
        )
    return None


def evaluate(
    restriction: Optional[CommentRestriction],
    claim: IdentityClaim,
    *,
    today: Optional[date] = None,
    missing_attribute_policy: MissingAttributePolicy = MissingAttributePolicy.DENY,
) -> Decision:
    """Decide whether a claim satisfies every active predicate of a restriction.

    Predicates are checked in the order nationality, gender, minimum age,
    issuing state and the first failing one decides. Denials are returned,
    never raised.

    Args:
        restriction: Restriction of the post, None when commenting is open
        claim: Claim returned by the verifier for the commenter
        today: Reference date for the age predicate, defaults to today (UTC)
        missing_attribute_policy: Outcome of an active predicate whose claim
            attribute is absent

    Returns:
        Allow, or Deny with the reason of the first failing predicate
    """
    if restriction is None:
        return Decision.allow()

    rule = restriction.nationality
    if rule is not None:
        if claim.nationality is None:
            decision = _missing("nationality", missing_attribute_policy)
            if decision is not None:
                return decision
        else:
            listed = claim.nationality in rule.countries
            if rule.mode == NationalityMode.INCLUDE and not listed:
                return Decision.deny(
                    DenialReason.NATIONALITY_NOT_ALLOWED,
                    "Nationality is not allowed to comment",
                )
            if rule.mode == NationalityMode.EXCLUDE and listed:
                return Decision.deny(
                    DenialReason.NATIONALITY_NOT_ALLOWED,
                    "Nationality is excluded from commenting",
                )

    if restriction.gender is not None:
        if claim.gender is None:
            decision = _missing("gender", missing_attribute_policy)
            if decision is not None:
                return decision
        elif claim.gender != restriction.gender:
            return Decision.deny(
                DenialReason.GENDER_MISMATCH,
                "Gender does not match restriction",
            )

    if restriction.age_enabled:
        if claim.date_of_birth is None:
            decision = _missing("date_of_birth", missing_attribute_policy)
            if decision is not None:
                return decision
        else:
            age = claim.age(today or datetime.now(timezone.utc).date())
            if age < restriction.minimum_age:
                return Decision.deny(
                    DenialReason.AGE_BELOW_MINIMUM,
                    f"Age {age} does not meet minimum requirement of {restriction.minimum_age}",
                )

    if restriction.issuing_state is not None:
        if claim.issuing_state is None:
            decision = _missing("issuing_state", missing_attribute_policy)
            if decision is not None:
                return decision
        elif claim.issuing_state != restriction.issuing_state:
            return Decision.deny(
                DenialReason.ISSUING_STATE_MISMATCH,
                "Issuing state does not match restriction",
            )

    return Decision.allow()
