"""Filtering of identity claims down to what the author agreed to publish."""

from datetime import date
from typing import Any, Dict, Optional

from ..models.claim import IdentityClaim
from ..models.disclosure import DISCLOSABLE_ATTRIBUTES, NOT_DISCLOSED, DisclosurePreferences


def _claim_values(claim: IdentityClaim) -> Dict[str, Any]:
    return claim.model_dump(mode="json")


def filter_for_publication(
    claim: IdentityClaim,
    preferences: DisclosurePreferences,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Build the persisted public attribute set.

    Only attributes that are both disclosed and present in the claim are
    kept. A disclosed date of birth also yields the derived ``age``.

    Args:
        claim: Claim returned by the verifier
        preferences: Author's disclosure preferences
        today: Reference date for the derived age

    Returns:
        Attribute name to value, undisclosed attributes omitted
    """
    values = _claim_values(claim)
    public: Dict[str, Any] = {}
    for name in DISCLOSABLE_ATTRIBUTES:
        if preferences.is_disclosed(name) and values.get(name) is not None:
            public[name] = values[name]

    if "date_of_birth" in public:
        public["age"] = claim.age(today)
    return public


def filter_for_response(
    claim: IdentityClaim,
    preferences: DisclosurePreferences,
) -> Dict[str, Any]:
    """Build the credential subject echoed back to the verifying client.

    Undisclosed attributes are kept with the ``"Not disclosed"`` marker so
    the client can tell withheld from absent.
    """
    values = _claim_values(claim)
    response: Dict[str, Any] = {}
    for name in DISCLOSABLE_ATTRIBUTES:
        if not preferences.is_disclosed(name):
            response[name] = NOT_DISCLOSED
        elif values.get(name) is not None:
            response[name] = values[name]
    return response
