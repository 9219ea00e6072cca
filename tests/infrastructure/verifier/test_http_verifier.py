"""Tests for the HTTP verifier adapter."""

import json

import httpx
import pytest

from passport_forum.domain.models.verification import VerifierConfig
from passport_forum.domain.ports.identity_verifier import VerifierUnavailableError
from passport_forum.infrastructure.verifier.http_verifier import HTTPIdentityVerifier, HTTPVerifierConfig

BASE_URL = "http://verifier.test"

CONFIG = VerifierConfig(
    scope="self-sphere-comment",
    endpoint="http://forum.test/verify/comment",
    correlation_token="c-1",
    minimum_age=18,
    nationality="USA",
    disclosures={"nationality": True},
)


class Recorder:
    """Transport handler that records requests and replies from a script."""

    def __init__(self, responses):
        self.requests = []
        self._responses = responses

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json=self._responses[request.url.path])


async def make_verifier(handler) -> HTTPIdentityVerifier:
    verifier = HTTPIdentityVerifier(HTTPVerifierConfig(base_url=BASE_URL, cache_ttl=60))
    verifier._client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    await verifier.initialize()
    return verifier


@pytest.fixture
def recorder():
    return Recorder({
        "/identifier": {"userIdentifier": "c-1"},
        "/verify": {
            "isValid": True,
            "credentialSubject": {"nationality": "USA"},
            "isValidDetails": {"isValidNationality": True},
        },
    })


@pytest.mark.asyncio
async def test_get_user_identifier(recorder):
    verifier = await make_verifier(recorder)

    assert await verifier.get_user_identifier(["c-1", "42"]) == "c-1"
    body = json.loads(recorder.requests[0].content)
    assert body == {"publicSignals": ["c-1", "42"], "userIdType": "uuid"}
    await verifier.shutdown()


@pytest.mark.asyncio
async def test_verify_sends_camel_case_config(recorder):
    verifier = await make_verifier(recorder)

    outcome = await verifier.verify({"pi_a": []}, ["c-1"], CONFIG)

    assert outcome.is_valid
    assert outcome.credential_subject == {"nationality": "USA"}
    sent = json.loads(recorder.requests[0].content)
    assert sent["config"]["correlationToken"] == "c-1"
    assert sent["config"]["minimumAge"] == 18
    assert sent["config"]["mockPassport"] is False
    assert "minimum_age" not in sent["config"]
    await verifier.shutdown()


@pytest.mark.asyncio
async def test_verify_caches_outcomes(recorder):
    verifier = await make_verifier(recorder)

    first = await verifier.verify({"pi_a": []}, ["c-1"], CONFIG)
    second = await verifier.verify({"pi_a": []}, ["c-1"], CONFIG)

    assert first == second
    assert len(recorder.requests) == 1
    await verifier.shutdown()


@pytest.mark.asyncio
async def test_error_status_raises_unavailable():
    verifier = await make_verifier(lambda request: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(VerifierUnavailableError):
        await verifier.verify({}, ["c-1"], CONFIG)
    await verifier.shutdown()


@pytest.mark.asyncio
async def test_transport_error_raises_unavailable():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    verifier = await make_verifier(refuse)

    with pytest.raises(VerifierUnavailableError):
        await verifier.get_user_identifier(["c-1"])
    await verifier.shutdown()


@pytest.mark.asyncio
async def test_malformed_response_raises_unavailable():
    verifier = await make_verifier(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(VerifierUnavailableError):
        await verifier.verify({}, ["c-1"], CONFIG)
    await verifier.shutdown()


@pytest.mark.asyncio
async def test_uninitialized_verifier_is_unavailable():
    verifier = HTTPIdentityVerifier()

    assert not verifier.is_available
    with pytest.raises(VerifierUnavailableError):
        await verifier.get_user_identifier(["c-1"])
