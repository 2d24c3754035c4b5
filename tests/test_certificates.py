import json

import httpx
import pytest
from conftest import FakeBackend, make_quiz, now

from quiz_service.certificates import CertificateTrigger, HttpCertificateIssuer, build_certificate_request
from quiz_service.exceptions import CertificateIssueError
from quiz_service.schemas import Learner


def issued(request_body: dict) -> dict:
    return {
        "id": "c-1",
        "certificate_number": "CERT-20260101-ABC123",
        "verification_code": "ABCD1234",
        "user_id": request_body["user_id"],
        "quiz_id": request_body["quiz_id"],
        "recipient_name": request_body["recipient_name"],
        "certificate_type": request_body["certificate_type"],
        "title": request_body["title"],
        "completion_date": request_body["completion_date"],
        "score": request_body["score"],
        "passing_score": request_body["passing_score"],
    }


def make_request():
    learner = Learner(user_id="user-1", email="ana@example.com")
    return build_certificate_request(make_quiz(n=1), learner, now())


def test_request_describes_a_perfect_score():
    request = make_request()
    assert request.score == 100
    assert request.certificate_type == "quiz"
    assert request.recipient_name == "ana@example.com"
    assert request.description == "Successfully completed Quiz quiz-1 with a perfect score."


@pytest.mark.asyncio
async def test_http_issuer_posts_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("idempotency-key")
        return httpx.Response(201, json=issued(body))

    issuer = HttpCertificateIssuer("http://certs.local/", transport=httpx.MockTransport(handler))
    cert = await issuer(make_request())

    assert seen["url"] == "http://certs.local/certificates"
    assert seen["key"] == "quiz-certificate:user-1:quiz-1"
    assert cert.verification_code == "ABCD1234"
    assert cert.status == "active"


@pytest.mark.asyncio
async def test_http_issuer_rejects_error_status():
    issuer = HttpCertificateIssuer(
        "http://certs.local",
        transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")),
    )
    with pytest.raises(CertificateIssueError, match="500"):
        await issuer(make_request())


@pytest.mark.asyncio
async def test_http_issuer_wraps_connection_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    issuer = HttpCertificateIssuer("http://certs.local", transport=httpx.MockTransport(handler))
    with pytest.raises(CertificateIssueError, match="unavailable"):
        await issuer(make_request())


@pytest.mark.asyncio
async def test_http_issuer_rejects_invalid_payload():
    issuer = HttpCertificateIssuer(
        "http://certs.local",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"id": "c-1"})),
    )
    with pytest.raises(CertificateIssueError, match="invalid payload"):
        await issuer(make_request())


@pytest.mark.asyncio
async def test_trigger_reports_issued_certificate():
    backend = FakeBackend()
    trigger = CertificateTrigger(backend.issue_certificate)
    received = []

    task = trigger.dispatch(make_request(), on_issued=received.append)
    assert trigger.pending == 1
    cert = await task

    assert received == [cert]
    assert trigger.pending == 0


@pytest.mark.asyncio
async def test_trigger_swallows_failures():
    backend = FakeBackend()
    backend.fail_certificates = True
    trigger = CertificateTrigger(backend.issue_certificate)
    received = []

    trigger.dispatch(make_request(), on_issued=received.append)
    await trigger.drain()

    assert received == []
    assert trigger.pending == 0
