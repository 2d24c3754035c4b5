import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

import httpx

from .exceptions import CertificateIssueError
from .schemas import CertificateOut, CertificateRequest, Learner, QuizDef

logger = logging.getLogger("quiz-service.certificates")

CERTIFICATE_TYPE = "quiz"

IssueFn = Callable[[CertificateRequest], Awaitable[CertificateOut]]


def build_certificate_request(quiz: QuizDef, learner: Learner, completed_at: datetime) -> CertificateRequest:
    return CertificateRequest(
        user_id=learner.user_id,
        quiz_id=quiz.id,
        recipient_name=learner.display_name,
        recipient_email=learner.email,
        certificate_type=CERTIFICATE_TYPE,
        title=quiz.title,
        description=f"Successfully completed {quiz.title} with a perfect score.",
        completion_date=completed_at,
        score=100,
        passing_score=quiz.passing_score_percentage,
    )


class CertificateTrigger:
    """
    Fire-and-forget certificate issuance.

    dispatch() returns immediately; the issuance runs as its own task and its
    failures are logged, never raised to the caller.
    """

    def __init__(self, issue: IssueFn):
        self._issue = issue
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(
        self,
        request: CertificateRequest,
        on_issued: Callable[[CertificateOut], None] | None = None,
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(request, on_issued))
        # the loop only keeps weak references to tasks
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(
        self,
        request: CertificateRequest,
        on_issued: Callable[[CertificateOut], None] | None,
    ) -> CertificateOut | None:
        try:
            cert = await self._issue(request)
        except Exception:
            logger.exception("Certificate generation failed: user=%s quiz=%s", request.user_id, request.quiz_id)
            return None

        logger.info(
            "Certificate issued: number=%s user=%s quiz=%s",
            cert.certificate_number, request.user_id, request.quiz_id,
        )
        if on_issued:
            on_issued(cert)
        return cert

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class HttpCertificateIssuer:
    """Issues certificates through the certificate service's REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def __call__(self, request: CertificateRequest) -> CertificateOut:
        url = f"{self.base_url}/certificates"
        headers = {"Idempotency-Key": f"quiz-certificate:{request.user_id}:{request.quiz_id}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(url, json=request.model_dump(mode="json"), headers=headers)
        except httpx.TimeoutException as e:
            raise CertificateIssueError(f"Certificate service timeout: {url}") from e
        except httpx.RequestError as e:
            raise CertificateIssueError(f"Certificate service unavailable: {e}") from e

        if r.status_code not in (200, 201):
            raise CertificateIssueError(f"Certificate service returned {r.status_code}: {r.text[:200]}")

        try:
            return CertificateOut.model_validate(r.json())
        except ValueError as e:
            raise CertificateIssueError("Certificate service returned an invalid payload") from e
