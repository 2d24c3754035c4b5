from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker
from shared.database import db_dependency

from .crud import get_certificate_by_code, list_certificates
from .exceptions import ProgressWriteError, QuizLoadError, QuizNotFound, SessionStateError
from .registry import SessionRegistry
from .schemas import (
    AnswerIn,
    AttemptResult,
    CertificateOut,
    CertificateVerifyOut,
    Learner,
    NavigateIn,
    OptionView,
    QuestionView,
    SessionOut,
    SessionStartIn,
)
from .session import QuizSession


def session_view(session: QuizSession) -> SessionOut:
    q = session.current_question
    question = None
    if q:
        question = QuestionView(
            id=q.id,
            text=q.text,
            question_type=q.question_type,
            points=q.points,
            options=[OptionView(id=o.id, text=o.text) for o in q.options],
        )

    return SessionOut(
        session_id=session.id,
        quiz_id=session.quiz.id,
        title=session.quiz.title,
        state=session.state.value,
        passing_score_percentage=session.quiz.passing_score_percentage,
        current_index=session.ledger.index,
        total_questions=session.ledger.total,
        answered_count=session.ledger.answered_count,
        remaining_seconds=session.clock.remaining_seconds,
        question=question,
        answer=session.ledger.get_answer(q.id) if q else None,
        feedback=session.feedback(q.id) if q else None,
        result=session.result,
        certificate=session.certificate,
        last_error=session.last_error,
    )


def build_router(registry: SessionRegistry, SessionLocal: sessionmaker) -> APIRouter:
    router = APIRouter()
    get_db = db_dependency(SessionLocal)

    def current_learner(request: Request) -> Learner:
        # forwarded by api-gateway after /auth/verify
        uid = (request.headers.get("x-user-id") or "").strip()
        if not uid:
            raise HTTPException(401, "Missing user identity")
        try:
            return Learner(
                user_id=uid,
                email=(request.headers.get("x-user-email") or "").strip() or None,
                full_name=(request.headers.get("x-user-name") or "").strip() or None,
            )
        except ValidationError:
            raise HTTPException(400, "Invalid user email header")

    def owned_session(session_id: str, learner: Learner) -> QuizSession:
        try:
            return registry.get(session_id, learner.user_id)
        except KeyError:
            raise HTTPException(404, "Quiz session not found")

    # Session handlers are async so every session mutation runs on the event loop thread.

    @router.post("/sessions", response_model=SessionOut)
    async def start(payload: SessionStartIn, learner: Learner = Depends(current_learner)):
        try:
            session = await registry.open(payload.quiz_id, learner, payload.assignment_id)
        except QuizNotFound:
            raise HTTPException(404, "Quiz not found")
        except QuizLoadError:
            raise HTTPException(502, "Failed to load quiz")
        return session_view(session)

    @router.get("/sessions/{session_id}", response_model=SessionOut)
    async def get_session(session_id: str, learner: Learner = Depends(current_learner)):
        return session_view(owned_session(session_id, learner))

    @router.put("/sessions/{session_id}/answers/{question_id}", response_model=SessionOut)
    async def set_answer(
        session_id: str,
        question_id: str,
        payload: AnswerIn,
        learner: Learner = Depends(current_learner),
    ):
        session = owned_session(session_id, learner)
        try:
            session.answer(question_id, payload.value)
        except KeyError:
            raise HTTPException(404, "Question not found in this quiz")
        except SessionStateError as e:
            raise HTTPException(409, str(e))
        return session_view(session)

    @router.post("/sessions/{session_id}/navigate", response_model=SessionOut)
    async def navigate(session_id: str, payload: NavigateIn, learner: Learner = Depends(current_learner)):
        session = owned_session(session_id, learner)
        try:
            if payload.index is not None:
                session.go_to(payload.index)
            elif payload.direction == "next":
                session.next()
            else:
                session.previous()
        except SessionStateError as e:
            raise HTTPException(409, str(e))
        return session_view(session)

    @router.post("/sessions/{session_id}/submit", response_model=AttemptResult)
    async def submit(session_id: str, learner: Learner = Depends(current_learner)):
        session = owned_session(session_id, learner)
        try:
            return await session.submit()
        except SessionStateError as e:
            raise HTTPException(409, str(e))
        except ProgressWriteError:
            raise HTTPException(503, session.last_error or "Failed to submit quiz results, try again")

    @router.post("/sessions/{session_id}/retake", response_model=SessionOut)
    async def retake(session_id: str, learner: Learner = Depends(current_learner)):
        owned_session(session_id, learner)
        try:
            session = await registry.retake(session_id, learner.user_id)
        except SessionStateError as e:
            raise HTTPException(409, str(e))
        except QuizLoadError:
            raise HTTPException(502, "Failed to load quiz")
        return session_view(session)

    @router.delete("/sessions/{session_id}", response_model=dict)
    async def close(session_id: str, learner: Learner = Depends(current_learner)):
        owned_session(session_id, learner)
        registry.close(session_id, learner.user_id)
        return {"closed": True}

    # -------------------------
    # Certificates
    # -------------------------

    @router.get("/certificates/me", response_model=list[CertificateOut])
    def my_certificates(learner: Learner = Depends(current_learner), db: Session = Depends(get_db)):
        return list_certificates(db, learner.user_id)

    @router.get("/certificates/verify/{code}", response_model=CertificateVerifyOut)
    def verify_certificate(code: str, db: Session = Depends(get_db)):
        cert = get_certificate_by_code(db, code)
        if not cert or cert.status != "active":
            return CertificateVerifyOut(valid=False)
        return CertificateVerifyOut(valid=True, certificate=CertificateOut.model_validate(cert))

    return router
