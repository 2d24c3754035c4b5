import secrets
import string
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from .models import Certificate, LearningProgress, Question, Quiz

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def get_quiz(db: Session, quiz_id: str) -> Quiz | None:
    return (
        db.query(Quiz)
        .options(selectinload(Quiz.questions).selectinload(Question.options))
        .filter(Quiz.id == quiz_id)
        .first()
    )


# -------------------------
# Progress
# -------------------------

def find_progress(
    db: Session,
    *,
    user_id: str,
    content_id: str,
    content_type: str = "quiz",
    assignment_id: str | None = None,
) -> LearningProgress | None:
    """
    Assignment-linked row first, then the (user, content) row.
    """
    if assignment_id:
        row = (
            db.query(LearningProgress)
            .filter(
                LearningProgress.user_id == user_id,
                LearningProgress.assignment_id == assignment_id,
                LearningProgress.content_type == content_type,
            )
            .first()
        )
        if row:
            return row

    return (
        db.query(LearningProgress)
        .filter(
            LearningProgress.user_id == user_id,
            LearningProgress.content_id == content_id,
            LearningProgress.content_type == content_type,
        )
        .first()
    )


def _apply(row: LearningProgress, payload: dict) -> None:
    for field, value in payload.items():
        if hasattr(row, field) and field != "id":
            setattr(row, field, value)
    row.updated_at = datetime.now(timezone.utc)


def upsert_progress(db: Session, payload: dict) -> LearningProgress:
    """
    One row per (user, content_type, content_id); later writes overwrite it.
    """
    key = dict(
        user_id=payload["user_id"],
        content_id=payload["content_id"],
        content_type=payload.get("content_type", "quiz"),
        assignment_id=payload.get("assignment_id"),
    )
    row = find_progress(db, **key)

    if row:
        _apply(row, payload)
        db.commit()
        db.refresh(row)
        return row

    row = LearningProgress(**payload)
    row.updated_at = datetime.now(timezone.utc)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # another writer inserted the same (user, content) row first
        db.rollback()
        row = find_progress(db, **key)
        if row is None:
            raise
        _apply(row, payload)
        db.commit()

    db.refresh(row)
    return row


# -------------------------
# Certificates
# -------------------------

def _certificate_number(now: datetime) -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"CERT-{now.strftime('%Y%m%d')}-{suffix}"


def _verification_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))


def get_active_certificate(db: Session, user_id: str, quiz_id: str) -> Certificate | None:
    return (
        db.query(Certificate)
        .filter(
            Certificate.user_id == user_id,
            Certificate.quiz_id == quiz_id,
            Certificate.status == "active",
        )
        .first()
    )


def create_certificate(db: Session, payload: dict) -> Certificate:
    """
    Returns the learner's active certificate for the quiz when one exists,
    otherwise creates it.
    """
    existing = get_active_certificate(db, payload["user_id"], payload["quiz_id"])
    if existing:
        return existing

    cert = Certificate(
        certificate_number=_certificate_number(datetime.now(timezone.utc)),
        verification_code=_verification_code(),
        status="active",
        **payload,
    )
    db.add(cert)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent issuance for the same learner and quiz won
        db.rollback()
        existing = get_active_certificate(db, payload["user_id"], payload["quiz_id"])
        if existing is None:
            raise
        return existing

    db.refresh(cert)
    return cert


def list_certificates(db: Session, user_id: str) -> list[Certificate]:
    return (
        db.query(Certificate)
        .filter(Certificate.user_id == user_id)
        .order_by(Certificate.created_at.desc())
        .all()
    )


def get_certificate_by_code(db: Session, verification_code: str) -> Certificate | None:
    return (
        db.query(Certificate)
        .filter(Certificate.verification_code == verification_code.strip().upper())
        .first()
    )
