from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from quizhub import cleanup
from quizhub.database import get_db
from quizhub.deps import require_admin
from quizhub.models import User
from quizhub.scheduler import scheduler
from quizhub.schemas import AttemptStatistics, CleanupOldIn, FullCleanupIn

router = APIRouter(prefix="/admin/quiz-cleanup", tags=["admin-cleanup"])


@router.get("/stats", response_model=AttemptStatistics)
def cleanup_statistics(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return cleanup.get_attempt_statistics(db)


@router.post("/expired")
def cleanup_expired(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    cleaned = cleanup.cleanup_expired_attempts(db)
    return {
        "cleaned_count": cleaned,
        "message": f"Successfully cleaned up {cleaned} expired attempts",
    }


@router.post("/old")
def cleanup_old(
    payload: Optional[CleanupOldIn] = Body(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    payload = payload or CleanupOldIn()
    cleaned = cleanup.cleanup_old_completed_attempts(db, payload.days_old)
    return {
        "cleaned_count": cleaned,
        "message": f"Successfully cleaned up {cleaned} old attempts (older than {payload.days_old} days)",
    }


@router.post("/full")
def full_cleanup(
    payload: Optional[FullCleanupIn] = Body(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    payload = payload or FullCleanupIn()
    return cleanup.perform_manual_cleanup(
        db,
        cleanup_expired=payload.cleanup_expired,
        cleanup_old=payload.cleanup_old,
        old_attempts_days=payload.old_attempts_days,
    )


@router.get("/scheduler")
def scheduler_status(admin: User = Depends(require_admin)):
    return scheduler.status()
