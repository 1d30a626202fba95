from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizhub.database import get_db
from quizhub.deps import get_current_user, require_admin, require_role
from quizhub.errors import ConflictError, ForbiddenError, NotFoundError
from quizhub.models import Course, TestSeries, TestSeriesEnrollment, User
from quizhub.schemas import (
    CourseCreate,
    CourseOut,
    EnrollmentIn,
    TestSeriesCreate,
    TestSeriesOut,
)

router = APIRouter(tags=["catalog"])


def _get_series_or_404(db: Session, series_id: int) -> TestSeries:
    series = db.get(TestSeries, series_id)
    if not series:
        raise NotFoundError("Test series not found")
    return series


def _enroll(db: Session, series: TestSeries, user_id: int) -> TestSeriesEnrollment:
    if series.is_enrolled(user_id):
        raise ConflictError("User is already enrolled in this test series")
    enrollment = TestSeriesEnrollment(test_series_id=series.id, user_id=user_id)
    db.add(enrollment)
    db.commit()
    return enrollment


@router.post("/courses", response_model=CourseOut, status_code=201)
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("admin", "teacher")),
):
    course = Course(**payload.model_dump())
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@router.post("/test-series", response_model=TestSeriesOut, status_code=201)
def create_test_series(
    payload: TestSeriesCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("admin", "teacher")),
):
    series = TestSeries(**payload.model_dump())
    db.add(series)
    db.commit()
    db.refresh(series)
    return series


@router.post("/test-series/{series_id}/publish", response_model=TestSeriesOut)
def publish_test_series(
    series_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("admin", "teacher")),
):
    series = _get_series_or_404(db, series_id)
    series.is_published = True
    db.commit()
    db.refresh(series)
    return series


@router.post("/test-series/{series_id}/enroll", status_code=201)
def enroll_self(
    series_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Самостоятельная запись: только в бесплатные опубликованные серии."""
    series = _get_series_or_404(db, series_id)
    if not series.is_published:
        raise ForbiddenError("This test series is not published yet")
    if series.is_paid:
        raise ForbiddenError(f'You need to purchase the test series "{series.title}"')

    _enroll(db, series, user.id)
    return {"ok": True, "test_series_id": series.id, "user_id": user.id}


@router.post("/test-series/{series_id}/enrollments", status_code=201)
def enroll_user(
    series_id: int,
    payload: EnrollmentIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Запись администратором, в том числе после оплаты платной серии."""
    series = _get_series_or_404(db, series_id)
    if not db.get(User, payload.user_id):
        raise NotFoundError("User not found")

    _enroll(db, series, payload.user_id)
    return {"ok": True, "test_series_id": series.id, "user_id": payload.user_id}
