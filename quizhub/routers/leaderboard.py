from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizhub.database import get_db
from quizhub.deps import get_current_user
from quizhub.leaderboard import get_leaderboard
from quizhub.models import User
from quizhub.schemas import LeaderboardEntryOut

router = APIRouter(prefix="/quizzes", tags=["leaderboard"])


@router.get("/{quiz_id}/leaderboard", response_model=List[LeaderboardEntryOut])
def quiz_leaderboard(
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [entry.as_dict() for entry in get_leaderboard(db, quiz_id, user)]
