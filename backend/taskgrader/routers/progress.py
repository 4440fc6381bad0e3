from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..progress import completed_task_ids
from .auth import get_current_user, User

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("")
def get_progress(
	task_ids: Optional[List[int]] = Query(default=None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	return {"completed_task_ids": completed_task_ids(db, user.id, task_ids)}
