from __future__ import annotations
import logging
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import StorageFault
from .models import UserTaskProgress

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO NOTHING
_UPSERT_INSERTS = {
	"postgresql": postgresql.insert,
	"sqlite": sqlite.insert,
}


def _already_recorded(db: Session, user_id: str, task_id: int) -> bool:
	stmt = select(UserTaskProgress.id).where(
		UserTaskProgress.user_id == user_id, UserTaskProgress.task_id == task_id
	)
	return db.execute(stmt).first() is not None


def _insert_ignoring_duplicate(db: Session, user_id: str, task_id: int) -> bool:
	insert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
	if insert is not None:
		stmt = insert(UserTaskProgress).values(user_id=user_id, task_id=task_id)
		result = db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "task_id"]))
		db.commit()
		return result.rowcount == 1

	try:
		db.add(UserTaskProgress(user_id=user_id, task_id=task_id))
		db.commit()
	except IntegrityError:
		db.rollback()
		# Only a row for the same pair makes this a duplicate
		if _already_recorded(db, user_id, task_id):
			return False
		raise
	return True


def record_completion(db: Session, user_id: str, task_id: int) -> bool:
	"""Insert the (user, task) completion; first completion wins.

	Returns True when a row was created and False when the pair was already
	recorded. The unique constraint decides, so concurrent duplicates are safe.
	Any other integrity or database error is a StorageFault.
	"""
	try:
		created = _insert_ignoring_duplicate(db, user_id, task_id)
	except SQLAlchemyError as e:
		db.rollback()
		raise StorageFault(f"failed to save progress for user {user_id} task {task_id}: {e}") from e
	if created:
		logger.info("Recorded completion of task %s for user %s", task_id, user_id)
	else:
		logger.debug("Progress for user %s task %s already recorded", user_id, task_id)
	return created


def completed_task_ids(db: Session, user_id: str, task_ids: Iterable[int] | None = None) -> List[int]:
	stmt = select(UserTaskProgress.task_id).where(UserTaskProgress.user_id == user_id)
	if task_ids is not None:
		stmt = stmt.where(UserTaskProgress.task_id.in_(list(task_ids)))
	try:
		return sorted(db.execute(stmt).scalars().all())
	except SQLAlchemyError as e:
		raise StorageFault(f"failed to read progress for user {user_id}: {e}") from e
