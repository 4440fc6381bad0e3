from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, JSON, UniqueConstraint
from .db import Base


class Task(Base):
	__tablename__ = "tasks"
	id = Column(Integer, primary_key=True)
	simulation_id = Column(Integer, nullable=True, index=True)
	# Authored elsewhere: {"task_type": ..., "ui_schema": {...}, "solution": {...}}
	definition = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserTaskProgress(Base):
	__tablename__ = "user_task_progress"
	__table_args__ = (UniqueConstraint("user_id", "task_id", name="uq_user_task_progress"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	task_id = Column(Integer, nullable=False)
	completed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
