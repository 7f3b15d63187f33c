# src/petatas/tasks/task_models.py

from __future__ import annotations

import random
import string
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..storage.errors import ValidationError


class TaskStatus(StrEnum):
    """Checklist row status (stored as the raw string value)."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_task_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task_{int(time.time() * 1000)}_{suffix}"


def parse_timestamp(raw: Any) -> datetime:
    """
    Normalize a stored date-like value into an aware datetime.

    Accepts:
    - datetime (naive values are treated as UTC)
    - ISO-8601 strings (a trailing "Z" is accepted)
    - epoch milliseconds (int/float)
    """
    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(float(raw) / 1000.0, tz=timezone.utc)
    if isinstance(raw, str) and raw.strip():
        s = raw.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
        return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
    raise ValueError(f"not a timestamp: {raw!r}")


def _format_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(slots=True)
class Task:
    id: str
    name: str
    status: TaskStatus = TaskStatus.TODO
    notes: str = ""
    elapsed_ms: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    # Extra table columns carried through from the pasted source table.
    additional_columns: dict[str, str] = field(default_factory=dict)

    @classmethod
    def new(cls, name: str, **kwargs: Any) -> Task:
        now = utc_now()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)
        return cls(id=generate_task_id(), name=name, **kwargs)

    def validate(self) -> None:
        problems: list[str] = []
        if not isinstance(self.id, str) or not self.id:
            problems.append("id must be a non-empty string")
        if not isinstance(self.name, str):
            problems.append("name must be a string")
        if not isinstance(self.status, TaskStatus):
            problems.append("status must be a TaskStatus")
        if not isinstance(self.notes, str):
            problems.append("notes must be a string")
        if not _is_int(self.elapsed_ms) or self.elapsed_ms < 0:
            problems.append("elapsed_ms must be a non-negative integer")
        if not isinstance(self.created_at, datetime):
            problems.append("created_at must be a datetime")
        if not isinstance(self.updated_at, datetime):
            problems.append("updated_at must be a datetime")
        cols = self.additional_columns
        if not isinstance(cols, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in cols.items()
        ):
            problems.append("additional_columns must map str -> str")

        if problems:
            raise ValidationError(
                f"Invalid task {self.id!r}: " + "; ".join(problems),
                context={"task_id": self.id, "problems": problems},
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "notes": self.notes,
            "elapsedMs": self.elapsed_ms,
            "createdAt": _format_timestamp(self.created_at),
            "updatedAt": _format_timestamp(self.updated_at),
            "additionalColumns": dict(self.additional_columns),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Task:
        """Build a Task from its stored form; raises ValidationError on malformed input."""
        if not isinstance(raw, Mapping):
            raise ValidationError("Task record is not an object", context={"record": repr(raw)[:200]})

        try:
            status = TaskStatus(raw.get("status"))
        except ValueError:
            raise ValidationError(
                f"Unknown task status {raw.get('status')!r}",
                context={"task_id": raw.get("id")},
            ) from None

        try:
            created_at = parse_timestamp(raw.get("createdAt"))
            updated_at = parse_timestamp(raw.get("updatedAt"))
        except ValueError as e:
            raise ValidationError(f"Bad task timestamp: {e}", context={"task_id": raw.get("id")}) from e

        cols = raw.get("additionalColumns")
        if cols is None:
            cols = {}
        elif isinstance(cols, Mapping):
            cols = dict(cols)

        task = cls(
            id=raw.get("id"),  # type: ignore[arg-type]
            name=raw.get("name"),  # type: ignore[arg-type]
            status=status,
            notes=raw.get("notes", ""),
            elapsed_ms=raw.get("elapsedMs"),  # type: ignore[arg-type]
            created_at=created_at,
            updated_at=updated_at,
            additional_columns=cols,
        )
        task.validate()
        return task


@dataclass(slots=True)
class TimerState:
    """
    Persisted timer for one task.

    start_time is epoch milliseconds of the current run (0 when stopped);
    elapsed_ms is time accumulated by earlier runs.
    """

    task_id: str
    is_running: bool = False
    start_time: int = 0
    elapsed_ms: int = 0

    def validate(self) -> None:
        problems: list[str] = []
        if not isinstance(self.task_id, str) or not self.task_id:
            problems.append("task_id must be a non-empty string")
        if not isinstance(self.is_running, bool):
            problems.append("is_running must be a bool")
        if not _is_int(self.start_time) or self.start_time < 0:
            problems.append("start_time must be a non-negative integer")
        if not _is_int(self.elapsed_ms) or self.elapsed_ms < 0:
            problems.append("elapsed_ms must be a non-negative integer")

        if problems:
            raise ValidationError(
                f"Invalid timer state for {self.task_id!r}: " + "; ".join(problems),
                context={"task_id": self.task_id, "problems": problems},
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "isRunning": self.is_running,
            "startTime": self.start_time,
            "elapsedMs": self.elapsed_ms,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> TimerState:
        if not isinstance(raw, Mapping):
            raise ValidationError("Timer record is not an object", context={"record": repr(raw)[:200]})

        start_time = raw.get("startTime", 0)
        if isinstance(start_time, float) and start_time.is_integer():
            start_time = int(start_time)
        state = cls(
            task_id=raw.get("taskId"),  # type: ignore[arg-type]
            is_running=raw.get("isRunning"),  # type: ignore[arg-type]
            start_time=start_time,
            elapsed_ms=raw.get("elapsedMs"),  # type: ignore[arg-type]
        )
        state.validate()
        return state
