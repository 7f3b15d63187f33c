# tests/test_task_models.py

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from petatas.storage.errors import ValidationError
from petatas.tasks.task_models import Task, TaskStatus, TimerState, parse_timestamp

from .fakes import BASE_TIME, make_task


def test_task_stored_form_uses_camel_case_and_utc_z() -> None:
    task = make_task(1, status=TaskStatus.IN_PROGRESS, additional_columns={"Owner": "Ana"})

    d = task.to_dict()

    assert d == {
        "id": "task_1",
        "name": "Task 1",
        "status": "in-progress",
        "notes": "",
        "elapsedMs": 0,
        "createdAt": "2024-05-01T09:31:00Z",
        "updatedAt": "2024-05-01T09:31:30Z",
        "additionalColumns": {"Owner": "Ana"},
    }
    assert Task.from_dict(d) == task


def test_from_dict_defaults_missing_optional_fields() -> None:
    task = Task.from_dict(
        {
            "id": "t",
            "name": "n",
            "status": "done",
            "elapsedMs": 3,
            "createdAt": "2024-05-01T09:30:00",
            "updatedAt": 1714555800000,
        }
    )

    assert task.notes == ""
    assert task.additional_columns == {}
    assert task.created_at == BASE_TIME
    assert task.updated_at == BASE_TIME


@pytest.mark.parametrize(
    "record",
    [
        "not a dict",
        {"id": "t", "name": "n", "status": "blocked", "elapsedMs": 0, "createdAt": 0, "updatedAt": 0},
        {"id": "t", "name": "n", "status": "todo", "elapsedMs": 0, "createdAt": "yesterday", "updatedAt": 0},
        {"id": "t", "name": "n", "status": "todo", "elapsedMs": -1, "createdAt": 0, "updatedAt": 0},
        {"id": "", "name": "n", "status": "todo", "elapsedMs": 0, "createdAt": 0, "updatedAt": 0},
        {"id": "t", "name": "n", "status": "todo", "elapsedMs": 0, "createdAt": True, "updatedAt": 0},
        {
            "id": "t",
            "name": "n",
            "status": "todo",
            "elapsedMs": 0,
            "createdAt": 0,
            "updatedAt": 0,
            "additionalColumns": {"n": 1},
        },
    ],
)
def test_from_dict_rejects_malformed_records(record) -> None:
    with pytest.raises(ValidationError):
        Task.from_dict(record)


def test_validate_lists_every_problem() -> None:
    task = make_task(1, elapsed_ms=1.5, notes=None)

    with pytest.raises(ValidationError) as exc_info:
        task.validate()

    assert exc_info.value.error_code == "validation_error"
    assert len(exc_info.value.context["problems"]) == 2


def test_new_task_gets_generated_id() -> None:
    task = Task.new("Write report")

    assert re.fullmatch(r"task_\d+_[a-z0-9]{9}", task.id)
    assert task.status is TaskStatus.TODO
    assert task.created_at == task.updated_at
    assert task.created_at.tzinfo is not None


def test_parse_timestamp_variants() -> None:
    assert parse_timestamp("2024-05-01T09:30:00Z") == BASE_TIME
    assert parse_timestamp("2024-05-01T11:30:00+02:00") == BASE_TIME
    assert parse_timestamp(1714555800000) == BASE_TIME
    assert parse_timestamp(datetime(2024, 5, 1, 9, 30)) == BASE_TIME
    assert parse_timestamp(BASE_TIME).tzinfo is timezone.utc
    with pytest.raises(ValueError):
        parse_timestamp("")


def test_timer_state_round_trip() -> None:
    state = TimerState("task_1", is_running=True, start_time=1714555800000, elapsed_ms=1200)

    assert state.to_dict() == {
        "taskId": "task_1",
        "isRunning": True,
        "startTime": 1714555800000,
        "elapsedMs": 1200,
    }
    assert TimerState.from_dict(state.to_dict()) == state


def test_timer_state_accepts_integral_float_start_time() -> None:
    state = TimerState.from_dict({"taskId": "t", "isRunning": False, "startTime": 5.0, "elapsedMs": 0})

    assert state.start_time == 5
    assert isinstance(state.start_time, int)


@pytest.mark.parametrize(
    "record",
    [
        None,
        {"taskId": "t", "isRunning": 1, "startTime": 0, "elapsedMs": 0},
        {"taskId": "t", "isRunning": False, "startTime": 0},
        {"isRunning": False, "startTime": 0, "elapsedMs": 0},
    ],
)
def test_timer_state_rejects_malformed_records(record) -> None:
    with pytest.raises(ValidationError):
        TimerState.from_dict(record)
