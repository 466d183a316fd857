"""模型、枚举、错误结构与时间工具测试"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from intentflow.core.errors import (
    InvalidInputError,
    StoreBusyError,
    TaskBlockedError,
    invalid_input_from,
)
from intentflow.core.models import (
    NoneReason,
    PickNextResponse,
    PlanRequest,
    PriorityLevel,
    Task,
    TaskFilter,
    TaskStatus,
    TaskUpdate,
)
from intentflow.core.time_utils import parse_duration, since_cutoff, to_iso


class TestPriorityLevel:
    """PriorityLevel.parse / label"""

    @pytest.mark.parametrize(
        "value,expected",
        [("critical", 1), ("HIGH", 2), (" medium ", 3), ("low", 4), (7, 7), ("10", 10)],
    )
    def test_parse(self, value, expected):
        assert PriorityLevel.parse(value) == expected

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            PriorityLevel.parse("soon")
        with pytest.raises(ValueError):
            PriorityLevel.parse(True)

    def test_label(self):
        assert PriorityLevel.label(2) == "high"
        assert PriorityLevel.label(9) == "9"


class TestModels:
    """Task / TaskUpdate / TaskFilter / PlanRequest"""

    def test_paused_is_derived(self):
        task = Task(id=1, name="A", status=TaskStatus.DOING)
        assert task.is_paused(current_task_id=2)
        assert not task.is_paused(current_task_id=1)
        assert not Task(id=3, name="B").is_paused(current_task_id=None)

    def test_update_parent_tristate(self):
        assert not TaskUpdate(name="x").parent_id_provided
        assert TaskUpdate(parent_id=None).parent_id_provided
        assert TaskFilter.model_validate({"parent_id": None}).parent_id_provided
        assert not TaskFilter().parent_id_provided

    def test_update_rejects_bad_priority(self):
        with pytest.raises(ValidationError):
            TaskUpdate(priority="whenever")

    def test_plan_tree_iteration(self):
        request = PlanRequest.model_validate(
            {
                "tasks": [
                    {"name": "A", "children": [{"name": "B", "children": [{"name": "C"}]}]},
                    {"name": "D", "parent_id": None, "children": None},
                ]
            }
        )
        assert [n.name for n in request.iter_nodes()] == ["A", "B", "C", "D"]
        assert request.tasks[1].parent_id_provided
        assert not request.tasks[0].parent_id_provided

    def test_pick_next_none_text(self):
        response = PickNextResponse.none(NoneReason.NO_TASKS_IN_PROJECT)
        assert response.task is None
        assert "task add" in response.format_as_text()


class TestErrors:
    """EngineError 结构"""

    def test_error_response(self):
        exc = TaskBlockedError(5, [1, 2])
        payload = exc.to_error_response()
        assert payload["code"] == "TASK_BLOCKED"
        assert payload["retryable"] is False
        assert payload["details"] == {"task_id": 5, "blocking_task_ids": [1, 2]}
        assert "#1" in payload["message"]

    def test_busy_is_retryable(self):
        assert StoreBusyError().retryable is True

    def test_invalid_input_from_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            TaskFilter.model_validate({"status": "paused"})
        converted = invalid_input_from(exc_info.value)
        assert isinstance(converted, InvalidInputError)
        assert converted.details["errors"][0].startswith("status")


class TestTimeUtils:
    """时长解析与时间格式"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("7d", timedelta(days=7)),
            ("24h", timedelta(hours=24)),
            ("30m", timedelta(minutes=30)),
            ("45S", timedelta(seconds=45)),
        ],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "7", "d7", "1w", "-1d"])
    def test_parse_duration_invalid(self, value):
        with pytest.raises(InvalidInputError):
            parse_duration(value)

    def test_since_cutoff(self):
        assert since_cutoff(None) is None
        cutoff = since_cutoff("1h")
        delta = datetime.now(UTC) - cutoff
        assert timedelta(minutes=59) < delta < timedelta(minutes=61)

    def test_to_iso_fixed_precision(self):
        value = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert to_iso(value) == "2026-01-02T03:04:05.000000+00:00"
