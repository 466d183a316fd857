"""事件日志与状态报告测试"""

import pytest

from intentflow.core.errors import InvalidInputError, NoCurrentTaskError, TaskNotFoundError
from intentflow.core.events import EventManager
from intentflow.core.models import EventLogType, TaskStatus
from intentflow.core.report import generate_report
from intentflow.core.tasks import TaskManager


@pytest.fixture
def events(store_group) -> EventManager:
    return EventManager(store_group)


class TestEventManager:
    """add_event / list_events"""

    async def test_add_to_current_task(self, manager: TaskManager, events: EventManager):
        task = await manager.add_task(name="Focus")
        await manager.start_task(task.id)

        event = await events.add_event("decision", "use sqlite")

        assert event.task_id == task.id
        assert event.log_type == EventLogType.DECISION

    async def test_add_without_focus(self, manager: TaskManager, events: EventManager):
        await manager.add_task(name="Idle")
        with pytest.raises(NoCurrentTaskError):
            await events.add_event("note", "nowhere to go")

    async def test_invalid_type(self, manager: TaskManager, events: EventManager):
        task = await manager.add_task(name="Task")
        with pytest.raises(InvalidInputError):
            await events.add_event("rant", "??", task_id=task.id)

    async def test_unknown_task(self, events: EventManager):
        with pytest.raises(TaskNotFoundError):
            await events.add_event("note", "hello", task_id=12)

    async def test_list_newest_first_with_filters(
        self, manager: TaskManager, events: EventManager
    ):
        a = await manager.add_task(name="A")
        b = await manager.add_task(name="B")
        await events.add_event("note", "first", task_id=a.id)
        await events.add_event("blocker", "second", task_id=a.id)
        await events.add_event("note", "third", task_id=b.id)

        all_events = await events.list_events()
        assert [e.discussion_data for e in all_events] == ["third", "second", "first"]

        only_a = await events.list_events(task_id=a.id)
        assert [e.discussion_data for e in only_a] == ["second", "first"]

        notes = await events.list_events(log_type="note", limit=1)
        assert [e.discussion_data for e in notes] == ["third"]

        recent = await events.list_events(since="1h")
        assert len(recent) == 3

    async def test_invalid_since(self, events: EventManager):
        with pytest.raises(InvalidInputError):
            await events.list_events(since="yesterday")

    async def test_events_removed_with_task(self, manager: TaskManager, events: EventManager):
        task = await manager.add_task(name="Temp")
        await events.add_event("note", "bye", task_id=task.id)
        await manager.delete_task(task.id)
        assert await events.list_events() == []


class TestGenerateReport:
    """generate_report"""

    async def test_summary_counts(self, store_group, manager: TaskManager, events: EventManager):
        a = await manager.add_task(name="A")
        await manager.add_task(name="B")
        c = await manager.add_task(name="C")
        await manager.start_task(a.id)
        await manager.start_task(c.id)
        await manager.done_task()
        await events.add_event("milestone", "C shipped", task_id=c.id)

        report = await generate_report(store_group)

        assert report.summary.total_tasks == 3
        assert report.summary.todo_count == 1
        assert report.summary.doing_count == 1
        assert report.summary.done_count == 1
        assert report.summary.total_events == 1
        assert report.summary.date_range is None
        assert report.tasks is None

    async def test_window_status_and_full(self, store_group, manager: TaskManager):
        a = await manager.add_task(name="A")
        await manager.add_task(name="B")
        await manager.start_task(a.id)

        report = await generate_report(store_group, since="7d", status="doing", summary_only=False)

        assert report.summary.total_tasks == 1
        assert report.summary.date_range is not None
        assert report.summary.date_range.start < report.summary.date_range.end
        assert [t.status for t in report.tasks] == [TaskStatus.DOING]

    async def test_invalid_status(self, store_group):
        with pytest.raises(InvalidInputError):
            await generate_report(store_group, status="paused")
