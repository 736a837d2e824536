import unittest
from datetime import date
from unittest.mock import patch

from _support import make_session, make_task

from app.models import ActivityLog, Provider, Task, TaskPriority, TaskStatus
from app.services.applier import IdempotentApplier
from app.services.normalizer import ChangeProvenance, ChangeSet, TaskField


def _changes(**fields):
    changes = ChangeSet(ChangeProvenance(Provider.JIRA, "PROJ-1", "jira:issue_updated"))
    for name, value in fields.items():
        changes.set(TaskField(name), value)
    return changes


class IdempotentApplierTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()
        self.applier = IdempotentApplier(self.db)

    def tearDown(self):
        self.db.close()

    def _logs(self):
        return self.db.query(ActivityLog).order_by(ActivityLog.id).all()

    def test_status_change_writes_one_entry(self):
        task = make_task(self.db, status=TaskStatus.IN_PROGRESS)

        applied = self.applier.apply(task.id, _changes(status=TaskStatus.DONE))

        self.assertEqual(applied, [TaskField.STATUS])
        self.db.refresh(task)
        self.assertEqual(task.status, TaskStatus.DONE)
        logs = self._logs()
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].action, "status_changed_by_jira")
        self.assertIsNone(logs[0].user_id)
        self.assertEqual(logs[0].task_id, task.id)
        self.assertEqual(
            logs[0].details_dict,
            {
                "from": "in_progress",
                "to": "done",
                "provider": "jira",
                "externalIssueKey": "PROJ-1",
                "event": "jira:issue_updated",
            },
        )

    def test_replay_is_a_no_op(self):
        task = make_task(self.db, status=TaskStatus.IN_PROGRESS)
        changes = _changes(status=TaskStatus.DONE)

        self.assertEqual(self.applier.apply(task.id, changes), [TaskField.STATUS])
        updated_at = self.db.query(Task).filter(Task.id == task.id).first().updated_at
        self.assertEqual(self.applier.apply(task.id, changes), [])

        self.assertEqual(len(self._logs()), 1)
        self.assertEqual(self.db.query(Task).filter(Task.id == task.id).first().updated_at, updated_at)

    def test_only_real_deltas_are_logged(self):
        task = make_task(self.db, title="Same", priority=TaskPriority.LOW)

        applied = self.applier.apply(task.id, _changes(title="Same", priority=TaskPriority.URGENT))

        self.assertEqual(applied, [TaskField.PRIORITY])
        self.assertEqual([log.action for log in self._logs()], ["priority_changed_by_jira"])

    def test_one_entry_per_changed_field(self):
        task = make_task(self.db)

        applied = self.applier.apply(
            task.id,
            _changes(title="Renamed", description="Body", due_date=date(2024, 5, 1), status=TaskStatus.REVIEW),
        )

        self.assertEqual(
            sorted(f.value for f in applied), ["description", "due_date", "status", "title"]
        )
        self.assertEqual(
            sorted(log.action for log in self._logs()),
            [
                "description_changed_by_jira",
                "due_date_changed_by_jira",
                "status_changed_by_jira",
                "title_changed_by_jira",
            ],
        )
        self.db.refresh(task)
        self.assertEqual(task.title, "Renamed")
        self.assertEqual(task.due_date, date(2024, 5, 1))

    def test_empty_and_missing_description_are_equal(self):
        task = make_task(self.db, description=None)
        self.assertEqual(self.applier.apply(task.id, _changes(description="")), [])
        self.assertEqual(self._logs(), [])

    def test_clearing_due_date(self):
        task = make_task(self.db, due_date=date(2024, 1, 2))
        self.assertEqual(self.applier.apply(task.id, _changes(due_date=None)), [TaskField.DUE_DATE])
        self.db.refresh(task)
        self.assertIsNone(task.due_date)
        self.assertEqual(self._logs()[0].details_dict["from"], "2024-01-02")

    def test_unknown_task_raises(self):
        with self.assertRaises(ValueError):
            self.applier.apply(12345, _changes(status=TaskStatus.DONE))

    def test_failed_commit_rolls_back(self):
        task = make_task(self.db, status=TaskStatus.TODO)

        with patch.object(self.db, "commit", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                self.applier.apply(task.id, _changes(status=TaskStatus.DONE, title="New"))

        self.assertEqual(self.db.query(ActivityLog).count(), 0)
        reloaded = self.db.query(Task).filter(Task.id == task.id).first()
        self.assertEqual(reloaded.status, TaskStatus.TODO)
        self.assertEqual(reloaded.title, "Write docs")


if __name__ == "__main__":
    unittest.main()
