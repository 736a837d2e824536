import unittest
from datetime import date

from app.models import Provider, TaskPriority, TaskStatus
from app.services.normalizer import (
    TaskField,
    normalize_azure_devops,
    normalize_github,
    normalize_jira,
)


def _jira_payload(items, fields):
    return {
        "webhookEvent": "jira:issue_updated",
        "issue": {"id": "10001", "key": "PROJ-1", "fields": fields},
        "changelog": {"items": items},
    }


class JiraNormalizerTests(unittest.TestCase):
    def test_status_change_uses_snapshot_category(self):
        payload = _jira_payload(
            [{"field": "status", "fieldId": "status", "toString": "Shipped"}],
            {
                "summary": "Unrelated title",
                "status": {"name": "Shipped", "statusCategory": {"key": "done"}},
            },
        )
        changes = normalize_jira(payload)

        self.assertEqual(changes.fields, {TaskField.STATUS: TaskStatus.DONE})
        self.assertEqual(changes.provenance.provider, Provider.JIRA)
        self.assertEqual(changes.provenance.external_issue_key, "PROJ-1")
        self.assertEqual(changes.provenance.raw_event_type, "jira:issue_updated")

    def test_fields_not_in_changelog_are_never_included(self):
        payload = _jira_payload(
            [{"field": "summary", "toString": "New title"}],
            {"summary": "New title", "priority": {"name": "Highest"}, "duedate": "2024-01-01"},
        )
        changes = normalize_jira(payload)
        self.assertEqual(changes.fields, {TaskField.TITLE: "New title"})

    def test_falls_back_to_changelog_when_snapshot_lacks_field(self):
        payload = _jira_payload([{"field": "priority", "toString": "High"}], {})
        self.assertEqual(normalize_jira(payload).fields, {TaskField.PRIORITY: TaskPriority.HIGH})

    def test_cleared_due_date_is_present_with_none(self):
        payload = _jira_payload([{"field": "duedate", "fieldId": "duedate"}], {"duedate": None})
        changes = normalize_jira(payload)
        self.assertIn(TaskField.DUE_DATE, changes)
        self.assertIsNone(changes.fields[TaskField.DUE_DATE])

    def test_due_date_display_name(self):
        payload = _jira_payload([{"field": "Due Date", "to": "2024-06-30"}], {})
        self.assertEqual(normalize_jira(payload).fields, {TaskField.DUE_DATE: date(2024, 6, 30)})

    def test_description_is_flattened(self):
        adf = {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Hi"}]}]}
        payload = _jira_payload([{"field": "description"}], {"description": adf})
        self.assertEqual(normalize_jira(payload).fields, {TaskField.DESCRIPTION: "Hi"})

    def test_unknown_fields_and_missing_changelog(self):
        payload = _jira_payload([{"field": "assignee"}, {"field": "labels"}], {"summary": "x"})
        self.assertTrue(normalize_jira(payload).is_empty())
        payload.pop("changelog")
        self.assertTrue(normalize_jira(payload).is_empty())


class GitHubNormalizerTests(unittest.TestCase):
    def _payload(self, action, **extra):
        payload = {
            "action": action,
            "issue": {"id": 555, "number": 3, "state": "open", "title": "T", "body": "B", "labels": []},
            "repository": {"id": 99, "full_name": "acme/app"},
        }
        payload.update(extra)
        return payload

    def test_closed_and_reopened(self):
        payload = self._payload("closed")
        payload["issue"]["state"] = "closed"
        changes = normalize_github(payload)
        self.assertEqual(changes.fields, {TaskField.STATUS: TaskStatus.DONE})
        self.assertEqual(changes.provenance.external_issue_key, "555")
        self.assertEqual(changes.provenance.raw_event_type, "issues.closed")

        self.assertEqual(normalize_github(self._payload("reopened")).fields, {TaskField.STATUS: TaskStatus.TODO})

    def test_edited_only_includes_changed_fields(self):
        payload = self._payload("edited", changes={"title": {"from": "Old"}})
        self.assertEqual(normalize_github(payload).fields, {TaskField.TITLE: "T"})

        payload = self._payload("edited", changes={"body": {"from": "Old"}})
        payload["issue"]["body"] = None
        self.assertEqual(normalize_github(payload).fields, {TaskField.DESCRIPTION: ""})

    def test_priority_label(self):
        payload = self._payload("labeled", label={"name": "priority: high"})
        payload["issue"]["labels"] = [{"name": "priority: high"}]
        self.assertEqual(normalize_github(payload).fields, {TaskField.PRIORITY: TaskPriority.HIGH})

        payload = self._payload("unlabeled", label={"name": "priority: high"})
        self.assertEqual(normalize_github(payload).fields, {TaskField.PRIORITY: TaskPriority.MEDIUM})

    def test_status_label(self):
        payload = self._payload("labeled", label={"name": "in progress"})
        payload["issue"]["labels"] = [{"name": "in progress"}]
        self.assertEqual(normalize_github(payload).fields, {TaskField.STATUS: TaskStatus.IN_PROGRESS})

    def test_done_label_on_open_issue_is_not_a_status_change(self):
        payload = self._payload("labeled", label={"name": "done"})
        payload["issue"]["labels"] = [{"name": "done"}]
        self.assertTrue(normalize_github(payload).is_empty())

        payload = self._payload("unlabeled", label={"name": "resolved"})
        self.assertTrue(normalize_github(payload).is_empty())

    def test_done_label_on_closed_issue_still_counts(self):
        payload = self._payload("labeled", label={"name": "done"})
        payload["issue"]["state"] = "closed"
        payload["issue"]["labels"] = [{"name": "done"}]
        self.assertEqual(normalize_github(payload).fields, {TaskField.STATUS: TaskStatus.DONE})

    def test_unrelated_label_is_ignored(self):
        payload = self._payload("labeled", label={"name": "bug"})
        self.assertTrue(normalize_github(payload).is_empty())

    def test_milestone_due_date(self):
        payload = self._payload("milestoned")
        payload["issue"]["milestone"] = {"title": "v1", "due_on": "2024-09-01T07:00:00Z"}
        self.assertEqual(normalize_github(payload).fields, {TaskField.DUE_DATE: date(2024, 9, 1)})

        changes = normalize_github(self._payload("demilestoned", milestone={"due_on": "2024-09-01T07:00:00Z"}))
        self.assertEqual(changes.fields, {TaskField.DUE_DATE: None})

    def test_other_actions_carry_nothing(self):
        self.assertTrue(normalize_github(self._payload("opened")).is_empty())
        self.assertTrue(normalize_github(self._payload("assigned")).is_empty())


class AzureDevOpsNormalizerTests(unittest.TestCase):
    def test_changed_fields_read_from_revision(self):
        payload = {
            "eventType": "workitem.updated",
            "resource": {
                "id": 4,
                "workItemId": 42,
                "fields": {"System.State": {"oldValue": "New", "newValue": "Active"}},
                "revision": {
                    "id": 42,
                    "fields": {"System.State": "Active", "System.Title": "Unchanged title"},
                },
            },
        }
        changes = normalize_azure_devops(payload)
        self.assertEqual(changes.fields, {TaskField.STATUS: TaskStatus.IN_PROGRESS})
        self.assertEqual(changes.provenance.external_issue_key, "42")

    def test_falls_back_to_new_value(self):
        payload = {
            "eventType": "workitem.updated",
            "resource": {
                "workItemId": 42,
                "fields": {
                    "Microsoft.VSTS.Common.Priority": {"oldValue": 3, "newValue": 1},
                    "System.Description": {"newValue": "<p>Now <b>bold</b></p>"},
                    "System.Title": {"newValue": ""},
                },
            },
        }
        self.assertEqual(
            normalize_azure_devops(payload).fields,
            {TaskField.PRIORITY: TaskPriority.URGENT, TaskField.DESCRIPTION: "Now bold"},
        )


if __name__ == "__main__":
    unittest.main()
