import hashlib
import hmac
import json
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from _support import make_session, make_task, record_import

from app.config import settings
from app.main import app
from app.models import ActivityLog, TaskStatus
from app.models.base import get_db
from app.models.links import JiraLink
from app.services.webhook_service import WebhookService


JIRA_UPDATE = {
    "webhookEvent": "jira:issue_updated",
    "issue": {
        "key": "PROJ-1",
        "self": "https://api.atlassian.com/ex/jira/cloud-a/rest/api/3/issue/10001",
        "fields": {"status": {"name": "Done", "statusCategory": {"key": "done"}}},
    },
    "changelog": {"items": [{"field": "status", "toString": "Done"}]},
}


class WebhookRouteTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()

        def _get_db():
            yield self.db

        app.dependency_overrides[get_db] = _get_db
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.db.close()

    def test_jira_update_is_applied(self):
        link = JiraLink(issueKey="PROJ-1", cloudId="cloud-a")
        task = make_task(self.db, link, status=TaskStatus.IN_PROGRESS)
        record_import(self.db, task, link)

        with patch.object(settings, "jira_webhook_secret", None):
            resp = self.client.post("/api/webhooks/jira", json=JIRA_UPDATE)

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True})
        self.db.refresh(task)
        self.assertEqual(task.status, TaskStatus.DONE)

    def test_unmatched_delivery_is_still_acknowledged(self):
        with patch.object(settings, "jira_webhook_secret", None):
            resp = self.client.post("/api/webhooks/jira", json=JIRA_UPDATE)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.db.query(ActivityLog).count(), 0)

    def test_bearer_secret_required_when_configured(self):
        with patch.object(settings, "jira_webhook_secret", "s3cret"):
            missing = self.client.post("/api/webhooks/jira", json=JIRA_UPDATE)
            wrong = self.client.post(
                "/api/webhooks/jira", json=JIRA_UPDATE, headers={"Authorization": "Bearer nope"}
            )
            right = self.client.post(
                "/api/webhooks/jira", json=JIRA_UPDATE, headers={"Authorization": "Bearer s3cret"}
            )

        self.assertEqual(missing.status_code, 401)
        self.assertEqual(missing.json(), {"error": "Unauthorized"})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(right.status_code, 200)

    def test_github_signature_is_accepted(self):
        body = json.dumps({"zen": "Keep it simple."}).encode("utf-8")
        signature = "sha256=" + hmac.new(b"gh-secret", body, hashlib.sha256).hexdigest()

        with patch.object(settings, "github_webhook_secret", "gh-secret"):
            ok = self.client.post(
                "/api/webhooks/github",
                content=body,
                headers={"X-GitHub-Event": "ping", "X-Hub-Signature-256": signature},
            )
            bad = self.client.post(
                "/api/webhooks/github",
                content=body,
                headers={"X-GitHub-Event": "ping", "X-Hub-Signature-256": "sha256=deadbeef"},
            )

        self.assertEqual(ok.status_code, 200)
        self.assertEqual(bad.status_code, 401)

    def test_non_ascii_signature_is_unauthorized(self):
        with patch.object(settings, "github_webhook_secret", "gh-secret"):
            resp = self.client.post(
                "/api/webhooks/github",
                content=b"{}",
                headers={"X-GitHub-Event": "ping", "X-Hub-Signature-256": "sha256=é".encode("utf-8")},
            )

        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"error": "Unauthorized"})

    def test_azure_devops_unhandled_event(self):
        with patch.object(settings, "azure_devops_webhook_secret", None):
            resp = self.client.post("/api/webhooks/azure-devops", json={"eventType": "git.push"})
        self.assertEqual(resp.status_code, 200)

    def test_malformed_body_is_a_failure(self):
        with patch.object(settings, "azure_devops_webhook_secret", None):
            with self.assertLogs("app.api.webhooks", level="ERROR"):
                resp = self.client.post(
                    "/api/webhooks/azure-devops",
                    content=b"{not json",
                    headers={"Content-Type": "application/json"},
                )
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Webhook processing failed"})

    def test_processing_exception_returns_500(self):
        with patch.object(settings, "jira_webhook_secret", None), patch.object(
            WebhookService, "handle_jira", side_effect=RuntimeError("boom")
        ):
            with self.assertLogs("app.api.webhooks", level="ERROR"):
                resp = self.client.post("/api/webhooks/jira", json=JIRA_UPDATE)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Webhook processing failed"})


if __name__ == "__main__":
    unittest.main()
