"""
Tests for the queue operations API and the health check.

Tests cover:
1. Dispatcher guard (403 without token, pass with token or manual mode)
2. Run and housekeeping triggers
3. Cooldown and task inspection endpoints
4. Health check
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.urls import reverse
from django.utils import timezone

TOKEN_HEADER = {"HTTP_X_INGESTION_DISPATCH_TOKEN": "test-dispatch-token"}


@pytest.mark.django_db
class TestDispatcherGuard:
    """Tests for IsInternalDispatcher."""

    @pytest.mark.parametrize(
        "name,method",
        [
            ("ingestion_api:run_queue", "post"),
            ("ingestion_api:run_housekeeping", "post"),
            ("ingestion_api:queue_cooldown", "get"),
            ("ingestion_api:queue_tasks", "get"),
        ],
    )
    def test_public_call_is_forbidden(self, api_client, name, method):
        """Test that calls without the dispatch token get 403."""
        response = getattr(api_client, method)(reverse(name), format="json")

        assert response.status_code == 403

    def test_wrong_token_is_forbidden(self, api_client):
        """Test that a wrong token is rejected."""
        response = api_client.post(
            reverse("ingestion_api:run_queue"),
            format="json",
            HTTP_X_INGESTION_DISPATCH_TOKEN="guess",
        )

        assert response.status_code == 403

    def test_empty_configured_token_rejects_everything(self, api_client, settings):
        """Test that an unset token never matches an empty header."""
        settings.INGESTION_DISPATCH_TOKEN = ""

        response = api_client.post(
            reverse("ingestion_api:run_queue"),
            format="json",
            HTTP_X_INGESTION_DISPATCH_TOKEN="",
        )

        assert response.status_code == 403

    def test_manual_mode_allows_calls(self, api_client, settings):
        """Test that manual mode opens the endpoints."""
        settings.INGESTION_ALLOW_MANUAL_RUN = True

        response = api_client.get(reverse("ingestion_api:queue_cooldown"))

        assert response.status_code == 200


@pytest.mark.django_db
class TestRunEndpoints:
    """Tests for the run triggers."""

    def test_run_returns_summary(self, api_client, tenant):
        """Test that an authorized run returns the run summary."""
        response = api_client.post(reverse("ingestion_api:run_queue"), format="json", **TOKEN_HEADER)

        assert response.status_code == 200
        assert response.json()["taken"] == 0
        assert response.json()["skipped_reason"] == ""

    def test_run_passes_overrides(self, api_client):
        """Test that focus tenant and batch size reach the run."""
        from ingestion.services.ingestion_worker import RunSummary

        with patch("ingestion.api.views.process_queue_run", return_value=RunSummary(taken=3, done=3)) as run:
            response = api_client.post(
                reverse("ingestion_api:run_queue"),
                {"focus_tenant": "gadget-lab", "batch_size": 3},
                format="json",
                **TOKEN_HEADER,
            )

        assert response.status_code == 200
        assert response.json()["done"] == 3
        run.assert_called_once_with(focus_tenant="gadget-lab", batch_size=3)

    def test_run_rejects_bad_batch_size(self, api_client):
        """Test that a non-positive batch size is a 400."""
        response = api_client.post(
            reverse("ingestion_api:run_queue"),
            {"batch_size": 0},
            format="json",
            **TOKEN_HEADER,
        )

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "name",
        [
            "ingestion_api:run_queue",
            "ingestion_api:run_housekeeping",
            "ingestion_api:queue_cooldown",
        ],
    )
    def test_non_object_body_is_rejected(self, api_client, name):
        """Test that a JSON array body is a 400 rather than a server error."""
        response = api_client.post(reverse(name), ["batch_size", 3], format="json", **TOKEN_HEADER)

        assert response.status_code == 400
        assert response.json()["error"] == "Request body must be a JSON object"

    def test_run_accepts_non_string_focus_tenant(self, api_client):
        """Test that a numeric focus tenant is treated as its text form."""
        from ingestion.services.ingestion_worker import RunSummary

        with patch("ingestion.api.views.process_queue_run", return_value=RunSummary()) as run:
            response = api_client.post(
                reverse("ingestion_api:run_queue"), {"focus_tenant": 42}, format="json", **TOKEN_HEADER
            )

        assert response.status_code == 200
        run.assert_called_once_with(focus_tenant="42", batch_size=None)

    def test_housekeeping_releases_stuck_tasks(self, api_client, tenant):
        """Test that the housekeeping endpoint runs a sweep."""
        from ingestion.models import QueueTask, TaskStatus

        QueueTask.objects.create(
            tenant=tenant,
            item_id="A",
            status=TaskStatus.PROCESSING,
            attempts=1,
            updated_at=timezone.now() - timedelta(hours=1),
        )

        response = api_client.post(
            reverse("ingestion_api:run_housekeeping"),
            {"processing_ttl_minutes": 15},
            format="json",
            **TOKEN_HEADER,
        )

        assert response.status_code == 200
        assert response.json()["released_stuck"] == 1
        assert QueueTask.objects.get(item_id="A").status == TaskStatus.QUEUED

    def test_housekeeping_unknown_tenant(self, api_client):
        """Test that an unknown tenant is a 404."""
        response = api_client.post(
            reverse("ingestion_api:run_housekeeping"),
            {"tenant": "nope"},
            format="json",
            **TOKEN_HEADER,
        )

        assert response.status_code == 404


@pytest.mark.django_db
class TestInspectionEndpoints:
    """Tests for cooldown and task inspection."""

    def test_cooldown_set_and_clear(self, api_client):
        """Test that the cooldown can be set and cleared through the API."""
        url = reverse("ingestion_api:queue_cooldown")

        response = api_client.post(url, {"minutes": 60, "reason": "maintenance"}, format="json", **TOKEN_HEADER)
        assert response.status_code == 200
        assert response.json()["active"] is True
        assert response.json()["reason"] == "maintenance"

        response = api_client.post(url, {"action": "clear"}, format="json", **TOKEN_HEADER)
        assert response.json()["active"] is False
        assert response.json()["until"] is None

    def test_cooldown_requires_minutes(self, api_client):
        """Test that a POST without minutes or clear is a 400."""
        response = api_client.post(
            reverse("ingestion_api:queue_cooldown"), {}, format="json", **TOKEN_HEADER
        )

        assert response.status_code == 400

    def test_tasks_listing(self, api_client, tenant):
        """Test that tasks are listed by status with counts."""
        from ingestion.queue.work_queue import WorkQueue

        queue = WorkQueue()
        queue.enqueue(tenant, "A")
        queue.enqueue(tenant, "B")

        response = api_client.get(
            reverse("ingestion_api:queue_tasks"),
            {"status": "queued", "tenant": "gadget-lab"},
            **TOKEN_HEADER,
        )

        data = response.json()
        assert response.status_code == 200
        assert data["counts"]["queued"] == 2
        assert {t["item_id"] for t in data["tasks"]} == {"A", "B"}
        assert data["tasks"][0]["tenant"] == "gadget-lab"

    def test_tasks_invalid_status(self, api_client):
        """Test that an unknown status is a 400."""
        response = api_client.get(
            reverse("ingestion_api:queue_tasks"), {"status": "lost"}, **TOKEN_HEADER
        )

        assert response.status_code == 400


@pytest.mark.django_db
class TestHealthCheck:
    """Tests for the health endpoint."""

    def test_healthy(self, api_client, tenant):
        """Test that the health check reports queue counts and cooldown."""
        from ingestion.queue.work_queue import WorkQueue

        WorkQueue().enqueue(tenant, "A")

        response = api_client.get("/api/health/")

        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["redis"] == "not_configured"
        assert data["queue"]["queued"] == 1
        assert data["global_cooldown"] == {"active": False, "until": None}

    def test_database_down(self, api_client):
        """Test that a database failure returns 503."""
        from django.db import DatabaseError

        with patch("ingestion.views.connection.ensure_connection", side_effect=DatabaseError("down")):
            response = api_client.get("/api/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "error"
