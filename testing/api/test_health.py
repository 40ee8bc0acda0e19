"""Tests for health check endpoints."""

import os

# Set required environment variables before importing API modules
os.environ.setdefault("API_AUTH_TOKEN", "test-auth-token")

import unittest

from fastapi.testclient import TestClient

from src.api.app import app
from src.api.dependencies import get_reminder_service
from testing.dosing.fixtures import EngineHarness


class TestHealthEndpoint(unittest.TestCase):
    """Tests for /health endpoint."""

    def setUp(self) -> None:
        """Set up test client on an in-memory engine."""
        self.harness = EngineHarness(exact_timers_enabled=False)
        self.app = app
        self.app.dependency_overrides[get_reminder_service] = lambda: self.harness.service
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        """Remove the dependency override."""
        self.app.dependency_overrides.clear()

    def test_health_check_returns_200_without_token(self) -> None:
        """Test that health check needs no authentication."""
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)

    def test_health_check_returns_version(self) -> None:
        """Test that health check returns status and version."""
        data = self.client.get("/health").json()
        self.assertEqual(data["status"], "healthy")
        self.assertEqual(data["version"], "0.1.0")

    def test_health_check_reports_engine_state(self) -> None:
        """Test that health check reports the reminder engine state."""
        self.harness.service.schedule_medicine_reminders(
            "m1", "Metformin", "500mg", ["08:00", "20:00"]
        )

        data = self.client.get("/health").json()

        self.assertEqual(data["scheduled_reminders"], 2)
        self.assertFalse(data["can_schedule_exact"])


if __name__ == "__main__":
    unittest.main()
