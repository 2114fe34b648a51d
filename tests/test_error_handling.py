import unittest
from unittest.mock import patch

from app.db import close_db
from app.errors import InvalidStateTransitionError, NotFoundError, PolicyViolationError, not_found
from app.ui_strings import error_message
from tests.helpers.rfq_app import build_rfq_app
from tests.helpers.temp_db import TempDbSandbox


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = build_rfq_app(self._temp_db, PROPAGATE_EXCEPTIONS=False)
        self.client = self.app.test_client()
        self.headers = {"X-Tenant-Id": "tenant-error-api"}

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_missing_request_returns_not_found_payload(self) -> None:
        response = self.client.get("/api/rfq/requests/does-not-exist", headers=self.headers)
        self.assertEqual(response.status_code, 404)

        payload = response.get_json()
        self.assertEqual(payload.get("error"), "request_not_found")
        self.assertEqual(payload.get("message"), error_message("request_not_found"))
        self.assertEqual(payload.get("request_id"), response.headers.get("X-Request-Id"))

    def test_incoming_request_id_is_echoed(self) -> None:
        response = self.client.get(
            "/api/rfq/quotations/missing",
            headers={**self.headers, "X-Request-Id": "trace-123"},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.headers.get("X-Request-Id"), "trace-123")
        self.assertEqual(response.get_json()["request_id"], "trace-123")

    def test_validation_error_returns_400(self) -> None:
        response = self.client.post("/api/rfq/requests/any/invitations", json={"manager_id": "m"}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "suppliers_required")

        response = self.client.post("/api/rfq/requests", json=["not", "an", "object"], headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "json_object_required")

    def test_invalid_transition_payload_describes_the_conflict(self) -> None:
        created = self.client.post("/api/rfq/requests", json={}, headers=self.headers).get_json()
        invitation_id = self.client.post(
            f"/api/rfq/requests/{created['id']}/invitations",
            json={"supplier_ids": ["sup-1"], "manager_id": "manager-1", "due_date": "2026-03-20"},
            headers=self.headers,
        ).get_json()["invitation_ids"][0]
        self.client.post(f"/api/rfq/invitations/{invitation_id}/decline", headers=self.headers)

        response = self.client.post(f"/api/rfq/invitations/{invitation_id}/decline", headers=self.headers)

        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertEqual(payload["error"], "invalid_state_transition")
        self.assertEqual(payload["entity"], "invitation")
        self.assertEqual(payload["current_status"], "declined")
        self.assertEqual(payload["action"], "decline")

    def test_unexpected_errors_are_masked(self) -> None:
        with patch(
            "app.contexts.rfq.application.quotation_service.QuotationService.list_by_supplier",
            side_effect=RuntimeError("database exploded"),
        ):
            response = self.client.get("/api/rfq/suppliers/sup-1/quotations", headers=self.headers)

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertEqual(payload["message"], error_message("unexpected_error"))
        self.assertNotIn("database exploded", response.get_data(as_text=True))
        self.assertTrue((payload.get("request_id") or "").strip())


class AppErrorTest(unittest.TestCase):
    def test_not_found_helper_builds_entity_specific_code(self) -> None:
        error = not_found("quotation", "q-1")
        self.assertIsInstance(error, NotFoundError)
        self.assertEqual(error.code, "quotation_not_found")
        self.assertEqual(error.http_status, 404)
        self.assertEqual(error.payload, {"quotation_id": "q-1"})

    def test_invalid_transition_carries_context(self) -> None:
        error = InvalidStateTransitionError("quotation", "selected", "update")
        self.assertEqual(error.http_status, 409)
        self.assertFalse(error.critical)
        self.assertIn("selected", str(error))
        payload = error.to_response_payload("req-1")
        self.assertEqual(payload["request_id"], "req-1")
        self.assertEqual(payload["action"], "update")

    def test_policy_violation_maps_to_422(self) -> None:
        self.assertEqual(PolicyViolationError().http_status, 422)


if __name__ == "__main__":
    unittest.main()
