import unittest

from app.db import close_db
from tests.helpers.rfq_app import RecordingNotificationGateway, build_rfq_app
from tests.helpers.temp_db import TempDbSandbox


class RfqRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="rfq_routes")
        self.notifications = RecordingNotificationGateway()
        self.app = build_rfq_app(self._temp_db, notifications=self.notifications)
        self.client = self.app.test_client()
        self.headers = {"X-Tenant-Id": "tenant-routes"}

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _post(self, path: str, payload: dict | None = None):
        return self.client.post(path, json=payload or {}, headers=self.headers)

    def _create_request(self) -> str:
        response = self._post(
            "/api/rfq/requests",
            {"code": "REQ-77", "title": "Laptops", "requester_id": "requester-1", "requester_email": "r@example.com"},
        )
        self.assertEqual(response.status_code, 201)
        return response.get_json()["id"]

    def _invite(self, request_id: str, suppliers: list[str]) -> list[str]:
        response = self._post(
            f"/api/rfq/requests/{request_id}/invitations",
            {"supplier_ids": suppliers, "manager_id": "manager-1", "due_date": "2026-03-20"},
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["invitation_ids"]

    def _quote(self, invitation_id: str, supplier_id: str, amount: float, days: int) -> dict:
        response = self._post(
            f"/api/rfq/invitations/{invitation_id}/quotations",
            {
                "supplier_id": supplier_id,
                "supplier_name": f"Supplier {supplier_id}",
                "total_amount": amount,
                "currency": "EUR",
                "delivery_days": days,
                "payment_terms": "Net 30",
                "valid_until": "2026-05-01",
            },
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def test_full_flow_over_http(self) -> None:
        request_id = self._create_request()
        invitation_ids = self._invite(request_id, ["sup-1", "sup-2"])

        viewed = self._post(f"/api/rfq/invitations/{invitation_ids[0]}/view")
        self.assertEqual(viewed.get_json()["status"], "viewed")

        first = self._quote(invitation_ids[0], "sup-1", 2000, 5)
        second = self._quote(invitation_ids[1], "sup-2", 1800, 7)
        self.assertEqual(first["currency"], "EUR")
        self.assertEqual(first["status"], "submitted")

        compared = self._post(f"/api/rfq/requests/{request_id}/compare", {"quality_scores": {"sup-1": 90, "sup-2": 60}})
        self.assertEqual(compared.status_code, 200)
        ranked = compared.get_json()["items"]
        self.assertEqual(len(ranked), 2)
        self.assertTrue(all(item["ranking_score"] is not None for item in ranked))

        patched = self.client.patch(
            f"/api/rfq/quotations/{second['id']}",
            json={"total_amount": 1750, "notes": "Free shipping"},
            headers=self.headers,
        )
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.get_json()["total_amount"], 1750.0)

        awarded = self._post(
            f"/api/rfq/requests/{request_id}/winner",
            {"quotation_id": second["id"], "requester_user_id": "requester-1"},
        )
        self.assertEqual(awarded.status_code, 200)
        self.assertTrue(awarded.get_json()["is_winner"])

        again = self._post(
            f"/api/rfq/requests/{request_id}/winner",
            {"quotation_id": first["id"], "requester_user_id": "requester-1"},
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.get_json()["error"], "already_awarded")

        revoked = self._post(f"/api/rfq/requests/{request_id}/winner/revoke", {"manager_id": "manager-1"})
        self.assertEqual(revoked.get_json()["status"], "revoked")

        candidates = self.client.get(f"/api/rfq/requests/{request_id}/reselection-candidates", headers=self.headers)
        self.assertEqual([item["supplier_id"] for item in candidates.get_json()["items"]], ["sup-1"])

        penalized = self._post(
            f"/api/rfq/requests/{request_id}/reselect",
            {"quotation_id": second["id"], "manager_id": "manager-1"},
        )
        self.assertEqual(penalized.status_code, 422)
        self.assertEqual(penalized.get_json()["error"], "penalized_supplier")

        reselected = self._post(
            f"/api/rfq/requests/{request_id}/reselect",
            {"quotation_id": first["id"], "manager_id": "manager-1"},
        )
        self.assertEqual(reselected.status_code, 200)
        self.assertTrue(reselected.get_json()["is_reselection"])

        history = self.client.get(f"/api/rfq/requests/{request_id}/status-events", headers=self.headers).get_json()
        self.assertEqual(
            [item["to_status"] for item in history["items"]],
            ["awarded", "quoting", "awarded", "quoting"],
        )

    def test_invitation_and_quotation_listings(self) -> None:
        request_id = self._create_request()
        invitation_ids = self._invite(request_id, ["sup-1", "sup-2"])
        quote = self._quote(invitation_ids[0], "sup-1", 500, 3)

        by_request = self.client.get(f"/api/rfq/requests/{request_id}/invitations", headers=self.headers)
        self.assertEqual(len(by_request.get_json()["items"]), 2)
        by_supplier = self.client.get("/api/rfq/suppliers/sup-1/invitations", headers=self.headers)
        self.assertEqual([item["id"] for item in by_supplier.get_json()["items"]], [invitation_ids[0]])

        quotes = self.client.get("/api/rfq/suppliers/sup-1/quotations", headers=self.headers).get_json()
        self.assertEqual([item["id"] for item in quotes["items"]], [quote["id"]])

        cancelled = self._post(f"/api/rfq/quotations/{quote['id']}/cancel", {"invitation_id": invitation_ids[0]})
        self.assertEqual(cancelled.get_json()["status"], "cancelled")

        declined = self._post(f"/api/rfq/invitations/{invitation_ids[1]}/decline")
        self.assertEqual(declined.get_json()["status"], "declined")

        other_tenant = self.client.get(
            f"/api/rfq/requests/{request_id}/invitations",
            headers={"X-Tenant-Id": "tenant-elsewhere"},
        )
        self.assertEqual(other_tenant.get_json()["items"], [])

    def test_comment_thread(self) -> None:
        request_id = self._create_request()
        thread = f"/api/rfq/requests/{request_id}/suppliers/sup-1/comments"

        asked = self._post(thread, {"author_id": "sup-1", "author_role": "supplier", "body": "Is VAT included?"})
        self.assertEqual(asked.status_code, 201)
        answered = self._post(thread, {"author_id": "manager-1", "author_role": "manager", "body": "No, quote net."})
        self.assertEqual(answered.status_code, 201)

        items = self.client.get(thread, headers=self.headers).get_json()["items"]
        self.assertEqual([item["author_role"] for item in items], ["supplier", "manager"])
        self.assertFalse(any(item["read"] for item in items))

        marked = self._post(f"{thread}/read", {"author_role": "supplier"})
        self.assertEqual(marked.get_json()["updated"], 1)
        items = self.client.get(thread, headers=self.headers).get_json()["items"]
        self.assertEqual([item["read"] for item in items], [True, False])

        invalid = self._post(thread, {"author_id": "x", "author_role": "auditor", "body": "hello"})
        self.assertEqual(invalid.status_code, 400)
        empty = self._post(thread, {"author_id": "sup-1", "author_role": "supplier", "body": "   "})
        self.assertEqual(empty.status_code, 400)

    def test_malformed_dates_are_rejected_with_field_errors(self) -> None:
        bad_request = self._post("/api/rfq/requests", {"code": "REQ-78", "due_date": 5})
        self.assertEqual(bad_request.status_code, 400)
        self.assertEqual(bad_request.get_json()["error"], "due_date_invalid")

        request_id = self._create_request()
        bad_invite = self._post(
            f"/api/rfq/requests/{request_id}/invitations",
            {"supplier_ids": ["sup-1"], "manager_id": "manager-1", "due_date": "next friday"},
        )
        self.assertEqual(bad_invite.status_code, 400)
        self.assertEqual(bad_invite.get_json()["error"], "due_date_invalid")

        invitation_id = self._invite(request_id, ["sup-1"])[0]
        bad_quote = self._post(
            f"/api/rfq/invitations/{invitation_id}/quotations",
            {
                "supplier_id": "sup-1",
                "supplier_name": "Supplier sup-1",
                "total_amount": 100,
                "currency": "EUR",
                "delivery_days": 5,
                "payment_terms": "Net 30",
                "valid_until": 20260501,
            },
        )
        self.assertEqual(bad_quote.status_code, 400)
        self.assertEqual(bad_quote.get_json()["error"], "valid_until_invalid")

    def test_health_reports_side_effect_dispatcher(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["db"], "sqlite")
        self.assertEqual(payload["side_effects"]["mode"], "inline")
        self.assertIn("requests_total", payload["metrics"])


if __name__ == "__main__":
    unittest.main()
