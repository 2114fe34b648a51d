import unittest

from app.ui_strings import MESSAGES, error_message, notification_text, request_ref


class UiStringsTest(unittest.TestCase):
    def test_every_notification_type_has_title_and_message(self) -> None:
        for notification_type in (
            "quotation_invitation",
            "quotation_received",
            "quotation_not_selected",
            "quotation_winner",
            "supplier_selected",
        ):
            title, message = notification_text(notification_type, request_id="abc123def456", supplier_name="Acme")
            self.assertTrue(title.strip(), f"empty title: {notification_type}")
            self.assertIn("#DEF456", message)

    def test_request_ref_uses_last_six_characters(self) -> None:
        self.assertEqual(request_ref("0f9c1e2d3a4b"), "2D3A4B")
        self.assertEqual(request_ref(None), "N/A")

    def test_missing_template_values_leave_template_untouched(self) -> None:
        _, message = notification_text("quotation_received", request_id="req-000001")
        self.assertIn("{supplier_name}", message)

    def test_reselection_variant_mentions_revocation(self) -> None:
        _, message = notification_text("quotation_winner", "reselection_message", request_id="req-1")
        self.assertIn("previous winner was revoked", message)

    def test_error_messages_are_not_empty(self) -> None:
        for key, text in MESSAGES["error"].items():
            self.assertTrue(text.strip(), f"empty error message: {key}")

    def test_error_message_falls_back(self) -> None:
        self.assertEqual(error_message("no_such_key", "fallback"), "fallback")
        self.assertEqual(error_message("no_such_key"), "no_such_key")


if __name__ == "__main__":
    unittest.main()
