import unittest

from app.contexts.notifications.dispatcher import SideEffectDispatcher
from app.contexts.notifications.handlers import RfqSideEffectHandlers
from app.core import EventBus, QuotationSubmitted, WinnerReselected, WinnerSelected
from tests.helpers.rfq_app import RecordingEmailGateway, RecordingNotificationGateway


def _quotation_submitted(**overrides) -> QuotationSubmitted:
    values = {
        "tenant_id": "tenant-a",
        "request_id": "req-000123",
        "quotation_id": "q-1",
        "invitation_id": "inv-1",
        "supplier_id": "sup-1",
        "supplier_name": "Acme Furniture",
        "manager_id": "manager-1",
    }
    values.update(overrides)
    return QuotationSubmitted(**values)


class EventBusTest(unittest.TestCase):
    def test_handler_execution_order_is_predictable(self) -> None:
        bus = EventBus()
        execution_trace = []

        bus.subscribe(QuotationSubmitted, lambda _event: execution_trace.append("first"))
        bus.subscribe(QuotationSubmitted, lambda _event: execution_trace.append("second"))
        bus.publish(_quotation_submitted())

        self.assertEqual(execution_trace, ["first", "second"])

    def test_handlers_only_receive_their_event_type(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(WinnerSelected, received.append)

        bus.publish(_quotation_submitted())

        self.assertEqual(received, [])

    def test_failing_handler_does_not_block_the_next_one(self) -> None:
        bus = EventBus()
        received = []

        def broken_handler(_event):
            raise RuntimeError("boom")

        bus.subscribe(QuotationSubmitted, broken_handler)
        bus.subscribe(QuotationSubmitted, received.append)
        with self.assertLogs("app", level="ERROR") as logs:
            bus.publish(_quotation_submitted())

        self.assertEqual(len(received), 1)
        self.assertTrue(any("event_handler_failed" in line for line in logs.output))

    def test_clear_removes_subscriptions(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(QuotationSubmitted, received.append)
        bus.clear()
        bus.publish(_quotation_submitted())
        self.assertEqual(received, [])

    def test_events_default_workspace_to_tenant(self) -> None:
        event = _quotation_submitted(tenant_id="tenant-z")
        self.assertEqual(event.workspace_id, "tenant-z")
        self.assertTrue(event.event_id)
        self.assertIsNotNone(event.occurred_at.tzinfo)


class RfqSideEffectHandlersTest(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        self.notifications = RecordingNotificationGateway()
        self.email = RecordingEmailGateway()
        dispatcher = SideEffectDispatcher(mode="inline", retry_backoff_ms=0)
        RfqSideEffectHandlers(dispatcher, self.notifications, self.email).register(self.bus)

    def test_quotation_submitted_notifies_the_manager(self) -> None:
        self.bus.publish(_quotation_submitted())

        self.assertEqual(self.notifications.types_for("manager-1"), ["quotation_received"])
        call = self.notifications.calls[0]
        self.assertEqual(call["tenant_id"], "tenant-a")
        self.assertEqual(call["related_id"], "req-000123")
        self.assertIn("Acme Furniture", call["message"])

    def test_winner_selected_notifies_everyone_and_emails(self) -> None:
        self.bus.publish(
            WinnerSelected(
                tenant_id="tenant-a",
                request_id="req-1",
                quotation_id="q-1",
                winner_supplier_id="sup-1",
                winner_supplier_name="Acme Furniture",
                requester_user_id="requester-1",
                rejected_supplier_ids=("sup-2", "sup-3"),
                amount=1200.0,
                currency="EUR",
                requester_email="requester@example.com",
            )
        )

        self.assertEqual(self.notifications.types_for("sup-1"), ["quotation_winner"])
        self.assertEqual(self.notifications.types_for("sup-2"), ["quotation_not_selected"])
        self.assertEqual(self.notifications.types_for("sup-3"), ["quotation_not_selected"])
        self.assertEqual(self.notifications.types_for("requester-1"), ["supplier_selected"])
        self.assertEqual(len(self.email.winners), 1)

    def test_winner_reselected_uses_reselection_message(self) -> None:
        self.bus.publish(
            WinnerReselected(
                tenant_id="tenant-a",
                request_id="req-1",
                quotation_id="q-2",
                winner_supplier_id="sup-2",
                winner_supplier_name="Globex",
                previous_winner_id="sup-1",
                manager_id="manager-1",
            )
        )

        self.assertEqual(self.notifications.types_for("sup-2"), ["quotation_winner"])
        self.assertIn("previous winner was revoked", self.notifications.calls[0]["message"])
        self.assertEqual(self.email.winners, [])


if __name__ == "__main__":
    unittest.main()
