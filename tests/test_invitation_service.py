import unittest
from datetime import date
from unittest.mock import patch

from app.contexts.rfq.infrastructure.repositories import ProcurementRequestRepository, StatusEventRepository
from app.db import close_db, get_db
from app.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from tests.helpers.rfq_app import (
    RecordingEmailGateway,
    RecordingNotificationGateway,
    build_rfq_app,
    quotation_input,
    seed_request,
)
from tests.helpers.temp_db import TempDbSandbox


class InvitationServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="rfq_invitations")
        self.notifications = RecordingNotificationGateway()
        self.email = RecordingEmailGateway()
        self.app = build_rfq_app(self._temp_db, notifications=self.notifications, email=self.email)
        self.engine = self.app.extensions["rfq_engine"]
        self.tenant_id = "tenant-invites"

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _invite(self, db, request_id: str, suppliers=("sup-1", "sup-2")) -> list[str]:
        return self.engine.invitations.invite(
            db,
            tenant_id=self.tenant_id,
            request_id=request_id,
            supplier_ids=list(suppliers),
            manager_id="manager-1",
            due_date="2026-03-20",
            message="Please quote by the due date",
        )

    def test_invite_creates_pending_invitations_and_moves_request_to_quoting(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)

            invitation_ids = self._invite(db, request_id)

            self.assertEqual(len(invitation_ids), 2)
            invitations = self.engine.invitations.list_by_request(db, tenant_id=self.tenant_id, request_id=request_id)
            self.assertEqual({item.status for item in invitations}, {"pending"})
            self.assertEqual({item.supplier_id for item in invitations}, {"sup-1", "sup-2"})

            row = ProcurementRequestRepository(tenant_id=self.tenant_id).get_by_id(db, request_id)
            self.assertEqual(row["status"], "quoting")
            self.assertTrue(row["quotation_started_at"])

            events = StatusEventRepository(tenant_id=self.tenant_id).list_for_entity(
                db, entity="request", entity_id=request_id
            )
            self.assertEqual(events[0]["to_status"], "quoting")
            self.assertEqual(events[0]["from_status"], "pending")

    def test_invite_notifies_each_supplier_and_sends_one_email_batch(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            self._invite(db, request_id)

        self.assertEqual(self.notifications.types_for("sup-1"), ["quotation_invitation"])
        self.assertEqual(self.notifications.types_for("sup-2"), ["quotation_invitation"])
        self.assertEqual(len(self.email.invitations), 1)
        batch = self.email.invitations[0]
        self.assertEqual(batch["supplier_ids"], ["sup-1", "sup-2"])
        self.assertEqual(batch["requester_email"], "requester@example.com")
        self.assertEqual(batch["request_meta"]["code"], "REQ-0001")

    def test_second_invite_does_not_transition_request_again(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            self._invite(db, request_id, suppliers=("sup-1",))
            started_at = ProcurementRequestRepository(tenant_id=self.tenant_id).get_by_id(db, request_id)[
                "quotation_started_at"
            ]

            self._invite(db, request_id, suppliers=("sup-3",))

            row = ProcurementRequestRepository(tenant_id=self.tenant_id).get_by_id(db, request_id)
            self.assertEqual(row["status"], "quoting")
            self.assertEqual(row["quotation_started_at"], started_at)
            events = StatusEventRepository(tenant_id=self.tenant_id).list_for_entity(
                db, entity="request", entity_id=request_id
            )
            self.assertEqual(len(events), 1)

    def test_invite_validates_inputs(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            with self.assertRaises(ValidationError):
                self._invite(db, request_id, suppliers=())
            with self.assertRaises(ValidationError):
                self._invite(db, request_id, suppliers=("  ", ""))
            with self.assertRaises(NotFoundError):
                self._invite(db, "missing-request")
            for bad_due_date in (5, "next week", ["2026-03-20"]):
                with self.subTest(due_date=bad_due_date):
                    with self.assertRaises(ValidationError) as ctx:
                        self.engine.invitations.invite(
                            db,
                            tenant_id=self.tenant_id,
                            request_id=request_id,
                            supplier_ids=["sup-1"],
                            manager_id="manager-1",
                            due_date=bad_due_date,
                        )
                    self.assertEqual(ctx.exception.code, "due_date_invalid")

            self.assertEqual(
                self.engine.invitations.list_by_request(db, tenant_id=self.tenant_id, request_id=request_id),
                [],
            )

    def test_mark_viewed_then_decline(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            invitation_id = self._invite(db, request_id, suppliers=("sup-1",))[0]

            viewed = self.engine.invitations.mark_viewed(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            self.assertEqual(viewed.status, "viewed")
            self.assertTrue(viewed.viewed_at)

            again = self.engine.invitations.mark_viewed(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            self.assertEqual(again.viewed_at, viewed.viewed_at)

            declined = self.engine.invitations.decline(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            self.assertEqual(declined.status, "declined")

            with self.assertRaises(InvalidStateTransitionError):
                self.engine.invitations.mark_viewed(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            with self.assertRaises(InvalidStateTransitionError):
                self.engine.invitations.decline(db, tenant_id=self.tenant_id, invitation_id=invitation_id)

    def test_declined_invitation_cannot_receive_a_quotation(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            invitation_id = self._invite(db, request_id, suppliers=("sup-1",))[0]
            self.engine.invitations.decline(db, tenant_id=self.tenant_id, invitation_id=invitation_id)

            with self.assertRaises(InvalidStateTransitionError) as ctx:
                self.engine.quotations.submit(
                    db,
                    tenant_id=self.tenant_id,
                    invitation_id=invitation_id,
                    supplier_id="sup-1",
                    supplier_name="Supplier One",
                    data=quotation_input(),
                )
            self.assertEqual(ctx.exception.payload["entity"], "invitation")
            self.assertEqual(
                self.engine.quotations.list_by_request(db, tenant_id=self.tenant_id, request_id=request_id),
                [],
            )

    def test_quoted_invitation_cannot_be_declined(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            invitation_id = self._invite(db, request_id, suppliers=("sup-1",))[0]
            self.engine.quotations.submit(
                db,
                tenant_id=self.tenant_id,
                invitation_id=invitation_id,
                supplier_id="sup-1",
                supplier_name="Supplier One",
                data=quotation_input(),
            )
            with self.assertRaises(InvalidStateTransitionError):
                self.engine.invitations.decline(db, tenant_id=self.tenant_id, invitation_id=invitation_id)

    def test_list_by_supplier_is_tenant_scoped(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            self._invite(db, request_id, suppliers=("sup-1",))
            other_request = seed_request(db, "tenant-other")
            self.engine.invitations.invite(
                db,
                tenant_id="tenant-other",
                request_id=other_request,
                supplier_ids=["sup-1"],
                manager_id="manager-9",
                due_date="2026-03-20",
            )

            mine = self.engine.invitations.list_by_supplier(db, tenant_id=self.tenant_id, supplier_id="sup-1")
            self.assertEqual([item.request_id for item in mine], [request_id])

    def test_missing_invitation_raises_not_found(self) -> None:
        with self.app.app_context():
            with self.assertRaises(NotFoundError):
                self.engine.invitations.mark_viewed(get_db(), tenant_id=self.tenant_id, invitation_id="nope")

    def test_due_date_is_stored_as_iso_date(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            invitation_id = self.engine.invitations.invite(
                db,
                tenant_id=self.tenant_id,
                request_id=request_id,
                supplier_ids=["sup-1"],
                manager_id="manager-1",
                due_date=date(2026, 3, 20),
            )[0]
            invitation = self.engine.invitations.get(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            self.assertEqual(invitation.due_date, "2026-03-20")

    def test_decline_loses_to_a_quotation_submitted_after_the_read(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            invitation_id = self._invite(db, request_id, suppliers=("sup-1",))[0]
            service = self.engine.invitations
            read_invitation = service.get
            interleaved = []

            def read_then_submit(*args, **kwargs):
                invitation = read_invitation(*args, **kwargs)
                if not interleaved:
                    interleaved.append(
                        self.engine.quotations.submit(
                            db,
                            tenant_id=self.tenant_id,
                            invitation_id=invitation_id,
                            supplier_id="sup-1",
                            supplier_name="Supplier One",
                            data=quotation_input(),
                        )
                    )
                return invitation

            with patch.object(service, "get", side_effect=read_then_submit):
                with self.assertRaises(InvalidStateTransitionError) as ctx:
                    service.decline(db, tenant_id=self.tenant_id, invitation_id=invitation_id)

            self.assertEqual(ctx.exception.current_status, "quoted")
            invitation = service.get(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            self.assertEqual(invitation.status, "quoted")
            self.assertEqual(invitation.quotation_id, interleaved[0])
            quotations = self.engine.quotations.list_by_request(db, tenant_id=self.tenant_id, request_id=request_id)
            self.assertEqual([item.status for item in quotations], ["submitted"])

    def test_mark_viewed_after_concurrent_decline_is_rejected(self) -> None:
        with self.app.app_context():
            db = get_db()
            request_id = seed_request(db, self.tenant_id)
            invitation_id = self._invite(db, request_id, suppliers=("sup-1",))[0]
            service = self.engine.invitations
            read_invitation = service.get
            interleaved = []

            def read_then_decline(*args, **kwargs):
                invitation = read_invitation(*args, **kwargs)
                if not interleaved:
                    interleaved.append(invitation.id)
                    with patch.object(service, "get", side_effect=read_invitation):
                        service.decline(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
                return invitation

            with patch.object(service, "get", side_effect=read_then_decline):
                with self.assertRaises(InvalidStateTransitionError):
                    service.mark_viewed(db, tenant_id=self.tenant_id, invitation_id=invitation_id)

            invitation = service.get(db, tenant_id=self.tenant_id, invitation_id=invitation_id)
            self.assertEqual(invitation.status, "declined")
            self.assertIsNone(invitation.viewed_at)


if __name__ == "__main__":
    unittest.main()
