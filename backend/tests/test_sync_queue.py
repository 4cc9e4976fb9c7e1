# Overview: Pytest coverage for the replication outbox.

import json
import logging

import pytest

from creditpos.extensions import db
from creditpos.models import SyncAction
from creditpos.services.repayment_service import RepaymentError, allocate_repayment
from creditpos.services.sync_service import SyncTransportError, process_sync_queue


class TestEnqueue:

    def test_each_operation_queues_one_action(self, db_session, customer, make_sale):
        make_sale(customer, total=1000, paid=0)
        allocate_repayment(customer_id=customer.id, amount_cents=400)

        actions = db_session.query(SyncAction).order_by(SyncAction.id).all()
        assert [a.action_type for a in actions] == ["invoice.settled", "customer.repayment"]
        assert all(a.status == "pending" and a.attempts == 0 for a in actions)
        assert len({a.idempotency_key for a in actions}) == 2
        assert json.loads(actions[1].payload)["applied_cents"] == 400

    def test_failed_operation_queues_nothing(self, db_session, customer):
        with pytest.raises(RepaymentError):
            allocate_repayment(customer_id=customer.id + 999, amount_cents=400)
        assert db_session.query(SyncAction).count() == 0


class TestDelivery:

    def test_successful_delivery_marks_synced(self, db_session, customer, make_sale):
        make_sale(customer, total=1000)
        delivered = []

        summary = process_sync_queue(transport=delivered.append)

        assert summary == {"attempted": 1, "synced": 1, "failed": 0, "pending": 0}
        action = db_session.query(SyncAction).one()
        assert action.status == "synced"
        assert action.synced_at is not None
        assert delivered[0]["idempotency_key"] == action.idempotency_key

    def test_failures_stay_pending_and_retry_with_same_key(self, db_session, customer, make_sale, caplog):
        make_sale(customer, total=1000)
        key = db_session.query(SyncAction).one().idempotency_key

        def offline(action):
            raise SyncTransportError("network unreachable")

        with caplog.at_level(logging.WARNING):
            summary = process_sync_queue(transport=offline)

        assert summary["failed"] == 1
        assert summary["pending"] == 1
        action = db_session.query(SyncAction).one()
        assert action.attempts == 1
        assert "network unreachable" in action.last_error
        assert "Sync delivery failed" in caplog.text

        seen = []
        process_sync_queue(transport=lambda a: seen.append(a["idempotency_key"]))

        action = db.session.get(SyncAction, action.id)
        assert action.status == "synced"
        assert action.attempts == 2
        assert seen == [key]

    def test_synced_actions_are_not_resent(self, db_session, customer, make_sale):
        make_sale(customer, total=1000)
        process_sync_queue(transport=lambda a: None)

        sent = []
        summary = process_sync_queue(transport=sent.append)

        assert sent == []
        assert summary["attempted"] == 0

    def test_simulated_uploader_failures_do_not_raise(self, app, db_session, customer, make_sale, monkeypatch):
        monkeypatch.setitem(app.config, "SYNC_SIMULATED_FAILURE_RATE", 1.0)
        make_sale(customer, total=1000)
        make_sale(customer, total=2000)

        summary = process_sync_queue()

        assert summary["failed"] == 2
        assert summary["pending"] == 2

    def test_batch_limit(self, db_session, customer, make_sale):
        for _ in range(3):
            make_sale(customer, total=1000)

        summary = process_sync_queue(transport=lambda a: None, limit=2)

        assert summary["synced"] == 2
        assert summary["pending"] == 1
