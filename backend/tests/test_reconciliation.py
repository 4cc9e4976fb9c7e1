# Overview: Pytest coverage for aggregate conservation and drift reporting.

"""
Conservation Tests

After every reachable operation the stored Customer aggregate must equal a
recomputation from invoices, ledger entries and return history.
"""

from creditpos.extensions import db
from creditpos.models import Customer, InvoiceLine, LedgerEntry
from creditpos.services.adjustment_service import apply_manual_adjustment
from creditpos.services.balance_service import _entry_effect, reconcile_all, reconcile_customer
from creditpos.services.repayment_service import allocate_repayment, pay_invoice
from creditpos.services.return_service import process_return
from creditpos.services.void_service import void_invoice


def _assert_consistent(customer_id):
    report = reconcile_customer(customer_id)
    assert report["consistent"], report
    return report


def _line_id(invoice):
    return db.session.query(InvoiceLine).filter_by(invoice_id=invoice.id).first().id


class TestConservation:

    def test_mixed_history_stays_consistent(self, db_session, customer, make_sale):
        a = make_sale(customer, total=10000, paid=4000, quantity=2)
        _assert_consistent(customer.id)
        b = make_sale(customer, total=3000, paid=0, quantity=3)
        _assert_consistent(customer.id)
        apply_manual_adjustment(customer_id=customer.id, entry_type="debt", amount_cents=800)
        _assert_consistent(customer.id)
        allocate_repayment(customer_id=customer.id, amount_cents=7000)
        _assert_consistent(customer.id)
        process_return(invoice_id=b.id, items=[{"invoice_line_id": _line_id(b), "quantity": 2}])
        _assert_consistent(customer.id)
        apply_manual_adjustment(customer_id=customer.id, entry_type="adjustment",
                                direction="credit", amount_cents=99999)
        _assert_consistent(customer.id)
        process_return(invoice_id=a.id, items=[{"invoice_line_id": _line_id(a), "quantity": 1}])
        _assert_consistent(customer.id)
        c = make_sale(customer, total=2500, paid=0)
        pay_invoice(invoice_id=c.id, amount_cents=1000)
        _assert_consistent(customer.id)
        allocate_repayment(customer_id=customer.id, amount_cents=50000)
        report = _assert_consistent(customer.id)

        assert report["actual"]["total_debt_cents"] == 0
        assert db.session.get(Customer, customer.id).total_debt_cents >= 0

    def test_voids_stay_consistent_under_both_policies(self, db_session, customer, make_sale):
        kept = make_sale(customer, total=5000, paid=1000)
        void_invoice(invoice_id=kept.id)
        _assert_consistent(customer.id)

        reversed_ = make_sale(customer, total=2000, paid=500)
        void_invoice(invoice_id=reversed_.id, reverse_debt=True)
        report = _assert_consistent(customer.id)

        # 4000 left by the first void, 1500 retired by the second
        assert report["actual"]["total_debt_cents"] == 4000
        assert report["actual"]["loyalty_points"] == 50

    def test_reconcile_all_reports_only_drift(self, db_session, customer, other_customer, make_sale):
        make_sale(customer, total=1000, paid=0)
        make_sale(other_customer, total=1000, paid=0)

        assert reconcile_all() == {"checked": 2, "drifted": 0, "customers": []}


class TestDriftDetection:

    def test_tampered_aggregate_is_reported(self, db_session, customer, make_sale):
        make_sale(customer, total=1000, paid=0)
        c = db.session.get(Customer, customer.id)
        c.total_debt_cents = 1500
        db_session.commit()

        report = reconcile_customer(customer.id)

        assert report["consistent"] is False
        assert report["drift"] == {"total_debt_cents": 500}
        assert report["expected"]["total_debt_cents"] == 1000

        summary = reconcile_all()
        assert summary["drifted"] == 1
        assert summary["customers"][0]["customer_id"] == customer.id

    def test_reconcile_is_read_only(self, db_session, customer, make_sale):
        make_sale(customer, total=1000, paid=0)
        c = db.session.get(Customer, customer.id)
        c.loyalty_points = 0
        db_session.commit()

        reconcile_customer(customer.id)

        assert db.session.get(Customer, customer.id).loyalty_points == 0


class TestEntryReplay:

    def test_sale_debt_entry_is_counted_once(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=1000, paid=200)
        apply_manual_adjustment(customer_id=customer.id, entry_type="debt", amount_cents=300)

        linked = db_session.query(LedgerEntry).filter_by(invoice_id=invoice.id).one()
        manual = db_session.query(LedgerEntry).filter(LedgerEntry.invoice_id.is_(None)).one()

        assert linked.amount_cents == 800
        assert _entry_effect(linked) == 0
        assert _entry_effect(manual) == 300
        assert _assert_consistent(customer.id)["expected"]["total_debt_cents"] == 1100
