# Overview: Pytest coverage for point-in-time balance reconstruction and print figures.

"""
Historical Balance Reconstructor Tests

The figures for an invoice must depend only on records dated before it,
so a reprint after later sales, repayments, adjustments or voids shows the
same numbers it showed on the day.
"""

from datetime import datetime

import pytest

from creditpos.extensions import db
from creditpos.models import Customer
from creditpos.services.adjustment_service import apply_manual_adjustment
from creditpos.services.balance_service import (
    BalanceError,
    print_summary,
    reconstruct_balance_at_issue,
)
from creditpos.services.repayment_service import allocate_repayment, pay_invoice
from creditpos.services.return_service import process_return
from creditpos.services.void_service import void_invoice


JAN = datetime(2026, 1, 10, 9, 0)
FEB = datetime(2026, 2, 10, 9, 0)
MAR = datetime(2026, 3, 10, 9, 0)
APR = datetime(2026, 4, 10, 9, 0)


class TestBaseline:

    def test_first_invoice_has_no_prior_debt(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=10000, paid=4000, occurred_at=JAN)

        balance = reconstruct_balance_at_issue(invoice.id)

        assert balance["historical_debt_before_cents"] == 0
        assert balance["accumulated_cents"] == 10000
        assert balance["net_due_cents"] == 6000

    def test_anonymous_invoice(self, db_session, make_sale):
        invoice = make_sale(None, total=500)
        balance = reconstruct_balance_at_issue(invoice.id)
        assert balance["historical_debt_before_cents"] == 0
        assert balance["net_due_cents"] == 0

    def test_unknown_invoice(self, db_session):
        with pytest.raises(BalanceError):
            reconstruct_balance_at_issue(9999)


class TestReplay:

    def test_prior_invoice_and_entries_are_replayed(self, db_session, customer, make_sale):
        make_sale(customer, total=10000, paid=4000, occurred_at=JAN)          # +6000
        apply_manual_adjustment(customer_id=customer.id, entry_type="debt",
                                amount_cents=1000, occurred_at=JAN)            # +1000
        allocate_repayment(customer_id=customer.id, amount_cents=2000,
                           occurred_at=datetime(2026, 1, 20))                  # -2000
        apply_manual_adjustment(customer_id=customer.id, entry_type="adjustment", direction="credit",
                                amount_cents=500, occurred_at=datetime(2026, 1, 25))  # -500
        apply_manual_adjustment(customer_id=customer.id, entry_type="adjustment", direction="charge",
                                amount_cents=300, occurred_at=datetime(2026, 1, 26))  # +300

        second = make_sale(customer, total=2000, paid=500, occurred_at=FEB)

        balance = reconstruct_balance_at_issue(second.id)
        assert balance["historical_debt_before_cents"] == 4800
        assert balance["accumulated_cents"] == 6800
        assert balance["net_due_cents"] == 6300
        # Live aggregate agrees right after issue
        assert db.session.get(Customer, customer.id).total_debt_cents == 6300

    def test_entries_at_or_after_the_invoice_are_ignored(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=1000, paid=1000, occurred_at=FEB)
        apply_manual_adjustment(customer_id=customer.id, entry_type="debt", amount_cents=700, occurred_at=FEB)
        apply_manual_adjustment(customer_id=customer.id, entry_type="debt", amount_cents=900, occurred_at=MAR)

        assert reconstruct_balance_at_issue(invoice.id)["historical_debt_before_cents"] == 0

    def test_same_timestamp_orders_by_id(self, db_session, customer, make_sale):
        first = make_sale(customer, total=1000, paid=0, occurred_at=FEB)
        second = make_sale(customer, total=3000, paid=0, occurred_at=FEB)

        assert reconstruct_balance_at_issue(first.id)["historical_debt_before_cents"] == 0
        assert reconstruct_balance_at_issue(second.id)["historical_debt_before_cents"] == 1000

    def test_other_customers_do_not_leak(self, db_session, customer, other_customer, make_sale):
        make_sale(other_customer, total=5000, paid=0, occurred_at=JAN)
        mine = make_sale(customer, total=1000, paid=0, occurred_at=FEB)
        assert reconstruct_balance_at_issue(mine.id)["historical_debt_before_cents"] == 0


class TestHistoricalStability:

    def test_reprint_unchanged_by_later_activity(self, db_session, customer, make_sale):
        first = make_sale(customer, total=10000, paid=2000, occurred_at=JAN)
        second = make_sale(customer, total=5000, paid=1000, occurred_at=FEB)
        before = reconstruct_balance_at_issue(second.id)
        summary_before = print_summary(second.id)

        # Later: more sales, FIFO repayment touching the older invoice,
        # direct payment of the reprinted invoice, adjustments, a return and a void
        third = make_sale(customer, total=3000, paid=0, occurred_at=MAR)
        allocate_repayment(customer_id=customer.id, amount_cents=9000, occurred_at=MAR)
        pay_invoice(invoice_id=second.id, amount_cents=1000, occurred_at=APR)
        apply_manual_adjustment(customer_id=customer.id, entry_type="debt", amount_cents=1234, occurred_at=APR)
        line_id = third.to_dict()["lines"][0]["id"]
        process_return(invoice_id=third.id, items=[{"invoice_line_id": line_id, "quantity": 1}], occurred_at=APR)
        void_invoice(invoice_id=first.id, occurred_at=APR)

        assert reconstruct_balance_at_issue(second.id) == before
        assert print_summary(second.id) == summary_before
        assert before["historical_debt_before_cents"] == 8000

    def test_void_with_reversal_does_not_rewrite_history(self, db_session, customer, make_sale):
        first = make_sale(customer, total=4000, paid=0, occurred_at=JAN)
        second = make_sale(customer, total=1000, paid=0, occurred_at=FEB)
        before = reconstruct_balance_at_issue(second.id)

        void_invoice(invoice_id=first.id, occurred_at=MAR, reverse_debt=True)

        assert reconstruct_balance_at_issue(second.id) == before


class TestPrintSummary:

    def test_figures(self, db_session, customer, make_sale):
        make_sale(customer, total=3000, paid=0, occurred_at=JAN)
        invoice = make_sale(customer, total=10000, paid=2500, occurred_at=FEB, discount_cents=500)

        summary = print_summary(invoice.id)

        assert summary["current_cents"] == 10000
        assert summary["discount_cents"] == 500
        assert summary["receipt_cents"] == 2500
        assert summary["last_cents"] == 3000
        # 3000 before + 9500 billed - 2500 paid
        assert summary["total_cents"] == 10000
        assert summary["currency_symbol"] == "$"
        assert summary["document_number"] == invoice.document_number
