# Overview: Pytest coverage for the HTTP API and CLI commands.

"""
API and CLI Tests

Drives the ledger through the Flask blueprints and click commands the way
the POS front end and operators do.
"""

import json

import pytest


@pytest.fixture
def api_customer(client, db_session):
    resp = client.post("/api/customers", json={"name": "Carol Counter", "phone": "555-0199"})
    assert resp.status_code == 201
    return resp.get_json()["customer"]


@pytest.fixture
def api_product(client, db_session):
    resp = client.post("/api/products", json={
        "sku": "API-1", "name": "Mug", "price_cents": 5000, "cost_cents": 2000, "stock_quantity": 10,
    })
    assert resp.status_code == 201
    return resp.get_json()["product"]


def _checkout(client, customer_id, product_id, quantity=2, tendered=None, **extra):
    body = {
        "customer_id": customer_id,
        "lines": [{"product_id": product_id, "quantity": quantity}],
        **extra,
    }
    if tendered is not None:
        body["tendered_cents"] = tendered
    return client.post("/api/invoices", json=body)


class TestCustomerRoutes:

    def test_create_and_fetch(self, client, api_customer):
        resp = client.get(f"/api/customers/{api_customer['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["total_debt_cents"] == 0

    def test_aggregates_are_not_writable(self, client, db_session):
        resp = client.post("/api/customers", json={"name": "Mallory", "total_debt_cents": -500})
        assert resp.status_code == 400

    def test_name_required(self, client, db_session):
        assert client.post("/api/customers", json={}).status_code == 400

    def test_list_and_search(self, client, api_customer):
        resp = client.get("/api/customers?q=Carol")
        assert resp.get_json()["count"] == 1

    def test_missing_customer(self, client, db_session):
        assert client.get("/api/customers/999").status_code == 404
        assert client.post("/api/customers/999/repayments", json={"amount_cents": 1}).status_code == 404

    def test_trash_and_restore(self, client, api_customer):
        cid = api_customer["id"]
        client.post(f"/api/customers/{cid}/adjustments", json={"entry_type": "debt", "amount_cents": 700})

        resp = client.delete(f"/api/customers/{cid}")
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["is_deleted"] is True
        assert client.get("/api/customers").get_json()["count"] == 0
        assert client.get("/api/customers?include_deleted=true").get_json()["count"] == 1
        assert client.get("/api/customers/debtors").get_json()["count"] == 0
        assert client.post(f"/api/customers/{cid}/repayments", json={"amount_cents": 100}).status_code == 400
        assert client.delete(f"/api/customers/{cid}").status_code == 400

        resp = client.post(f"/api/customers/{cid}/restore")
        assert resp.status_code == 200
        customer = resp.get_json()["customer"]
        assert customer["is_deleted"] is False
        assert customer["total_debt_cents"] == 700
        assert client.post(f"/api/customers/{cid}/restore").status_code == 400
        assert client.delete("/api/customers/999").status_code == 404


class TestLedgerFlow:

    def test_checkout_repay_return_and_reprint(self, client, api_customer, api_product):
        cid = api_customer["id"]

        resp = _checkout(client, cid, api_product["id"], quantity=2, tendered=4000)
        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["total_cents"] == 10000
        assert invoice["status"] == "partial"

        resp = client.post(f"/api/customers/{cid}/repayments", json={"amount_cents": 6000, "note": "cash"})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["customer"]["total_debt_cents"] == 0
        assert body["allocations"][0]["status"] == "paid"

        line_id = invoice["lines"][0]["id"]
        resp = client.post(f"/api/invoices/{invoice['id']}/returns",
                           json={"items": [{"invoice_line_id": line_id, "quantity": 1}]})
        assert resp.status_code == 201
        assert resp.get_json()["return"]["refund_cents"] == 5000

        customer = client.get(f"/api/customers/{cid}").get_json()["customer"]
        assert customer["total_debt_cents"] == 0
        assert customer["total_spent_cents"] == 5000

        resp = client.get(f"/api/invoices/{invoice['id']}/balance-at-issue")
        assert resp.get_json()["historical_debt_before_cents"] == 0
        assert resp.get_json()["net_due_cents"] == 6000

        resp = client.get(f"/api/invoices/{invoice['id']}/print-summary")
        assert resp.get_json()["receipt_cents"] == 4000

        statement = client.get(f"/api/customers/{cid}/statement").get_json()
        assert [e["entry_type"] for e in statement["entries"]] == ["refund", "repayment", "debt"]

        assert client.get(f"/api/customers/{cid}/reconciliation").get_json()["consistent"] is True

        returns = client.get(f"/api/invoices/{invoice['id']}/returns").get_json()["returns"]
        assert [r["spent_reduction_cents"] for r in returns] == [5000]

        entries = client.get(f"/api/customers/{cid}/entries").get_json()
        assert entries["count"] == 3
        before_first = statement["entries"][-1]["occurred_at"]
        assert client.get(f"/api/customers/{cid}/entries", query_string={"before": before_first}).get_json()["count"] == 0
        assert client.get(f"/api/customers/{cid}/entries?before=yesterday").status_code == 400

        product = client.get(f"/api/products/{api_product['id']}").get_json()["product"]
        assert product["stock_quantity"] == 9

    def test_anonymous_debt_rejected(self, client, api_product):
        resp = _checkout(client, None, api_product["id"], tendered=0)
        assert resp.status_code == 400
        assert "customer" in resp.get_json()["error"].lower()

    def test_duplicate_document_number_rejected(self, client, api_customer, api_product):
        resp = _checkout(client, api_customer["id"], api_product["id"], document_number="X-1")
        assert resp.status_code == 201

        resp = _checkout(client, api_customer["id"], api_product["id"], document_number="X-1")
        assert resp.status_code == 400
        assert "already exists" in resp.get_json()["error"]

    def test_over_return_rejected(self, client, api_customer, api_product):
        invoice = _checkout(client, api_customer["id"], api_product["id"], quantity=1).get_json()["invoice"]
        resp = client.post(f"/api/invoices/{invoice['id']}/returns",
                           json={"items": [{"invoice_line_id": invoice["lines"][0]["id"], "quantity": 2}]})
        assert resp.status_code == 400

    def test_adjustments_and_debtors(self, client, api_customer):
        cid = api_customer["id"]
        resp = client.post(f"/api/customers/{cid}/adjustments",
                           json={"entry_type": "debt", "amount_cents": 1500, "due_date": "2026-12-01"})
        assert resp.status_code == 201
        assert resp.get_json()["entry"]["due_date"] == "2026-12-01"

        resp = client.post(f"/api/customers/{cid}/adjustments",
                           json={"entry_type": "adjustment", "amount_cents": 100})
        assert resp.status_code == 400

        debtors = client.get("/api/customers/debtors").get_json()
        assert debtors["count"] == 1
        assert debtors["total_outstanding_cents"] == 1500

    def test_pay_and_void_invoice(self, client, api_customer, api_product):
        invoice = _checkout(client, api_customer["id"], api_product["id"], quantity=1, tendered=0).get_json()["invoice"]

        resp = client.post(f"/api/invoices/{invoice['id']}/payments", json={"amount_cents": 2000})
        assert resp.status_code == 201
        assert resp.get_json()["allocations"][0]["balance_cents"] == 3000

        resp = client.post(f"/api/invoices/{invoice['id']}/void", json={"reason": "test"})
        assert resp.status_code == 200
        assert resp.get_json()["invoice"]["status"] == "voided"

        assert client.post(f"/api/invoices/{invoice['id']}/void", json={}).status_code == 400
        assert client.get("/api/invoices/999/balance-at-issue").status_code == 404


class TestSystemRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_settings(self, client, db_session):
        assert client.get("/api/system/settings").get_json()["settings"]["currency_symbol"] == "$"
        resp = client.put("/api/system/settings", json={"tax_rate_bps": 20000})
        assert resp.status_code == 400
        resp = client.put("/api/system/settings", json={"currency_symbol": "€"})
        assert resp.get_json()["settings"]["currency_symbol"] == "€"

    def test_export_import(self, client, api_customer, api_product):
        _checkout(client, api_customer["id"], api_product["id"], tendered=0)
        doc = client.get("/api/system/export").get_json()

        client.post(f"/api/customers/{api_customer['id']}/adjustments",
                    json={"entry_type": "debt", "amount_cents": 999})
        resp = client.post("/api/system/import", json=doc)
        assert resp.status_code == 200
        assert resp.get_json()["restored"]["invoices"] == 1

        customer = client.get(f"/api/customers/{api_customer['id']}").get_json()["customer"]
        assert customer["total_debt_cents"] == 10000

        assert client.post("/api/system/import", json={"format": "nope"}).status_code == 400

    def test_backups_and_sync(self, client, api_customer):
        resp = client.post("/api/system/backups", json={"label": "manual"})
        assert resp.status_code == 201
        backup_id = resp.get_json()["backup"]["id"]
        assert client.get("/api/system/backups").get_json()["backups"][0]["label"] == "manual"
        assert client.post(f"/api/system/backups/{backup_id}/restore").status_code == 200

        summary = client.post("/api/system/sync").get_json()
        assert summary["attempted"] >= 1
        assert summary["failed"] == 0


class TestCli:

    def test_reconcile_and_backup(self, app, api_customer, api_product, client):
        _checkout(client, api_customer["id"], api_product["id"], tendered=0)
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "reconcile"])
        assert result.exit_code == 0
        assert "PASS" in result.output

        result = runner.invoke(args=["ledger", "backup", "--label", "cli"])
        assert result.exit_code == 0
        assert "cli" in result.output

        result = runner.invoke(args=["sync", "process"])
        assert result.exit_code == 0
        assert "Delivered" in result.output

    def test_export_and_import_files(self, app, api_customer, tmp_path):
        runner = app.test_cli_runner()
        out = tmp_path / "ledger.json"

        result = runner.invoke(args=["ledger", "export", "--out", str(out)])
        assert result.exit_code == 0
        assert json.loads(out.read_text())["customers"][0]["name"] == "Carol Counter"

        result = runner.invoke(args=["ledger", "import", str(out), "--yes"])
        assert result.exit_code == 0
        assert "Restored 1 customers" in result.output

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"format": "nope"}))
        result = runner.invoke(args=["ledger", "import", str(bad), "--yes"])
        assert result.exit_code != 0
