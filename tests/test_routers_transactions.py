"""
test_routers_transactions.py — Tests for app/routers/transactions.py

Called by: pytest
Depends on: app/routers/transactions.py, tests/conftest.py
"""

COMPANY = "acme-co"


class TestListTransactions:
    def test_lists_own_rows_newest_first(self, client, sample_transactions):
        resp = client.get("/api/transactions", params={"companyId": COMPANY})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 4
        dates = [t["date"] for t in body["transactions"]]
        assert dates == sorted(dates, reverse=True)
        assert all(t["description"] != "Airtable seat" for t in body["transactions"])

    def test_filter_uncategorized(self, client, sample_transactions):
        resp = client.get("/api/transactions", params={"companyId": COMPANY, "category": "uncategorized"})
        descriptions = {t["description"] for t in resp.json()["transactions"]}
        assert descriptions == {"AIRTABLE.COM subscription", "Office rent March"}

    def test_filter_category_and_paging(self, client, sample_transactions):
        resp = client.get(
            "/api/transactions",
            params={"companyId": COMPANY, "category": "revenue", "limit": 1, "offset": 0},
        )
        body = resp.json()
        assert body["total"] == 1
        assert body["transactions"][0]["project"] == "Globex Rollout"

    def test_company_required(self, client):
        assert client.get("/api/transactions").status_code == 422


class TestUpdateTransaction:
    def test_update_category(self, client, sample_transactions):
        txn = sample_transactions[0]
        resp = client.patch(
            f"/api/transactions/{txn.id}",
            json={"companyId": COMPANY, "category": "Overhead", "project": "Ops"},
        )
        assert resp.status_code == 200
        assert resp.json()["category"] == "overhead"
        assert resp.json()["project"] == "Ops"

    def test_other_tenant_is_404(self, client, sample_transactions):
        theirs = sample_transactions[4]
        resp = client.patch(f"/api/transactions/{theirs.id}", json={"companyId": COMPANY, "category": "opex"})
        assert resp.status_code == 404

    def test_only_category_and_project_editable(self, client, sample_transactions):
        txn = sample_transactions[0]
        resp = client.patch(f"/api/transactions/{txn.id}", json={"companyId": COMPANY, "amount": 1})
        assert resp.status_code == 422

    def test_unknown_category_rejected(self, client, sample_transactions):
        txn = sample_transactions[0]
        resp = client.patch(f"/api/transactions/{txn.id}", json={"companyId": COMPANY, "category": "snacks"})
        assert resp.status_code == 422
