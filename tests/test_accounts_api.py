"""Accounts, settings and report endpoints."""

from tests.test_loans_api import disbursed_loan


class TestAccounts:
    def test_open_and_read_balance(self, client, member) -> None:
        r = client.post("/accounts", json={"client_id": member.client_id, "account_no": "ACC-NEW", "minimum_balance": 1000})
        assert r.status_code == 201
        acc = r.json()
        assert acc["status"] == "ACTIVE"
        assert acc["branch_id"] == member.branch_id

        dup = client.post("/accounts", json={"client_id": member.client_id, "account_no": "ACC-NEW"})
        assert dup.status_code == 409

        client.post("/transactions/deposit", json={"account_id": acc["account_id"], "amount": 6000})
        balance = client.get(f"/accounts/{acc['account_id']}/balance").json()
        assert balance["balance"] == 6000
        assert balance["available_balance"] == 5000

    def test_unknown_account_is_404(self, client) -> None:
        r = client.get("/accounts/404")
        assert r.status_code == 404
        assert r.json()["detail"] == "Account not found"

    def test_hold_then_block_then_unblock(self, client, account) -> None:
        r = client.post(f"/accounts/{account.account_id}/block", json={"reason": "Saisie", "amount": 30000})
        assert r.json()["status"] == "ACTIVE"
        assert r.json()["blocked_amount"] == 30000
        assert client.get(f"/accounts/{account.account_id}/balance").json()["available_balance"] == 70000

        r = client.post(f"/accounts/{account.account_id}/block", json={"reason": "Litige"})
        assert r.json()["status"] == "BLOCKED"
        assert client.post("/transactions/deposit", json={"account_id": account.account_id, "amount": 1}).status_code == 400

        r = client.post(f"/accounts/{account.account_id}/unblock")
        assert r.json()["status"] == "ACTIVE"
        assert r.json()["blocked_amount"] == 0

    def test_transactions_newest_first(self, client, account, second_account) -> None:
        client.post("/transactions/deposit", json={"account_id": account.account_id, "amount": 100})
        r = client.post(
            "/transactions/transfer",
            json={"from_account_id": account.account_id, "to_account_id": second_account.account_id, "amount": 50},
        )
        assert r.status_code == 200
        assert len(r.json()["movements"]) == 2

        rows = client.get(f"/accounts/{account.account_id}/transactions").json()
        assert [m["operation_type"] for m in rows] == ["TRANSFER", "DEPOSIT"]


class TestSettings:
    def test_defaults_are_seeded(self, client) -> None:
        keys = {s["key"] for s in client.get("/settings").json()}
        assert {"DEFAULT_INTEREST_RATE", "MAX_LOAN_TERM_MONTHS"} <= keys

    def test_create_and_patch(self, client) -> None:
        r = client.post("/settings", json={"key": "penalty_rate", "value": "2"})
        assert r.status_code == 201
        assert r.json()["key"] == "PENALTY_RATE"
        assert r.json()["created_on"] is not None
        assert client.post("/settings", json={"key": "PENALTY_RATE", "value": "3"}).status_code == 409

        r = client.patch("/settings", json={"key": "PENALTY_RATE", "value": "3", "user_id": 4})
        assert r.json()["value"] == "3"
        assert r.json()["updated_by"] == 4
        assert client.get("/settings/penalty_rate").json()["value"] == "3"
        assert client.patch("/settings", json={"key": "NOPE", "value": "1"}).status_code == 404

    def test_loan_settings_are_checked(self, client) -> None:
        r = client.patch("/settings", json={"key": "DEFAULT_INTEREST_RATE", "value": "abc"})
        assert r.status_code == 400
        r = client.patch("/settings", json={"key": "MAX_LOAN_TERM_MONTHS", "value": "0"})
        assert r.status_code == 400
        assert client.get("/settings/MAX_LOAN_TERM_MONTHS").json()["value"] == "120"


class TestReports:
    def test_dashboard_counts(self, client, account, second_account) -> None:
        body = client.get("/reports/dashboard").json()
        assert body["clients"] == 1
        assert body["accounts"] == 2
        assert body["total_deposits"] == 100000
        assert body["active_loans"] == 0
        assert body["par_ratio"] == 0

    def test_portfolio_groups_by_status(self, client, member) -> None:
        for amount in (100000, 200000):
            client.post("/loans", json={"client_id": member.client_id, "requested_amount": amount, "term_months": 6})

        body = client.get("/reports/portfolio").json()
        assert body["by_status"] == [{"status": "REQUESTED", "loans": 2, "amount": 0}]

    def test_overdue_is_empty_without_loans(self, client) -> None:
        assert client.get("/reports/overdue").json() == []

    def test_overdue_includes_installment_due_on_the_day(self, client, member, account) -> None:
        loan_id = disbursed_loan(client, member, account)

        rows = client.get("/reports/overdue", params={"as_on": "2024-02-15"}).json()
        assert [(r["loan_id"], r["installment_no"]) for r in rows] == [(loan_id, 1)]
        assert rows[0]["due_left"] == 118000
        assert rows[0]["client_name"] == member.full_name

        analyzed = client.get(f"/loans/{loan_id}/arrears", params={"as_of": "2024-02-15"}).json()
        assert analyzed["expected_payments"] == len(rows)

        assert client.get("/reports/overdue", params={"as_on": "2024-02-14"}).json() == []
