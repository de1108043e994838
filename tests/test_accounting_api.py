"""Accounting reports, manual entries and ledger validation."""

from coopbank.services import accounting_service


class TestChartAndJournal:
    def test_chart_is_seeded(self, client) -> None:
        chart = client.get("/accounting/chart").json()
        codes = {a["code"] for a in chart}
        assert {"1.0.1.1", "2.2.1.1", "7.0.1"} <= codes

        income = client.get("/accounting/chart", params={"account_class": 7}).json()
        assert all(a["account_class"] == 7 for a in income)

    def test_manual_entry_must_balance(self, client, branch) -> None:
        bad = {
            "branch_id": branch.branch_id,
            "label": "Charge diverse",
            "lines": [
                {"account_code": "6.6.1", "side": "D", "amount": 1000},
                {"account_code": "1.0.1.1", "side": "C", "amount": 900},
            ],
        }
        r = client.post("/accounting/journal", json=bad)
        assert r.status_code == 400
        assert client.get("/accounting/journal").json() == []

        bad["lines"][1]["amount"] = 1000
        r = client.post("/accounting/journal", json=bad)
        assert r.status_code == 201
        assert r.json()["entry_no"] == 1
        assert len(r.json()["lines"]) == 2

    def test_trial_balance_and_general_ledger(self, client, account) -> None:
        client.post("/transactions/deposit", json={"account_id": account.account_id, "amount": 50000})
        client.post("/transactions/withdraw", json={"account_id": account.account_id, "amount": 20000})

        tb = client.get("/accounting/trial-balance").json()
        assert tb["is_balanced"] is True
        vault = next(r for r in tb["rows"] if r["account_code"] == "1.0.1.1")
        assert vault["balance"] == 30000

        rows = client.get("/accounting/general-ledger/1.0.1.1").json()
        assert [r["running_balance"] for r in rows] == [50000, 30000]


class TestVaultTransfers:
    def test_vault_to_bank(self, client, branch) -> None:
        r = client.post(
            "/accounting/vault-transfers",
            json={"kind": "VAULT_TO_BANK", "branch_id": branch.branch_id, "amount": 250000, "bank_account": "1.1.1.2"},
        )
        assert r.status_code == 201
        legs = {(l["account_code"], l["side"]) for l in r.json()["lines"]}
        assert legs == {("1.1.1.2", "D"), ("1.0.1.1", "C")}

    def test_unknown_bank_and_same_branch(self, client, branch) -> None:
        r = client.post(
            "/accounting/vault-transfers",
            json={"kind": "BANK_TO_VAULT", "branch_id": branch.branch_id, "amount": 10, "bank_account": "9.9"},
        )
        assert r.status_code == 400

        r = client.post(
            "/accounting/vault-transfers",
            json={"kind": "INTER_VAULT", "branch_id": branch.branch_id, "dest_branch_id": branch.branch_id, "amount": 10},
        )
        assert r.status_code == 400


class TestValidation:
    def test_clean_ledger_is_valid(self, client, account) -> None:
        client.post("/transactions/deposit", json={"account_id": account.account_id, "amount": 5000})

        report = client.get("/accounting/validation").json()
        assert report["globally_balanced"] is True
        assert report["unposted_movements"] == []
        assert report["is_valid"] is True

    def test_failed_posting_shows_up_as_unposted(self, client, account, monkeypatch) -> None:
        def offline(*args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(accounting_service, "post_deposit", offline)

        r = client.post("/transactions/deposit", json={"account_id": account.account_id, "amount": 5000})
        assert r.status_code == 200
        assert r.json()["new_balance"] == 105000
        assert r.json()["movement"]["ledger_entry_id"] is None

        report = client.get("/accounting/validation").json()
        assert report["is_valid"] is False
        assert len(report["unposted_movements"]) == 1
