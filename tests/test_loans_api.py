"""Loan lifecycle through the HTTP API."""

from datetime import date, timedelta
from decimal import Decimal

from coopbank.models.account_model import Account
from coopbank.models.loan_installment_model import LoanInstallment
from coopbank.models.loan_model import Loan, LoanStatus


def disbursed_loan(client, member, account, amount=1_200_000, term=12, rate=None,
                   on="2024-01-15", processing_fee=0, purpose=2) -> int:
    r = client.post(
        "/loans",
        json={"client_id": member.client_id, "requested_amount": amount, "term_months": term, "purpose": purpose},
    )
    assert r.status_code == 201, r.text
    loan_id = r.json()["loan_id"]

    approval = {"approved_amount": amount, "processing_fee": processing_fee}
    if rate is not None:
        approval["annual_rate"] = rate
    assert client.put(f"/loans/{loan_id}/approve", json=approval).status_code == 200

    r = client.put(f"/loans/{loan_id}/disburse", json={"account_id": account.account_id, "disbursed_on": on})
    assert r.status_code == 200, r.text
    return loan_id


def balance_of(db, account) -> Decimal:
    db.expire_all()
    return Decimal(db.get(Account, account.account_id).balance)


class TestLoanRequest:
    def test_request_review_approve(self, client, member) -> None:
        r = client.post("/loans", json={"client_id": member.client_id, "requested_amount": 500000, "term_months": 6})
        assert r.status_code == 201
        loan = r.json()
        assert loan["status"] == LoanStatus.REQUESTED
        assert loan["branch_id"] == member.branch_id

        r = client.put(f"/loans/{loan['loan_id']}/review")
        assert r.json()["status"] == LoanStatus.UNDER_REVIEW

        r = client.put(f"/loans/{loan['loan_id']}/approve", json={"approved_amount": 450000})
        body = r.json()
        assert body["status"] == LoanStatus.APPROVED
        assert body["annual_rate"] == 18
        assert body["approved_amount"] == 450000

    def test_unknown_client(self, client) -> None:
        r = client.post("/loans", json={"client_id": 999, "requested_amount": 1000, "term_months": 6})
        assert r.status_code == 404
        assert r.json()["detail"] == "Client not found"

    def test_term_above_setting_is_refused(self, client, member) -> None:
        r = client.post("/loans", json={"client_id": member.client_id, "requested_amount": 1000, "term_months": 121})
        assert r.status_code == 400

    def test_rate_default_follows_settings(self, client, member) -> None:
        client.patch("/settings", json={"key": "DEFAULT_INTEREST_RATE", "value": "24"})
        loan_id = client.post(
            "/loans", json={"client_id": member.client_id, "requested_amount": 1000, "term_months": 2}
        ).json()["loan_id"]

        r = client.put(f"/loans/{loan_id}/approve", json={"approved_amount": 1000})
        assert r.json()["annual_rate"] == 24

    def test_second_decision_is_refused(self, client, member) -> None:
        loan_id = client.post(
            "/loans", json={"client_id": member.client_id, "requested_amount": 1000, "term_months": 2}
        ).json()["loan_id"]
        client.put(f"/loans/{loan_id}/approve", json={"approved_amount": 1000})

        r = client.put(f"/loans/{loan_id}/approve", json={"approved_amount": 1000})
        assert r.status_code == 400
        assert r.json()["detail"] == "Loan already processed"

    def test_reject_needs_reason_and_sticks(self, client, member) -> None:
        loan_id = client.post(
            "/loans", json={"client_id": member.client_id, "requested_amount": 1000, "term_months": 2}
        ).json()["loan_id"]

        assert client.put(f"/loans/{loan_id}/reject", json={"reason": ""}).status_code == 422
        r = client.put(f"/loans/{loan_id}/reject", json={"reason": "Pas de garantie"})
        assert r.json()["status"] == LoanStatus.REJECTED
        assert client.put(f"/loans/{loan_id}/review").status_code == 400

    def test_list_filters_by_status(self, client, member) -> None:
        for amount in (1000, 2000):
            client.post("/loans", json={"client_id": member.client_id, "requested_amount": amount, "term_months": 2})
        loan_id = client.get("/loans").json()[0]["loan_id"]
        client.put(f"/loans/{loan_id}/cancel", json={})

        assert len(client.get("/loans", params={"status": "cancelled"}).json()) == 1
        assert len(client.get("/loans", params={"status": "REQUESTED"}).json()) == 1


class TestDisbursement:
    def test_disbursement_credits_account_and_persists_schedule(self, client, db, member, account) -> None:
        loan_id = disbursed_loan(client, member, account, processing_fee=20000)

        assert balance_of(db, account) == Decimal("100000") + Decimal("1200000") - Decimal("20000")

        r = client.get(f"/loans/{loan_id}/schedule")
        body = r.json()
        assert body["persisted"] is True
        assert len(body["lines"]) == 12
        assert body["lines"][0]["interest"] == 18000
        assert body["lines"][0]["due_date"] == "2024-02-15"

        detail = client.get(f"/loans/{loan_id}").json()
        assert detail["status"] == LoanStatus.DISBURSED
        assert detail["installments_count"] == 12
        assert detail["total_principal"] == 1200000

    def test_only_approved_loans_are_disbursed(self, client, member, account) -> None:
        loan_id = client.post(
            "/loans", json={"client_id": member.client_id, "requested_amount": 1000, "term_months": 2}
        ).json()["loan_id"]
        r = client.put(f"/loans/{loan_id}/disburse", json={"account_id": account.account_id})
        assert r.status_code == 400

    def test_arrears_reference_case(self, client, member, account) -> None:
        loan_id = disbursed_loan(client, member, account)

        body = client.get(f"/loans/{loan_id}/arrears", params={"as_of": "2024-06-20"}).json()
        assert body["is_overdue"] is True
        assert body["days_overdue"] == 126
        assert body["overdue_capital"] == 500000
        assert body["risk_level"] == "critical"


class TestPayments:
    def test_payment_allocates_interest_then_principal(self, client, db, member, account) -> None:
        loan_id = disbursed_loan(client, member, account)

        r = client.post(f"/loans/{loan_id}/payments", json={"amount": 118000, "payment_date": "2024-02-15"})
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["interest_paid"] == 18000
        assert body["principal_paid"] == 100000
        assert body["applied_to_installments"] == 1
        assert body["unapplied_amount"] == 0
        assert body["loan_status"] == LoanStatus.DISBURSED

        first = db.query(LoanInstallment).filter(
            LoanInstallment.loan_id == loan_id, LoanInstallment.installment_no == 1
        ).one()
        assert first.status == "PAID"
        assert first.paid_date == date(2024, 2, 15)

        arrears = client.get(f"/loans/{loan_id}/arrears", params={"as_of": "2024-02-20"}).json()
        assert arrears["is_overdue"] is False

    def test_partial_payment_covers_interest_first(self, client, member, account) -> None:
        loan_id = disbursed_loan(client, member, account)

        body = client.post(f"/loans/{loan_id}/payments", json={"amount": 20000}).json()
        assert body["interest_paid"] == 18000
        assert body["principal_paid"] == 2000
        assert body["applied_to_installments"] == 0

    def test_full_repayment_settles_and_caps_amount(self, client, db, member, account) -> None:
        loan_id = disbursed_loan(client, member, account, amount=300000, term=3, rate=0)
        before = balance_of(db, account)

        body = client.post(f"/loans/{loan_id}/payments", json={"amount": 350000}).json()
        assert body["loan_status"] == LoanStatus.SETTLED
        assert body["unapplied_amount"] == 50000
        assert balance_of(db, account) == before - Decimal("300000")

        r = client.post(f"/loans/{loan_id}/payments", json={"amount": 1000})
        assert r.status_code == 400

    def test_payment_needs_funds(self, client, db, member, account) -> None:
        loan_id = disbursed_loan(client, member, account, amount=300000, term=3, rate=0)
        client.post("/transactions/withdraw", json={"account_id": account.account_id, "amount": 400000})

        r = client.post(f"/loans/{loan_id}/payments", json={"amount": 100000})
        assert r.status_code == 400
        assert r.json()["detail"].startswith("Insufficient funds")

    def test_reversal_restores_schedule_and_account(self, client, db, member, account) -> None:
        loan_id = disbursed_loan(client, member, account)
        before = balance_of(db, account)
        payment_id = client.post(
            f"/loans/{loan_id}/payments", json={"amount": 118000, "payment_date": "2024-02-15"}
        ).json()["payment_id"]

        r = client.post(f"/loans/{loan_id}/payments/{payment_id}/reverse")
        assert r.status_code == 200
        assert r.json()["is_reversed"] is True
        assert balance_of(db, account) == before

        lines = client.get(f"/loans/{loan_id}/schedule").json()["lines"]
        assert lines[0]["status"] == "PENDING"
        assert lines[0]["principal_remaining"] == 100000

        again = client.post(f"/loans/{loan_id}/payments/{payment_id}/reverse")
        assert again.status_code == 400

        history = client.get(f"/loans/{loan_id}/payments").json()
        assert len(history) == 1

    def test_payment_on_pending_loan_is_refused(self, client, member) -> None:
        loan_id = client.post(
            "/loans", json={"client_id": member.client_id, "requested_amount": 1000, "term_months": 2}
        ).json()["loan_id"]
        assert client.post(f"/loans/{loan_id}/payments", json={"amount": 10}).status_code == 400


class TestLegacyLoans:
    def _legacy(self, db, member, account) -> Loan:
        loan = Loan(
            client_id=member.client_id,
            branch_id=member.branch_id,
            requested_amount=Decimal("1200000"),
            requested_on=date(2024, 1, 10),
            approved_amount=Decimal("1200000"),
            annual_rate=Decimal("18"),
            term_months=12,
            disbursed_on=date(2024, 1, 15),
            disbursement_account_id=account.account_id,
            status=LoanStatus.DISBURSED,
        )
        db.add(loan)
        db.commit()
        return loan

    def test_theoretical_schedule_until_generated(self, client, db, member, account) -> None:
        loan = self._legacy(db, member, account)

        body = client.get(f"/loans/{loan.loan_id}/schedule").json()
        assert body["persisted"] is False
        assert len(body["lines"]) == 12

        r = client.post(f"/loans/{loan.loan_id}/payments", json={"amount": 1000})
        assert r.status_code == 400

        r = client.post(f"/loans/{loan.loan_id}/generate-schedule")
        assert r.status_code == 200
        assert r.json()["persisted"] is True
        assert client.post(f"/loans/{loan.loan_id}/generate-schedule").status_code == 400

    def test_mark_closed_and_reopen(self, client, db, member, account) -> None:
        loan = self._legacy(db, member, account)

        r = client.put(f"/loans/{loan.loan_id}/mark-closed", json={"reason": "Soldé hors système"})
        assert r.json()["status"] == LoanStatus.SETTLED

        r = client.put(f"/loans/{loan.loan_id}/reopen", json={})
        assert r.json()["status"] in LoanStatus.ACTIVE


class TestPortfolioViews:
    def test_delinquency_views_and_refresh(self, client, member, account) -> None:
        loan_id = disbursed_loan(client, member, account)

        rows = client.get("/loans/delinquent").json()
        assert [r["loan_id"] for r in rows] == [loan_id]
        assert rows[0]["risk_level"] == "critical"

        clients = client.get("/loans/clients/delinquent").json()
        assert clients[0]["client_id"] == member.client_id
        assert clients[0]["loans"] == 1

        stats = client.get("/loans/portfolio/stats").json()
        assert stats["active_loans"] == 1
        assert stats["loans_at_risk"] == 1
        assert stats["buckets"]["90+"]["loans"] == 1
        assert stats["by_status"] == {LoanStatus.DISBURSED: 1}

        result = client.post("/loans/status/refresh").json()
        assert result == {"checked": 1, "flagged_delinquent": 1, "cleared": 0}
        assert client.get(f"/loans/{loan_id}").json()["status"] == LoanStatus.DELINQUENT

    def test_backdated_payment_keeps_later_arrears(self, client, member, account) -> None:
        loan_id = disbursed_loan(client, member, account, amount=300000, term=3, rate=0)
        client.post("/loans/status/refresh")

        body = client.post(
            f"/loans/{loan_id}/payments", json={"amount": 100000, "payment_date": "2024-02-20"}
        ).json()
        # the March and April lines are still unpaid today
        assert body["loan_status"] == LoanStatus.DELINQUENT
        assert client.get(f"/loans/{loan_id}/arrears").json()["is_overdue"] is True

    def test_payment_clearing_arrears_brings_delinquent_back(self, client, member, account) -> None:
        start = date.today() - timedelta(days=40)
        loan_id = disbursed_loan(client, member, account, amount=300000, term=3, rate=0, on=start.isoformat())
        client.post("/loans/status/refresh")
        assert client.get(f"/loans/{loan_id}").json()["status"] == LoanStatus.DELINQUENT

        body = client.post(f"/loans/{loan_id}/payments", json={"amount": 100000}).json()
        assert body["loan_status"] == LoanStatus.DISBURSED

    def test_upcoming_installments(self, client, member, account) -> None:
        disbursed_loan(client, member, account, on=date.today().isoformat())

        rows = client.get("/loans/schedule/upcoming", params={"days": 40}).json()
        assert len(rows) == 1
        assert rows[0]["installment_no"] == 1
        assert rows[0]["client_name"] == member.full_name
