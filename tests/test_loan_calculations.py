"""Tests for the amortization schedule and arrears analyzer."""

from datetime import date
from decimal import Decimal

from coopbank.utils.loan_calculations import (
    ArrearsSummary,
    PaymentRecord,
    analyze_loan_status,
    age_bucket,
    generate_schedule,
    money,
    risk_level,
    summarize_portfolio,
)

START = date(2024, 1, 15)


class TestMoney:
    def test_rounds_half_up_to_whole_units(self) -> None:
        assert money(Decimal("0.5")) == Decimal("1")
        assert money(Decimal("2.5")) == Decimal("3")
        assert money(Decimal("2.49")) == Decimal("2")

    def test_none_is_zero(self) -> None:
        assert money(None) == Decimal("0")


class TestGenerateSchedule:
    def test_reference_loan(self) -> None:
        lines = generate_schedule(1_200_000, 18, 12, START)

        assert len(lines) == 12
        first, last = lines[0], lines[-1]
        assert first.principal == Decimal("100000")
        assert first.interest == Decimal("18000")
        assert first.due_date == date(2024, 2, 15)
        assert last.principal == Decimal("100000")
        assert last.interest == Decimal("1500")
        assert last.due_date == date(2025, 1, 15)

    def test_interest_declines_with_balance(self) -> None:
        lines = generate_schedule(1_200_000, 18, 12, START)
        interests = [l.interest for l in lines]
        assert interests == sorted(interests, reverse=True)
        assert lines[1].interest == Decimal("16500")

    def test_lines_start_unpaid(self) -> None:
        for line in generate_schedule(600_000, 12, 6, START):
            assert line.status == "PENDING"
            assert line.principal_remaining == line.principal
            assert line.interest_remaining == line.interest
            assert line.amount_paid == 0
            assert line.total == line.principal + line.interest

    def test_non_positive_inputs_give_empty_schedule(self) -> None:
        assert generate_schedule(0, 18, 12, START) == []
        assert generate_schedule(-5, 18, 12, START) == []
        assert generate_schedule(1_000, 18, 0, START) == []

    def test_rounding_drift_is_kept(self) -> None:
        lines = generate_schedule(1_000_000, 0, 3, START)

        assert [l.principal for l in lines] == [Decimal("333333")] * 3
        total = sum(l.principal for l in lines)
        assert total == Decimal("999999")
        assert abs(total - 1_000_000) <= 3

    def test_month_end_is_clamped(self) -> None:
        lines = generate_schedule(300_000, 12, 3, date(2024, 1, 31))
        assert [l.due_date for l in lines] == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]

    def test_is_deterministic(self) -> None:
        assert generate_schedule(750_000, 24, 9, START) == generate_schedule(750_000, 24, 9, START)


class TestAnalyzeLoanStatus:
    def test_no_payments_reference_case(self) -> None:
        s = analyze_loan_status(1_200_000, 18, 12, START, [], as_of=date(2024, 6, 20))

        assert s.is_overdue is True
        assert s.days_overdue == 126
        assert s.expected_payments == 5
        assert s.actual_payments == 0
        assert s.overdue_capital == Decimal("500000")
        assert s.overdue_interest == Decimal("75000")
        assert s.overdue_total == Decimal("575000")
        assert s.next_due_date == date(2024, 7, 15)
        assert s.next_due_amount == Decimal("110500")

    def test_due_today_counts_as_past_due(self) -> None:
        s = analyze_loan_status(1_200_000, 18, 12, START, [], as_of=date(2024, 2, 15))
        assert s.expected_payments == 1
        assert s.is_overdue is True
        assert s.days_overdue == 0

    def test_exact_payment_clears_arrears(self) -> None:
        paid = [PaymentRecord(date(2024, 2, 15), Decimal("100000"), Decimal("18000"))]
        s = analyze_loan_status(1_200_000, 18, 12, START, paid, as_of=date(2024, 2, 20))

        assert s.is_overdue is False
        assert s.days_overdue == 0
        assert s.overdue_total == 0

    def test_days_pinned_to_oldest_uncovered_line(self) -> None:
        paid = [PaymentRecord(date(2024, 2, 15), Decimal("100000"), Decimal("18000"))]
        s = analyze_loan_status(1_200_000, 18, 12, START, paid, as_of=date(2024, 6, 20))

        # first line covered, the 2024-03-15 line is the oldest unpaid
        assert s.days_overdue == 97
        assert s.overdue_capital == Decimal("400000")

    def test_age_follows_capital_when_interest_lags(self) -> None:
        paid = [PaymentRecord(date(2024, 4, 15), Decimal("300000"), Decimal("18000"))]
        s = analyze_loan_status(1_200_000, 18, 12, START, paid, as_of=date(2024, 6, 20))

        # Feb to Apr capital is covered, the 2024-05-15 line is the oldest with capital left
        assert s.days_overdue == 36
        assert s.overdue_capital == Decimal("200000")
        assert s.overdue_interest == Decimal("57000")

    def test_interest_only_arrears_have_no_age(self) -> None:
        paid = [PaymentRecord(date(2024, 6, 15), Decimal("500000"), Decimal("0"))]
        s = analyze_loan_status(1_200_000, 18, 12, START, paid, as_of=date(2024, 6, 20))

        assert s.is_overdue is True
        assert s.overdue_capital == 0
        assert s.overdue_interest == Decimal("75000")
        assert s.days_overdue == 0

    def test_reversed_payments_are_ignored(self) -> None:
        paid = [PaymentRecord(date(2024, 2, 15), Decimal("100000"), Decimal("18000"), is_reversed=True)]
        s = analyze_loan_status(1_200_000, 18, 12, START, paid, as_of=date(2024, 2, 20))

        assert s.is_overdue is True
        assert s.actual_payments == 0
        assert s.paid_capital == 0

    def test_overpayment_never_gives_negative_arrears(self) -> None:
        paid = [PaymentRecord(date(2024, 2, 1), Decimal("900000"), Decimal("90000"))]
        s = analyze_loan_status(1_200_000, 18, 12, START, paid, as_of=date(2024, 3, 1))

        assert s.overdue_capital == 0
        assert s.overdue_interest == 0
        assert s.is_overdue is False

    def test_undisbursed_loan_is_not_overdue(self) -> None:
        assert analyze_loan_status(1_200_000, 18, 12, None, []) == ArrearsSummary()
        assert analyze_loan_status(0, 18, 12, START, []).is_overdue is False

    def test_nothing_due_before_first_installment(self) -> None:
        s = analyze_loan_status(1_200_000, 18, 12, START, [], as_of=date(2024, 2, 1))
        assert s.expected_payments == 0
        assert s.is_overdue is False
        assert s.next_due_date == date(2024, 2, 15)


class TestRiskClassification:
    def test_risk_levels(self) -> None:
        assert risk_level(0) == "none"
        assert risk_level(1) == "low"
        assert risk_level(30) == "low"
        assert risk_level(31) == "medium"
        assert risk_level(61) == "high"
        assert risk_level(91) == "critical"

    def test_age_buckets(self) -> None:
        assert age_bucket(0) is None
        assert age_bucket(30) == "1-30"
        assert age_bucket(45) == "31-60"
        assert age_bucket(90) == "61-90"
        assert age_bucket(126) == "90+"


class TestSummarizePortfolio:
    def test_par_and_buckets(self) -> None:
        late = analyze_loan_status(1_200_000, 18, 12, START, [], as_of=date(2024, 6, 20))
        current = ArrearsSummary()

        out = summarize_portfolio([(Decimal("1200000"), late), (Decimal("800000"), current)])

        assert out.active_loans == 2
        assert out.loans_at_risk == 1
        assert out.total_outstanding == Decimal("2000000")
        assert out.overdue_principal == Decimal("500000")
        assert out.par_ratio == Decimal("25.00")
        assert out.buckets["90+"].loans == 1
        assert out.buckets["1-30"].loans == 0

    def test_empty_portfolio(self) -> None:
        out = summarize_portfolio([])
        assert out.active_loans == 0
        assert out.par_ratio == 0
