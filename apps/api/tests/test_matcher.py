"""
Tests for match scoring and best-candidate selection.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from matcher import PaymentCandidate, date_window, find_best_match, score_candidate
from schemas import BankTransaction


def bank_tx(amount="150.00", when=datetime(2024, 1, 10), reference="INV-500", description="Bank transfer"):
    return BankTransaction(
        transaction_id="BANK-1",
        transaction_date=when,
        description=description,
        amount=Decimal(amount),
        reference=reference,
    )


def candidate(amount="150.00", when=datetime(2024, 1, 10), reference="INV-500-A", id="pay-1"):
    return PaymentCandidate(id=id, amount=Decimal(amount), transaction_date=when, reference=reference)


class TestScoreCandidate:
    def test_exact_match_without_trigger_word(self):
        score, tags = score_candidate(bank_tx(), candidate())
        assert score == Decimal("0.90")
        assert tags == ["amount", "date", "reference"]

    def test_trigger_word_in_description_scores_full(self):
        score, tags = score_candidate(bank_tx(description="Invoice PAYMENT"), candidate())
        assert score == Decimal("1.00")
        assert tags == ["amount", "date", "reference", "description"]

    def test_amount_off_by_five_scores_half(self):
        score, tags = score_candidate(bank_tx(amount="155.00"), candidate())
        assert score == Decimal("0.50")
        assert tags == ["date", "reference"]

    @pytest.mark.parametrize("bank_amount, awarded", [
        ("150.00", True),
        ("150.009", True),
        ("149.991", True),
        ("150.01", False),
        ("149.99", False),
        ("150.50", False),
    ])
    def test_amount_gate_is_all_or_nothing(self, bank_amount, awarded):
        far = dict(when=datetime(2024, 3, 1), reference="")
        score, tags = score_candidate(bank_tx(amount=bank_amount, **far), candidate(reference="X"))
        assert score == (Decimal("0.40") if awarded else Decimal("0"))
        assert ("amount" in tags) is awarded

    @pytest.mark.parametrize("offset, expected", [
        (timedelta(0), Decimal("0.20")),
        (timedelta(days=1), Decimal("0.20")),
        (timedelta(days=-1), Decimal("0.20")),
        (timedelta(days=1, hours=1), Decimal("0.10")),
        (timedelta(days=7), Decimal("0.10")),
        (timedelta(days=-7), Decimal("0.10")),
        (timedelta(days=7, minutes=1), Decimal("0")),
        (timedelta(days=20), Decimal("0")),
    ])
    def test_date_proximity_tiers(self, offset, expected):
        score, _ = score_candidate(
            bank_tx(amount="1.00", reference=""),
            candidate(when=datetime(2024, 1, 10) + offset),
        )
        assert score == expected

    @pytest.mark.parametrize("bank_ref, payment_ref, awarded", [
        ("INV-500", "INV-500-A", True),
        ("PAID INV-500-A TODAY", "INV-500-A", True),
        ("  INV-500 ", "INV-500", True),
        ("inv-500", "INV-500", False),
        ("", "INV-500", False),
        ("INV-500", "", False),
        ("   ", "   ", False),
        ("INV-501", "INV-500", False),
    ])
    def test_reference_containment(self, bank_ref, payment_ref, awarded):
        score, tags = score_candidate(
            bank_tx(amount="1.00", when=datetime(2024, 3, 1), reference=bank_ref),
            candidate(reference=payment_ref),
        )
        assert score == (Decimal("0.30") if awarded else Decimal("0"))
        assert ("reference" in tags) is awarded

    @pytest.mark.parametrize("description", ["Payment", "monthly INVOICE 12", "receipt no 4"])
    def test_description_keywords(self, description):
        score, tags = score_candidate(
            bank_tx(amount="1.00", when=datetime(2024, 3, 1), reference="", description=description),
            candidate(),
        )
        assert score == Decimal("0.10")
        assert tags == ["description"]


class TestFindBestMatch:
    def test_scenario_full_match(self):
        match = find_best_match(bank_tx(), [candidate()])
        assert match.candidate.id == "pay-1"
        assert match.score == Decimal("0.90")
        assert match.match_type == "amount;date;reference"

    def test_score_exactly_at_threshold_is_returned(self):
        match = find_best_match(bank_tx(amount="155.00"), [candidate()])
        assert match is not None
        assert match.score == Decimal("0.50")
        assert match.match_type == "date;reference"

    def test_only_candidate_below_threshold_is_not_returned(self):
        # amount alone, eight days apart
        c = candidate(when=datetime(2024, 1, 18), reference="")
        assert find_best_match(bank_tx(reference=""), [c]) is None

    def test_no_candidates(self):
        assert find_best_match(bank_tx(), []) is None

    def test_highest_score_wins(self):
        weak = candidate(id="weak", amount="999.00")
        strong = candidate(id="strong")
        match = find_best_match(bank_tx(), [weak, strong])
        assert match.candidate.id == "strong"

    def test_ties_go_to_first_seen(self):
        first = candidate(id="first")
        second = candidate(id="second")
        match = find_best_match(bank_tx(), [first, second])
        assert match.candidate.id == "first"

    def test_custom_threshold(self):
        c = candidate(reference="")
        assert find_best_match(bank_tx(reference=""), [c], min_score=Decimal("0.7")) is None
        assert find_best_match(bank_tx(reference=""), [c], min_score=Decimal("0.6")) is not None


class TestDateWindow:
    def test_regular_window(self):
        start, end = date_window(datetime(2024, 1, 10), 30)
        assert start == datetime(2023, 12, 11)
        assert end == datetime(2024, 2, 9)

    def test_window_clamps_at_calendar_edges(self):
        start, end = date_window(datetime(1, 1, 1), 30)
        assert start == datetime.min
        assert end == datetime(1, 1, 31)
        _, end = date_window(datetime.max - timedelta(days=1), 30)
        assert end == datetime.max
