"""
Unit tests for slip-text extraction.

Each field is checked per fallback tier, plus the whole-draft scenarios and
the guarantee that extract() never raises.
"""

import time

import pytest

from harvestlog.models.schemas import Absent, Confidence, ParsedDraft, Present
from harvestlog.services.extract import (
    choose_profile,
    clean_known,
    extract,
    find_amount,
    find_area,
    find_date,
    find_dealer,
    find_pounds,
    format_pounds,
    label_regex,
    lines_from_text,
    money_value,
)
from extraction.patterns import DEALER_PROFILES, MAX_INPUT_CHARS


SLIP = "CHECK AMOUNT\n152.25\nDESCRIPTION\n43.5\n01/15/2024\nACME SEAFOOD CO."


class TestScenario:
    """The reference slip from end to end."""

    def test_reference_slip(self):
        """Test every field on a labelled slip with a known dealer."""
        draft = extract(SLIP, known_dealers=["Acme Seafood"])

        assert draft.date == Present(value="01/15/2024", confidence=Confidence.HIGH)
        assert draft.amount == Present(value="152.25", confidence=Confidence.HIGH)
        assert draft.pounds.value == "43.5"
        assert draft.pounds.confidence >= Confidence.MED
        assert draft.dealer == Present(value="Acme Seafood", confidence=Confidence.HIGH)
        assert isinstance(draft.area, Absent)

    def test_raw_text_kept(self):
        """Test that the draft carries the pasted text for provenance."""
        draft = extract(SLIP)
        assert draft.raw_text == SLIP
        assert draft.to_inputs()["raw_text"] == SLIP
        assert draft.to_inputs()["source"] == "parsed"

    def test_known_area(self):
        """Test that a known area found in the text is offered."""
        draft = extract(SLIP + "\nArea 62", known_areas=["Area 61", "Area 62"])
        assert draft.area == Present(value="Area 62", confidence=Confidence.MED)


class TestTotality:
    """extract() returns a five-field draft for any input."""

    @pytest.mark.parametrize("text", [None, "", "   \n\t", "@@@ ### !!!", 12345, b"CHECK AMOUNT 10.00"])
    def test_never_raises(self, text):
        """Test odd inputs still produce a complete draft."""
        draft = extract(text)
        assert isinstance(draft, ParsedDraft)
        assert set(draft.confidence) == {"date", "dealer", "pounds", "amount", "area"}

    def test_empty_is_all_absent(self):
        """Test that empty text guesses nothing."""
        draft = extract("")
        assert all(c == Confidence.ABSENT for c in draft.confidence.values())
        assert draft.to_inputs()["amount"] == ""

    def test_huge_input_truncated(self):
        """Test that oversized input is cut and flagged."""
        draft = extract("x" * (MAX_INPUT_CHARS + 1000))
        assert len(draft.raw_text) == MAX_INPUT_CHARS
        assert any("truncated" in f for f in draft.flags)

    def test_bad_known_lists_ignored(self):
        """Test that non-list dealer/area inputs are treated as empty."""
        draft = extract(SLIP, known_dealers="Acme Seafood", known_areas=42)
        assert draft.dealer.confidence == Confidence.MED


class TestFindDate:
    """Date tiers and two-digit year handling."""

    def test_labelled_short_year_2000s(self):
        """Test that 05 expands to 2005."""
        result = find_date(["Date: 1/5/05"])
        assert result == Present(value="01/05/2005", confidence=Confidence.HIGH)

    def test_short_year_1900s(self):
        """Test that 85 expands to 1985."""
        result = find_date(["Date 3/4/85"])
        assert result.value == "03/04/1985"

    def test_unlabelled_short_year_is_med(self):
        """Test confidence for an unlabelled two-digit year."""
        assert find_date(["shipped 1/5/24"]).confidence == Confidence.MED

    def test_label_on_previous_line(self):
        """Test that a label on the line above anchors the value."""
        result = find_date(["Harvest 02/01/2024", "CHECK DATE", "01/20/2024"])
        assert result.value == "01/20/2024"

    def test_glued_date(self):
        """Test the glued MMDDYY form under a label."""
        result = find_date(["Date", "011524"])
        assert result == Present(value="01/15/2024", confidence=Confidence.MED)

    def test_invalid_calendar_date_skipped(self):
        """Test that impossible dates are not offered."""
        assert isinstance(find_date(["02/30/2024"]), Absent)

    def test_no_date(self):
        """Test no date at all."""
        assert isinstance(find_date(["ACME SEAFOOD", "43.5 lbs"]), Absent)


class TestFindAmount:
    """Amount precedence: label, currency mark, largest decimal."""

    def test_label_beats_larger_currency(self):
        """Test that a labelled amount wins over a bigger $ value."""
        flags = []
        result = find_amount(["Total $200.00", "AMOUNT PAID 152.25"], flags=flags)
        assert result == Present(value="152.25", confidence=Confidence.HIGH)

    def test_currency_fallback_largest(self):
        """Test the currency-marked fallback picks the largest and flags it."""
        flags = []
        result = find_amount(["ACME", "$45.00", "$152.25"], flags=flags)
        assert result == Present(value="152.25", confidence=Confidence.MED)
        assert flags

    def test_loose_decimal_fallback(self):
        """Test the unmarked decimal fallback and its competitor flag."""
        flags = []
        result = find_amount(["Harvest 01/15/2024", "152.25", "12.50"], flags=flags)
        assert result == Present(value="152.25", confidence=Confidence.LOW)
        assert "12.50" in flags[0]

    def test_noise_lines_ignored(self):
        """Test that phone/account lines never supply an amount."""
        result = find_amount(["ACCOUNT 4411.22", "Clams"])
        assert isinstance(result, Absent)

    def test_no_cents_inference(self):
        """Test that a bare digit run is never read as dollars and cents."""
        assert isinstance(find_amount(["Total 15225"]), Absent)

    def test_comma_decimal(self):
        """Test European-style decimal comma under a label."""
        assert find_amount(["Check Amount 59,50"]).value == "59.50"

    def test_label_takes_leftmost_value(self):
        """Test that a currency value right after the label beats a later decimal."""
        draft = extract("CHECK AMOUNT $189\n43.50 lbs\n01/15/2024")
        assert draft.amount == Present(value="189.00", confidence=Confidence.HIGH)
        assert draft.pounds.value == "43.5"

    def test_label_window_skips_dates(self):
        """Test that a dotted date after the label is not read as money."""
        draft = extract("CHECK AMOUNT $1,500 DATE 01.15.2024")
        assert draft.amount.value == "1500.00"
        assert find_amount(["AMOUNT 01.15.2024 152.25"]).value == "152.25"

    def test_label_window_is_bounded(self):
        """Test that values far past the label are left to the fallbacks."""
        result = find_amount(["AMOUNT " + "x" * 300 + " 12.00"])
        assert result == Present(value="12.00", confidence=Confidence.LOW)

    def test_many_labels_stay_fast(self):
        """Test that repeated labels on large input don't blow up run time."""
        start = time.perf_counter()
        draft = extract("AMT x " * 30000)
        assert isinstance(draft.amount, Absent)
        assert time.perf_counter() - start < 10


class TestFindPounds:
    """Pounds tiers."""

    def test_unit_marker(self):
        """Test a number followed by lbs."""
        assert find_pounds(["Clams 43.5 lbs"]) == Present(value="43.5", confidence=Confidence.HIGH)

    @pytest.mark.parametrize("line", ["60 IBS", "60 1bs", "60 |bs", "60 pounds"])
    def test_ocr_markers(self, line):
        """Test scanner-mangled unit markers."""
        assert find_pounds([line]).value == "60"

    def test_description_integer_is_med(self):
        """Test an integer alone under DESCRIPTION."""
        result = find_pounds(["DESCRIPTION", "Softshell", "40"])
        assert result == Present(value="40", confidence=Confidence.MED)

    def test_description_skips_amount(self):
        """Test that the amount is not mistaken for pounds."""
        result = find_pounds(["DESCRIPTION", "152.25", "43.5"], amount=152.25)
        assert result.value == "43.5"

    def test_frequency_fallback(self):
        """Test the most-repeated plausible number."""
        result = find_pounds(["Clams 40", "40 @ 3.00", "Total 120.00"], amount=120.0)
        assert result == Present(value="40", confidence=Confidence.LOW)

    def test_nothing_plausible(self):
        """Test out-of-range numbers only."""
        assert isinstance(find_pounds(["9999"]), Absent)


class TestFindDealerAndArea:
    """Dealer and area lookups."""

    def test_longest_known_dealer_wins(self):
        """Test the longest canonical match among known dealers."""
        lines = ["ACME SEAFOOD CO. of Machias"]
        result = find_dealer(lines, ["Acme", "Acme Seafood"])
        assert result == Present(value="Acme Seafood", confidence=Confidence.HIGH)

    def test_seller_marker_line(self):
        """Test the structural fallback to a line with a seller marker."""
        result = find_dealer(["PAY TO THE ORDER OF", "Downeast Clam LLC", "01/15/2024"])
        assert result == Present(value="Downeast Clam LLC", confidence=Confidence.MED)

    def test_plain_line_low(self):
        """Test the last-resort alphabetic line."""
        result = find_dealer(["01/15/2024", "Jonesport Landing"])
        assert result.confidence == Confidence.LOW

    def test_area_first_in_list_order(self):
        """Test that list order decides between several areas present."""
        result = find_area(["Area 62 and Area 61"], ["Area 61", "Area 62"])
        assert result.value == "Area 61"

    def test_area_absent(self):
        """Test that an area is never guessed."""
        assert isinstance(find_area(["Area 99"], ["Area 62"]), Absent)


class TestDealerProfile:
    """Per-dealer quirks."""

    def test_machias_amount_needs_label(self):
        """Test that the Machias profile has no amount fallback."""
        draft = extract("MACHIAS BAY SEAFOOD\nTOTAL 152.25")
        assert isinstance(draft.amount, Absent)
        assert draft.dealer == Present(value="Machias Bay Seafood", confidence=Confidence.HIGH)

    def test_machias_labelled_amount(self):
        """Test the Machias profile reads the CHECK AMOUNT label."""
        draft = extract("MACHIAS BAY SEAFOOD\nCheck Date: 01/15/2024\nCHECK AMOUNT $152.25")
        assert draft.amount == Present(value="152.25", confidence=Confidence.HIGH)
        assert draft.date.value == "01/15/2024"

    def test_default_profile_falls_back(self):
        """Test that other slips still use the decimal fallback."""
        draft = extract("DOWNEAST CLAM\nTOTAL 152.25")
        assert draft.amount == Present(value="152.25", confidence=Confidence.LOW)

    def test_choose_profile(self):
        """Test profile selection by trigger text."""
        assert choose_profile("from machias bay seafood")["name"] == DEALER_PROFILES["MACHIAS BAY SEAFOOD"]["name"]
        assert choose_profile("anything else")["name"] == "default"


class TestHelpers:
    """Small helpers."""

    def test_money_value(self):
        """Test money parsing."""
        assert money_value("1,204.50") == 1204.5
        assert money_value("59,50") == 59.5
        assert money_value("abc") is None

    def test_format_pounds(self):
        """Test trailing zeros are dropped."""
        assert format_pounds(43.5) == "43.5"
        assert format_pounds(40.0) == "40"

    def test_lines_from_text(self):
        """Test line splitting and whitespace normalisation."""
        raw, lines, flags = lines_from_text("a\r\n\r\n b c \rd")
        assert lines == ["a", "b c", "d"]
        assert flags == []

    def test_clean_known(self):
        """Test caller list cleanup."""
        assert clean_known(["  Acme ", "", None, 3, "Bay"]) == ["Acme", "Bay"]
        assert clean_known(None) == []

    def test_label_regex_not_inside_words(self):
        """Test that labels match whole words only."""
        pat = label_regex(["AMT"])
        assert pat.search("amt 10.00")
        assert not pat.search("AMTRAK")
