"""
Tests for identity normalization, status canonicalization, links and business days.

Run with: pytest tests/test_normalize.py -v
"""
from datetime import date, datetime

import pytest

from ats_sync.models import Hyperlink
from ats_sync.services import email_cell, phone_cell
from ats_sync.utils import (
    business_days_between,
    canonicalize_status,
    composite_key,
    diff_fields,
    extract_url,
    job_id_from_key,
    make_hyperlink,
    normalize_email,
    normalize_phone,
    normalize_url,
    values_equal,
)


class TestEmailNormalization:

    @pytest.mark.parametrize("raw,expected", [
        ("John.Doe+jobs@Gmail.com", "johndoe@gmail.com"),
        ("  j.o.h.n@googlemail.com ", "john@gmail.com"),
        ("john+tag@company.com", "john+tag@company.com"),
        ("John@Company.com", "john@company.com"),
        ("not-an-email", "not-an-email"),
        ("", ""),
        (None, ""),
    ])
    def test_examples(self, raw, expected):
        assert normalize_email(raw) == expected

    def test_company_aliases_stay_distinct(self):
        assert normalize_email("john@company.com") != normalize_email("john+tag@company.com")

    def test_hyperlink_cell_reads_label(self):
        assert normalize_email(Hyperlink(url="mailto:a@x.com", label="A@X.com")) == "a@x.com"


class TestKeys:

    def test_composite_key(self):
        assert composite_key(" 2025-0001 ", "A@X.com") == "2025-0001|a@x.com"
        assert job_id_from_key("2025-0001|a@x.com") == "2025-0001"

    def test_blank_rows_never_share_a_key(self):
        assert composite_key("", "") != composite_key(None, None)

    def test_phone_digits(self):
        assert normalize_phone("+1 (555) 123-4567") == "15551234567"


class TestStatus:

    @pytest.mark.parametrize("raw,expected", [
        ("open", "Open"),
        ("ON HOLD", "On Hold"),
        (" closed ", "Closed"),
        ("pending approval", "Pending Approval"),
        ("hired", "Hired"),
        ("draft", "Draft"),
        ("", ""),
    ])
    def test_canonicalize(self, raw, expected):
        assert canonicalize_status(raw) == expected


class TestValueComparison:

    def test_numbers_compare_numerically(self):
        assert values_equal(10, "10")
        assert values_equal(10.0, "10")

    def test_none_equals_empty(self):
        assert values_equal(None, "")

    def test_datetimes_compare_by_instant(self):
        assert values_equal(datetime(2025, 1, 1, 9), datetime(2025, 1, 1, 9))
        assert not values_equal(datetime(2025, 1, 1, 9), datetime(2025, 1, 1, 10))

    def test_diff_fields_only_returns_changes(self):
        diff = diff_fields({"A": "x", "B": 2}, {"A": "x ", "B": "3"}, ["A", "B"])
        assert diff == {"B": 2}


class TestLinks:

    def test_bare_urls_get_https(self):
        assert normalize_url("www.example.com/cv.pdf") == "https://www.example.com/cv.pdf"
        assert normalize_url("linkedin.com/in/ada") == "https://linkedin.com/in/ada"
        assert normalize_url("http://example.com") == "http://example.com"

    def test_extract_url(self):
        assert extract_url(Hyperlink(url="www.example.com", label="Resume")) == "https://www.example.com"
        assert extract_url("see attached") == ""

    def test_make_hyperlink_rejects_other_schemes(self):
        assert make_hyperlink("javascript:alert(1)", "x") is None
        assert make_hyperlink("", "x") is None
        assert make_hyperlink("mailto:a@x.com", "a@x.com") == Hyperlink(url="mailto:a@x.com", label="a@x.com")

    def test_email_and_phone_cells(self):
        assert email_cell(" Ada@X.com ") == Hyperlink(url="mailto:ada@x.com", label="Ada@X.com")
        assert phone_cell("(555) 123-4567") == Hyperlink(url="tel:5551234567", label="(555) 123-4567")
        assert phone_cell("12345") == "12345"


class TestBusinessDays:

    def test_range_with_holiday(self):
        # MLK day (2025-01-20) falls inside the range
        assert business_days_between(date(2025, 1, 13), date(2025, 1, 28)) == 10

    def test_short_range(self):
        assert business_days_between(date(2025, 1, 13), date(2025, 1, 17)) == 4

    def test_empty_or_reversed_range(self):
        assert business_days_between(None, date(2025, 1, 17)) == 0
        assert business_days_between(date(2025, 1, 17), date(2025, 1, 13)) == 0

    def test_accepts_strings_and_datetimes(self):
        assert business_days_between("2025-01-13", datetime(2025, 1, 28, 9, 30)) == 10
