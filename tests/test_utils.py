"""Tests for shared utility functions."""

from datetime import datetime, timedelta, timezone

from booking_coordinator.utils import new_id, normalize_phone, normalize_service, to_iso


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("98765 43210") == "9876543210"

    def test_strips_dashes(self):
        assert normalize_phone("98765-43210") == "9876543210"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+91 98765 43210") == "+919876543210"

    def test_strips_whitespace(self):
        assert normalize_phone("  9876543210  ") == "9876543210"

    def test_mixed_separators(self):
        assert normalize_phone("+91 (98765) 432-10") == "+919876543210"


class TestNormalizeService:
    def test_lower_cases(self):
        assert normalize_service("Plumbing") == "plumbing"

    def test_collapses_whitespace(self):
        assert normalize_service("  AC   repair ") == "ac repair"


class TestToIso:
    def test_fixed_width_microseconds(self):
        moment = datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc)
        assert to_iso(moment) == "2025-03-15T09:00:00.000000+00:00"

    def test_naive_treated_as_utc(self):
        assert to_iso(datetime(2025, 3, 15, 9, 0)) == "2025-03-15T09:00:00.000000+00:00"

    def test_offset_converted_to_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        assert to_iso(datetime(2025, 3, 15, 14, 30, tzinfo=ist)) == "2025-03-15T09:00:00.000000+00:00"

    def test_lexical_order_matches_time_order(self):
        base = datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc)
        stamps = [to_iso(base + timedelta(microseconds=n)) for n in (0, 1, 10, 999999)]
        assert stamps == sorted(stamps)


class TestNewId:
    def test_unique(self):
        assert new_id() != new_id()
