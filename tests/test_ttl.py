"""Tests for the TTL policy, category store and records."""

import pytest
from metasync.cache import CategoryState, format_age, is_valid
from metasync.models.records import CachedRecord


class TestIsValid:
    """Tests for is_valid()."""

    def test_never_refreshed_is_invalid(self):
        """Test that a missing refresh time is never valid."""
        assert is_valid(None, ttl=60, now=100.0) is False

    def test_within_ttl(self):
        """Test that an age below the TTL is valid."""
        assert is_valid(100.0, ttl=60, now=159.999) is True

    def test_at_ttl_is_invalid(self):
        """Test that an age equal to the TTL is already stale."""
        assert is_valid(100.0, ttl=60, now=160.0) is False

    def test_zero_ttl_always_invalid(self):
        """Test that TTL 0 invalidates even a refresh made right now."""
        assert is_valid(100.0, ttl=0, now=100.0) is False


class TestFormatAge:
    """Tests for format_age()."""

    def test_never(self):
        assert format_age(None, now=100.0) == "never"

    def test_minutes_and_seconds(self):
        assert format_age(0.0, now=125.4) == "2m 5s"


class TestCategoryState:
    """Tests for CategoryState."""

    def test_initial_state(self):
        """Test a fresh state is empty and never refreshed."""
        state = CategoryState()
        assert len(state) == 0
        assert state.last_refresh_at is None
        assert state.snapshot() == []

    def test_replace_drops_missing_records(self):
        """Test that replace swaps the whole dataset."""
        state = CategoryState()
        state.replace([CachedRecord(1, "a"), CachedRecord(2, "b")], refreshed_at=10.0)
        state.replace([CachedRecord(2, "b"), CachedRecord(3, "c")], refreshed_at=20.0)
        assert [r.id for r in state.snapshot()] == [2, 3]
        assert 1 not in state
        assert state.last_refresh_at == 20.0

    def test_upsert_keeps_refresh_time(self):
        """Test that upsert replaces by id and leaves the refresh time alone."""
        state = CategoryState()
        state.replace([CachedRecord(1, "old")], refreshed_at=10.0)
        state.upsert(CachedRecord(1, "new"))
        state.upsert(CachedRecord(2, "other"))
        assert state.get(1).name == "new"
        assert len(state) == 2
        assert state.last_refresh_at == 10.0

    def test_snapshot_is_a_copy(self):
        """Test that mutating a snapshot does not touch the state."""
        state = CategoryState()
        state.replace([CachedRecord(1, "a")], refreshed_at=10.0)
        snapshot = state.snapshot()
        snapshot.clear()
        assert len(state) == 1

    def test_clear(self):
        """Test that clear resets entries and refresh time."""
        state = CategoryState()
        state.replace([CachedRecord(1, "a")], refreshed_at=10.0)
        state.clear()
        assert len(state) == 0
        assert state.last_refresh_at is None


class TestCachedRecord:
    """Tests for CachedRecord."""

    def test_from_api_keeps_extra_fields(self):
        """Test that upstream fields beyond id/name land in attributes."""
        record = CachedRecord.from_api({"id": 5, "name": "Bank", "document_count": 7})
        assert record.id == 5
        assert record.name == "Bank"
        assert record.attributes["document_count"] == 7
        assert record.to_dict() == {"id": 5, "name": "Bank", "document_count": 7}

    def test_from_api_requires_id(self):
        """Test that a record without id is rejected."""
        with pytest.raises(ValueError):
            CachedRecord.from_api({"name": "no id"})

    def test_attributes_are_read_only(self):
        """Test that attributes cannot be modified."""
        record = CachedRecord.from_api({"id": 1, "name": "x", "color": "#fff"})
        with pytest.raises(TypeError):
            record.attributes["color"] = "#000"  # type: ignore[index]

    def test_coerce(self):
        """Test that coerce passes records through and converts mappings."""
        record = CachedRecord(1, "a")
        assert CachedRecord.coerce(record) is record
        assert CachedRecord.coerce({"id": "x", "name": "b"}) == CachedRecord.from_api({"id": "x", "name": "b"})
