"""
Tests for the Trust Preview Cache

Tests covering:
1. Identical keys return the identical object without recomputing
2. Changes to a key input are a miss
3. Forced refresh, clearing and persistence
"""

from __future__ import annotations

import pytest

from core.guest.schema import FormSnapshot
from core.storage import TRUST_PREVIEW_KEY, MemoryStore
from core.trust.levels import TrustLevel
from core.trust.preview import PreviewCache, TrustPreview, preview_key
from core.trust.scoring import calculate_score
from core.verification.schema import VerificationFacts, VerificationMethod, VerificationStatus

from tests.conftest import TODAY, iso


class CountingScore:
    """Score function wrapper that counts calls."""

    def __init__(self):
        self.calls = 0

    def __call__(self, snapshot, facts=None, today=None):
        self.calls += 1
        return calculate_score(snapshot, facts, today=today)


@pytest.fixture
def score_fn():
    return CountingScore()


@pytest.fixture
def cache(store, score_fn):
    return PreviewCache(store, score_fn=score_fn, today_fn=lambda: TODAY)


@pytest.fixture
def snapshot():
    return FormSnapshot(
        total_guests=2,
        used_str_before=True,
        check_in_date=iso(14),
        check_out_date=iso(16),
    )


class TestMemoisation:

    def test_hit_returns_identical_object(self, cache, score_fn, snapshot):
        facts = VerificationFacts()

        first = cache.get_or_compute(snapshot, facts)
        second = cache.get_or_compute(snapshot, facts)

        assert first is second
        assert score_fn.calls == 1
        assert len(cache) == 1

    def test_total_guests_change_is_a_miss(self, cache, score_fn, snapshot):
        facts = VerificationFacts()

        first = cache.get_or_compute(snapshot, facts)
        second = cache.get_or_compute(snapshot.with_changes(total_guests=7), facts)

        assert first is not second
        assert score_fn.calls == 2
        assert second.flags.high_guest_count

    def test_fields_outside_key_do_not_recompute(self, cache, score_fn, snapshot):
        facts = VerificationFacts()

        first = cache.get_or_compute(snapshot, facts)
        second = cache.get_or_compute(snapshot.with_changes(name="Somebody Else"), facts)

        assert first is second
        assert score_fn.calls == 1

    def test_background_check_status_is_part_of_key(self, cache, score_fn, snapshot):
        facts = VerificationFacts()
        cache.get_or_compute(snapshot, facts)

        facts.apply_status(VerificationMethod.BACKGROUND_CHECK, VerificationStatus.PROCESSING)
        cache.get_or_compute(snapshot, facts)

        assert score_fn.calls == 2

    def test_preview_key(self, snapshot):
        assert preview_key(snapshot, VerificationFacts()) == (False, 2.0, True, False)

    def test_forced_refresh_recomputes(self, cache, score_fn, snapshot):
        facts = VerificationFacts()
        first = cache.get_or_compute(snapshot, facts)

        facts.casl_key_id = "CKABCDE"
        refreshed = cache.refresh(snapshot, facts, force=True)

        assert refreshed is not first
        assert refreshed.casl_key_id == "CKABCDE"
        assert cache.get_or_compute(snapshot, facts) is refreshed
        assert score_fn.calls == 2


class TestPersistence:

    def test_preview_is_persisted(self, cache, store, snapshot):
        preview = cache.get_or_compute(snapshot, VerificationFacts())

        assert store.get(TRUST_PREVIEW_KEY) == preview.to_dict()
        assert preview.trust_level == TrustLevel.VERIFIED

    def test_clear_removes_entries_and_persisted_copy(self, cache, store, snapshot):
        cache.get_or_compute(snapshot, VerificationFacts())
        cache.clear()

        assert len(cache) == 0
        assert cache.last is None
        assert store.get(TRUST_PREVIEW_KEY) is None

    def test_load_persisted_does_not_seed_cache(self, store, score_fn, snapshot):
        PreviewCache(store, today_fn=lambda: TODAY).get_or_compute(snapshot, VerificationFacts())

        reloaded = PreviewCache(store, score_fn=score_fn, today_fn=lambda: TODAY)
        restored = reloaded.load_persisted()

        assert isinstance(restored, TrustPreview)
        assert reloaded.last == restored
        assert len(reloaded) == 0
        assert score_fn.calls == 0

    def test_unreadable_persisted_preview_is_discarded(self):
        store = MemoryStore()
        store.set(TRUST_PREVIEW_KEY, {"trustLevel": "excellent"})

        assert PreviewCache(store).load_persisted() is None
        assert store.get(TRUST_PREVIEW_KEY) is None

    def test_round_trip(self, cache, snapshot):
        preview = cache.get_or_compute(snapshot, VerificationFacts(casl_key_id="CKABCDE"))
        assert TrustPreview.from_dict(preview.to_dict()) == preview
