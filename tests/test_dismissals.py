"""Tests for the dismissal cache (TTL, persistence, corrupt files)."""

import json

from workshop_alerts.alerts.dismissals import DismissalCache

HOUR = 3600


class TestTtl:
    def test_hidden_just_before_expiry(self, dismissals, clock):
        dismissals.dismiss("stock_cero__global")
        clock.advance(23 * HOUR + 59 * 60)
        assert dismissals.is_dismissed("stock_cero__global") is True

    def test_visible_again_after_expiry(self, dismissals, clock):
        dismissals.dismiss("stock_cero__global")
        clock.advance(24 * HOUR + 60)
        assert dismissals.is_dismissed("stock_cero__global") is False
        assert dismissals.active() == {}

    def test_custom_ttl(self, tmp_path, clock):
        cache = DismissalCache(tmp_path / "d.json", ttl=HOUR, clock=clock)
        cache.dismiss("a")
        clock.advance(HOUR + 1)
        assert cache.is_dismissed("a") is False


class TestPersistence:
    def test_survives_reload(self, tmp_path, clock):
        path = tmp_path / "d.json"
        DismissalCache(path, clock=clock).dismiss("tarea_bloqueada__p1")

        reloaded = DismissalCache(path, clock=clock)
        assert reloaded.is_dismissed("tarea_bloqueada__p1") is True
        assert json.loads(path.read_text()) == {"tarea_bloqueada__p1": clock.now * 1000}

    def test_prune_is_written_back(self, tmp_path, clock):
        path = tmp_path / "d.json"
        cache = DismissalCache(path, clock=clock)
        cache.dismiss("old")
        clock.advance(25 * HOUR)
        cache.dismiss("new")
        cache.active()
        assert set(json.loads(path.read_text())) == {"new"}

    def test_missing_file_reads_empty(self, tmp_path, clock):
        assert DismissalCache(tmp_path / "nope" / "d.json", clock=clock).active() == {}

    def test_corrupt_file_reads_empty(self, tmp_path, clock):
        path = tmp_path / "d.json"
        path.write_text("{not json")
        cache = DismissalCache(path, clock=clock)
        assert cache.active() == {}
        cache.dismiss("a")
        assert cache.is_dismissed("a") is True

    def test_non_numeric_entries_are_ignored(self, tmp_path, clock):
        path = tmp_path / "d.json"
        path.write_text(json.dumps({"a": "yesterday", "b": clock.now * 1000}))
        assert set(DismissalCache(path, clock=clock).active()) == {"b"}


class TestUndismiss:
    def test_undismiss_restores(self, dismissals):
        dismissals.dismiss("a")
        assert dismissals.undismiss("a") is True
        assert dismissals.is_dismissed("a") is False

    def test_undismiss_unknown(self, dismissals):
        assert dismissals.undismiss("missing") is False
