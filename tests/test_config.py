"""
Tests for configuration loading and the session model.
"""

import pytest
from pydantic import ValidationError

from flipscan import config as config_module
from flipscan.config import ScannerConfig, get_config, reload_config
from flipscan.data_structures import ScanSession, ScanStatus, UserState, ViewerKind
from flipscan.errors import ScanStateError


class TestScannerConfig:
    """Environment driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("FLIPSCAN_MAX_PAGES", "FLIPSCAN_SCAN_SPEED_MS", "FLIPSCAN_REDIS_URL"):
            monkeypatch.delenv(name, raising=False)
        config = ScannerConfig()
        assert config.max_pages == 500
        assert config.scan_speed_ms == 1000
        assert config.min_image_width == 550
        assert config.repeat_threshold == 3
        assert config.ready_max_wait is None
        assert config.redis_url is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FLIPSCAN_MAX_PAGES", "42")
        monkeypatch.setenv("FLIPSCAN_LOG_LEVEL", "DEBUG")
        config = ScannerConfig()
        assert config.max_pages == 42
        assert config.log_level == "debug"

    @pytest.mark.parametrize("field,value", [
        ("scan_speed_ms", 50),
        ("scan_speed_ms", 20000),
        ("max_pages", 0),
        ("repeat_threshold", 0),
        ("ready_max_wait", 0),
        ("jpeg_quality", 100),
        ("log_level", "verbose"),
        ("redis_url", "http://localhost:6379"),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            ScannerConfig(**{field: value})

    def test_singleton_and_reload(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config_instance", None)
        first = get_config()
        assert get_config() is first

        monkeypatch.setenv("FLIPSCAN_MAX_PAGES", "7")
        reloaded = reload_config()
        assert reloaded is not first
        assert reloaded.max_pages == 7
        monkeypatch.setattr(config_module, "_config_instance", None)


class TestScanSession:
    """Session invariants."""

    def make_session(self):
        session = ScanSession(viewer_kind=ViewerKind.HASH_NAV, base_url="https://x/")
        session.begin()
        return session

    def test_add_image_dedupes(self):
        session = self.make_session()
        assert session.add_image("https://x/1.jpg") == 0
        assert session.add_image("https://x/2.jpg") == 1
        assert session.add_image("https://x/1.jpg") is None
        assert session.images == ["https://x/1.jpg", "https://x/2.jpg"]

    def test_frozen_session_rejects_images(self):
        session = self.make_session()
        session.freeze(ScanStatus.PAUSED)
        with pytest.raises(ScanStateError):
            session.add_image("https://x/1.jpg")

    def test_cursor_is_monotonic_and_bounded(self):
        session = self.make_session()
        session.advance_cursor(5, 500)
        session.advance_cursor(3, 500)
        assert session.current_page == 5
        session.advance_cursor(900, 500)
        assert session.current_page == 500

    def test_begin_twice_is_refused(self):
        session = self.make_session()
        with pytest.raises(ScanStateError):
            session.begin()

    def test_freeze_requires_frozen_status(self):
        session = self.make_session()
        with pytest.raises(ValueError):
            session.freeze(ScanStatus.SCANNING)

    def test_snapshot_is_a_copy(self):
        session = self.make_session()
        session.add_image("https://x/1.jpg")
        snapshot = session.snapshot()
        snapshot.append("https://x/2.jpg")
        assert session.images == ["https://x/1.jpg"]

    def test_user_state_aliases(self):
        state = UserState.model_validate({"isPaid": True, "subscriptionType": "monthly"})
        assert state.is_paid is True
        assert state.subscription_type == "monthly"
