"""Tests for settings validation and the logging level wiring."""
import logging

import pytest
import structlog
from pydantic import ValidationError

from waxfeed.config import Settings, get_settings
from waxfeed.main import configure_logging


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.TASTE_RECOMPUTE_THRESHOLDS == [3, 20, 50, 100, 200, 500]
        assert settings.log_level_number == logging.INFO

    @pytest.mark.parametrize("milestones", [[], [20, 3], [3, 3, 20], [0, 3]])
    def test_recompute_milestones_rejected(self, milestones):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, TASTE_RECOMPUTE_THRESHOLDS=milestones)

    def test_match_weight_out_of_range(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MATCH_GENRE_WEIGHT=1.5)

    def test_log_level_normalised(self):
        settings = Settings(_env_file=None, LOG_LEVEL="warning")
        assert settings.LOG_LEVEL == "WARNING"
        assert settings.log_level_number == logging.WARNING

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="chatty")


class TestLogging:

    def test_events_below_level_are_dropped(self, capsys):
        configure_logging(logging.WARNING)
        try:
            log = structlog.get_logger("waxfeed.test")
            log.info("quiet_event")
            log.warning("loud_event")
            out = capsys.readouterr().out
        finally:
            configure_logging(get_settings().log_level_number)

        assert "quiet_event" not in out
        assert "loud_event" in out
