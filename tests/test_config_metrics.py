"""
Bifrost Configuration, Metrics and Logging Tests
"""

import logging

import pytest

from bifrost import constants
from bifrost.constants import env_flag, env_setting
from bifrost.exceptions import ConfigurationError
from bifrost.logger import BifrostLogHighlighter, LogManager, TerminalSafeFormatter, get_logger
from bifrost.metrics import Counter, Gauge, Histogram, MetricsRegistry, ScheduleMetrics
from bifrost.schedule import ScheduleConfig


# =============================================================================
# SCHEDULE CONFIG
# =============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("BIFROST_SLOTS_PER_EPOCH", "BIFROST_SCHEDULE_RETENTION", "BIFROST_WAIT_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)


class TestScheduleConfig:
    """Test [schedule] loading and validation."""

    def test_defaults(self):
        config = ScheduleConfig()
        assert config.slots_per_epoch == 432_000
        assert config.leader_slot_span == 4
        assert config.retention == constants.DEFAULT_SCHEDULE_RETENTION
        assert config.wait_timeout is None
        assert config.validate() is True

    def test_from_dict(self):
        config = ScheduleConfig.from_dict({
            "slots_per_epoch": 8192,
            "retention": 6,
            "wait_timeout": 2,
            "include_delinquent": True,
        })
        assert config.slots_per_epoch == 8192
        assert config.retention == 6
        assert config.wait_timeout == 2.0
        assert config.include_delinquent is True

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            "[node]\n"
            "name = 'ignored'\n"
            "\n"
            "[schedule]\n"
            "slots_per_epoch = 32\n"
            "retention = 2\n"
        )
        config = ScheduleConfig.from_file(str(path))
        assert config.slots_per_epoch == 32
        assert config.retention == 2

    def test_missing_file_uses_defaults(self, tmp_path):
        config = ScheduleConfig.from_file(str(tmp_path / "absent.toml"))
        assert config == ScheduleConfig()

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[schedule\nslots_per_epoch = ")
        with pytest.raises(ConfigurationError):
            ScheduleConfig.from_file(str(path))

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text("[schedule]\nslots_per_epoch = 32\n")
        monkeypatch.setenv("BIFROST_SLOTS_PER_EPOCH", "64")
        monkeypatch.setenv("BIFROST_WAIT_TIMEOUT", "1.5")
        config = ScheduleConfig.from_file(str(path))
        assert config.slots_per_epoch == 64
        assert config.wait_timeout == 1.5

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv("BIFROST_SCHEDULE_RETENTION", "many")
        with pytest.raises(ConfigurationError):
            ScheduleConfig().apply_env()

    @pytest.mark.parametrize("field,value", [
        ("slots_per_epoch", 0),
        ("leader_slot_span", 0),
        ("leader_slot_span", 8),
        ("retention", 0),
        ("wait_timeout", -1.0),
    ])
    def test_validate_rejects(self, field, value):
        config = ScheduleConfig()
        setattr(config, field, value)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_to_dict_round_trip(self):
        config = ScheduleConfig(slots_per_epoch=64, retention=3, wait_timeout=0.5)
        assert ScheduleConfig.from_dict(config.to_dict()) == config


# =============================================================================
# CONSTANTS
# =============================================================================

class TestConstants:

    def test_protocol_values(self):
        assert constants.NUM_CONSECUTIVE_LEADER_SLOTS == 4
        assert constants.VALIDATOR_ID_LENGTH == 32
        assert constants.U64_MAX == 2**64 - 1

    def test_env_setting_prefers_environment(self, monkeypatch):
        monkeypatch.delenv("BIFROST_TEST_SETTING", raising=False)
        assert env_setting("BIFROST_TEST_SETTING", "fallback") == "fallback"
        monkeypatch.setenv("BIFROST_TEST_SETTING", "from-env")
        assert env_setting("BIFROST_TEST_SETTING", "fallback") == "from-env"

    @pytest.mark.parametrize("raw,expected", [
        (" true ", True),
        ("FALSE", False),
        ("1", True),
        ("off", False),
        ("sometimes", True),
    ])
    def test_env_flag(self, monkeypatch, raw, expected):
        monkeypatch.setenv("BIFROST_TEST_FLAG", raw)
        assert env_flag("BIFROST_TEST_FLAG", True) is expected

    def test_env_flag_default(self, monkeypatch):
        monkeypatch.delenv("BIFROST_TEST_FLAG", raising=False)
        assert env_flag("BIFROST_TEST_FLAG", False) is False


# =============================================================================
# METRICS
# =============================================================================

class TestMetrics:
    """Test Prometheus primitives and the schedule collector."""

    def test_counter(self):
        counter = Counter("c_total", "help")
        counter.inc()
        counter.inc(2)
        assert counter.value == 3
        with pytest.raises(ValueError):
            counter.inc(-1)

    def test_gauge(self):
        gauge = Gauge("g")
        gauge.set(5)
        gauge.set(3)
        assert gauge.value == 3
        assert gauge.expose().endswith("g 3")

    def test_histogram_exposition_is_cumulative(self):
        histogram = Histogram("h_seconds", buckets=(1.0, 0.1))
        histogram.observe(0.05)
        histogram.observe(0.5)
        histogram.observe(3.0)
        text = histogram.expose()
        assert 'h_seconds_bucket{le="0.1"} 1' in text
        assert 'h_seconds_bucket{le="1.0"} 2' in text
        assert 'h_seconds_bucket{le="+Inf"} 3' in text
        assert "h_seconds_count 3" in text

    def test_histogram_timer(self):
        histogram = Histogram("t_seconds")
        with histogram.time():
            pass
        assert histogram.count == 1

    def test_registry_rejects_duplicates(self):
        registry = MetricsRegistry()
        registry.register(Counter("x_total"))
        with pytest.raises(ValueError):
            registry.register(Counter("x_total"))
        assert registry.metric_count == 1

    def test_schedule_metrics_exposed(self):
        metrics = ScheduleMetrics()
        metrics.builds_total.inc()
        text = metrics.expose()
        assert "# TYPE bifrost_schedule_builds_total counter" in text
        assert "bifrost_schedule_builds_total 1.0" in text
        assert "bifrost_schedule_build_seconds_count 0" in text
        assert "bifrost_schedule_cached_epochs" in text
        assert metrics.registry.metric_count == 7


# =============================================================================
# LOGGING
# =============================================================================

class TestLogging:

    def test_singleton(self):
        assert LogManager() is LogManager()

    def test_get_logger_configures(self):
        logger = get_logger("bifrost.test")
        assert isinstance(logger, logging.Logger)
        assert LogManager().is_configured

    def test_sanitize_strips_control_sequences(self):
        assert TerminalSafeFormatter.sanitize("epoch 5\x1b[31m red\r\x07") == "epoch 5 red"

    def test_sanitize_keeps_tabs_and_newlines(self):
        assert TerminalSafeFormatter.sanitize("a\tb\nc") == "a\tb\nc"

    def test_formatter_sanitizes_records(self):
        record = logging.LogRecord(
            name="bifrost.test", level=logging.INFO, pathname="", lineno=0,
            msg="slot %s", args=("7\x1b[2J",), exc_info=None,
        )
        formatted = TerminalSafeFormatter("%(message)s").format(record)
        assert formatted == "slot 7"

    def test_highlighter_styles(self):
        assert BifrostLogHighlighter.base_style == "bifrost."
        assert any("epoch" in pattern for pattern in BifrostLogHighlighter.highlights)
