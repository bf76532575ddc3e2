"""
Tests for configuration source tracking and logging.
"""

import os
import tempfile
from pathlib import Path

from pybatis.config.properties import (
    ConfigurationProperties,
    log_config_sources,
    reload_config,
)


def _clear_pybatis_env():
    for key in list(os.environ.keys()):
        if key.startswith("PYBATIS_"):
            del os.environ[key]


class TestConfigSourceTracking:
    """Tests for tracking configuration sources."""

    def setup_method(self):
        _clear_pybatis_env()

    def teardown_method(self):
        _clear_pybatis_env()
        reload_config()

    def test_tracks_default_configuration(self):
        config = ConfigurationProperties()
        sources = config.get_config_sources()

        assert sources["database.adapter"] == "default configuration"
        assert sources["logging.level"] == "default configuration"
        assert sources["mapper.locations"] == "default configuration"

    def test_tracks_application_yml_overrides(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            app_config = Path(tmpdir) / "application.yml"
            app_config.write_text(
                """
database:
  url: sqlite+aiosqlite:///app.db
  echo: true
custom:
  value: test
"""
            )

            original_dir = os.getcwd()
            try:
                os.chdir(tmpdir)
                config = ConfigurationProperties()
                sources = config.get_config_sources()

                assert sources["database.url"] == "application.yml"
                assert sources["database.echo"] == "application.yml"
                assert sources["custom.value"] == "application.yml"
                # Untouched defaults keep their source
                assert sources["logging.format"] == "default configuration"
            finally:
                os.chdir(original_dir)

    def test_tracks_environment_variable_fallbacks(self):
        """Environment variables are used for keys no file defines."""
        os.environ["PYBATIS_DATABASE_URL"] = "sqlite+aiosqlite:///env.db"
        os.environ["PYBATIS_CUSTOM_TIMEOUT"] = "30"

        config = ConfigurationProperties()

        assert config.get("database.url") == "sqlite+aiosqlite:///env.db"
        assert config.get("custom.timeout") == "30"

        sources = config.get_config_sources()
        assert (
            sources["database.url"] == "environment variable (PYBATIS_DATABASE_URL)"
        )
        assert (
            sources["custom.timeout"]
            == "environment variable (PYBATIS_CUSTOM_TIMEOUT)"
        )

    def test_config_files_override_environment_variables(self):
        os.environ["PYBATIS_DATABASE_ADAPTER"] = "other"

        config = ConfigurationProperties()

        assert config.get("database.adapter") == "sqlalchemy"
        assert config.get_config_sources()["database.adapter"] == (
            "default configuration"
        )

    def test_tracks_profile_specific_configuration(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "application.yml").write_text(
                """
database:
  url: sqlite+aiosqlite:///app.db
"""
            )
            (Path(tmpdir) / "application-dev.yml").write_text(
                """
database:
  echo: true
logging:
  level: DEBUG
"""
            )

            config = ConfigurationProperties(profile="dev", config_dir=tmpdir)
            sources = config.get_config_sources()

            assert sources["database.url"] == "application.yml"
            assert sources["database.echo"] == "application-dev.yml"
            assert sources["logging.level"] == "application-dev.yml"
            assert config.get("logging.level") == "DEBUG"

    def test_profile_from_environment(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "application-test.yml").write_text(
                """
mapper:
  validate_on_startup: true
"""
            )
            os.environ["PYBATIS_PROFILE"] = "test"

            config = ConfigurationProperties(config_dir=tmpdir)

            assert config.profile == "test"
            assert config.get_bool("mapper.validate_on_startup") is True

    def test_get_config_sources_returns_sorted_dict(self):
        config = ConfigurationProperties()
        keys = list(config.get_config_sources().keys())

        assert keys == sorted(keys)


class MockLogger:
    """Mock logger for testing log output."""

    def __init__(self):
        self.messages = []

    def info(self, msg):
        self.messages.append(msg)


class TestLogConfigSources:
    """Tests for log_config_sources function."""

    def setup_method(self):
        _clear_pybatis_env()

    def teardown_method(self):
        _clear_pybatis_env()
        reload_config()

    def test_log_config_sources_groups_by_source(self):
        config = ConfigurationProperties()
        logger = MockLogger()

        log_config_sources(config, logger, max_cols=2)

        assert any("Configuration sources:" in msg for msg in logger.messages)
        assert any("[default configuration]" in msg for msg in logger.messages)

    def test_log_config_sources_creates_table(self):
        config = ConfigurationProperties()
        logger = MockLogger()

        log_config_sources(config, logger, max_cols=3)

        assert any("┌" in msg and "┐" in msg for msg in logger.messages)
        assert any("└" in msg and "┘" in msg for msg in logger.messages)
        assert any("│" in msg for msg in logger.messages)

    def test_log_config_sources_with_mixed_sources(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "application.yml").write_text(
                """
database:
  echo: true
"""
            )
            os.environ["PYBATIS_CUSTOM_SETTING"] = "test-value"

            config = ConfigurationProperties(config_dir=tmpdir)
            config.get("custom.setting")

            logger = MockLogger()
            log_config_sources(config, logger, max_cols=2)

            assert any("[default configuration]" in msg for msg in logger.messages)
            assert any("[application.yml]" in msg for msg in logger.messages)
            assert any("environment variable" in msg for msg in logger.messages)

    def test_table_rows_have_equal_width(self):
        config = ConfigurationProperties()
        logger = MockLogger()

        log_config_sources(config, logger, max_cols=3)

        table_lines = [
            msg for msg in logger.messages if msg[:1] in ("┌", "│", "└")
        ]
        assert len({len(line) for line in table_lines}) == 1

    def test_log_config_sources_max_cols_parameter(self):
        config = ConfigurationProperties()
        logger = MockLogger()

        log_config_sources(config, logger, max_cols=1)

        table_lines = [msg for msg in logger.messages if "│" in msg]
        for line in table_lines:
            assert line.count("│") == 2
