"""Tests for server configuration parsing."""

from waterquest.shell.config import ServerConfig


class TestServerConfig:
    """Tests for ServerConfig.from_env."""

    def test_defaults(self):
        """An empty environment gives the defaults."""
        config = ServerConfig.from_env({})
        assert config.api_token is None
        assert config.user_id == "default"
        assert config.port == 8080
        assert config.live_reminders is False
        assert config.generator_timeout == 5.0
        assert config.log_level == "INFO"

    def test_values_parsed(self):
        """Environment values are parsed into typed fields."""
        config = ServerConfig.from_env({
            "WATERQUEST_API_TOKEN": "tok",
            "WATERQUEST_USER_ID": "alex",
            "PORT": "9000",
            "WATERQUEST_LIVE_REMINDERS": "true",
            "WATERQUEST_GENERATOR_TIMEOUT": "2.5",
            "LOG_LEVEL": "debug",
        })
        assert config.api_token == "tok"
        assert config.user_id == "alex"
        assert config.port == 9000
        assert config.live_reminders is True
        assert config.generator_timeout == 2.5
        assert config.log_level == "DEBUG"

    def test_empty_token_disables_auth(self):
        """A blank token is treated as unset."""
        assert ServerConfig.from_env({"WATERQUEST_API_TOKEN": ""}).api_token is None

    def test_flag_values(self):
        """Only truthy words enable a flag."""
        assert ServerConfig.from_env({"WATERQUEST_LIVE_REMINDERS": "1"}).live_reminders is True
        assert ServerConfig.from_env({"WATERQUEST_LIVE_REMINDERS": "no"}).live_reminders is False
