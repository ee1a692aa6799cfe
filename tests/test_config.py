"""Tests for configuration loading and logging setup."""

import textwrap

from autotest_pipeline import config as config_module
from autotest_pipeline.config import Config, get_config, reset_config
from autotest_pipeline.logging_config import configure_logging, resolve_log_level, resolve_log_mode


def write_config(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


def test_defaults_without_file(tmp_path):
    config = Config(str(tmp_path / "missing" / "config.yaml"))
    assert config.path is None
    assert config.server_port == 4111
    assert config.context_path == "/app/agent.context.json"
    assert config.plan_path == "/app/unit.plan.json"
    assert config.credentials_filename == ".docker.credentials"
    assert config.max_test_retries == 2


def test_env_substitution(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTOTEST_BACKEND", "https://backend.example.com/")
    monkeypatch.delenv("AUTOTEST_UNSET", raising=False)
    monkeypatch.delenv("ALERTS_API_URL", raising=False)
    path = write_config(tmp_path, """
        backend:
          base_url: ${AUTOTEST_BACKEND}
          timeout: ${AUTOTEST_UNSET:-12}
        pipeline:
          test_dir: ${AUTOTEST_UNSET}
    """)
    config = Config(path)
    assert config.backend_base_url == "https://backend.example.com"
    assert config.backend_timeout == 12.0
    assert config.alerts_api_url == "https://backend.example.com/api/alerts"
    # Unset without a default falls through to the built-in value
    assert config.test_dir == "tests"


def test_dotted_get(tmp_path):
    path = write_config(tmp_path, """
        openai:
          models:
            reasoning: gpt-test
    """)
    config = Config(path)
    assert config.get("openai.models.reasoning") == "gpt-test"
    assert config.reasoning_model == "gpt-test"
    assert config.get("openai.models.missing", "fallback") == "fallback"
    assert config.get("openai.models.reasoning.deeper") is None


def test_example_file_is_used_when_config_missing(tmp_path):
    (tmp_path / "config.example.yaml").write_text("server:\n  port: 9000\n")
    config = Config(str(tmp_path / "config.yaml"))
    assert config.server_port == 9000


def test_get_config_is_cached(tmp_path):
    reset_config()
    try:
        first = get_config(str(tmp_path / "config.yaml"))
        assert get_config() is first
        reset_config()
        assert config_module._config is None
    finally:
        reset_config()


def test_log_mode_resolution(monkeypatch):
    for var in ("LOG_MODE", "MASTRA_LOG_MODE", "ALERTS_ONLY", "MASTRA_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    assert resolve_log_mode() == "default"
    assert resolve_log_level() == "debug"

    monkeypatch.setenv("MASTRA_LOG_LEVEL", "warn")
    assert resolve_log_level() == "warn"

    monkeypatch.setenv("MASTRA_LOG_LEVEL", "WARN")
    assert resolve_log_level() == "debug"

    monkeypatch.setenv("ALERTS_ONLY", "true")
    assert resolve_log_mode() == "alerts_only"
    assert resolve_log_level() == "silent"

    monkeypatch.setenv("LOG_MODE", "verbose")
    assert resolve_log_mode() == "verbose"


def test_configure_logging_debug_flag_wins(monkeypatch):
    monkeypatch.setenv("ALERTS_ONLY", "true")
    assert configure_logging(debug=True) == "debug"
    assert configure_logging(level="error") == "error"
