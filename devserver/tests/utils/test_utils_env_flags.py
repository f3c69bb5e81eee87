"""Tests for environment toggles and runtime settings."""

import pytest

from devserver.utils.utils import (
    get_env_var,
    get_environment_config,
    get_server_config,
    is_enabled,
    parse_boolean_env,
    resolve_port,
)


@pytest.mark.parametrize("value", ["", "0", "false", "off"])
def test_is_enabled_false_values(value):
    assert is_enabled(value) is False


@pytest.mark.parametrize("value", ["1", "true", "anything", "on", "no", "FALSE", "Off", " 0"])
def test_is_enabled_other_values_are_true(value):
    # Matching is exact and case-sensitive
    assert is_enabled(value) is True


def test_is_enabled_defaults_to_false():
    assert is_enabled() is False
    assert is_enabled(None) is False


@pytest.mark.parametrize("default", [False, True, None, "fallback"])
def test_get_env_var_returns_default_when_absent(clean_env, default):
    clean_env.delenv("X", raising=False)
    assert get_env_var("X", default) is default


@pytest.mark.parametrize("value", ["", "0", "false", "off", "1", "yes"])
def test_get_env_var_uses_variable_name_not_value(clean_env, value):
    # A present variable is judged by its name, so even BS_OPEN=false enables the toggle
    clean_env.setenv("X", value)
    assert get_env_var("X", False) is True
    assert get_env_var("X", False) == is_enabled("X")


def test_get_env_var_name_in_false_set_is_false(clean_env):
    clean_env.setenv("off", "1")
    assert get_env_var("off", True) is False


def test_resolve_port_default(clean_env):
    assert resolve_port() == 3000


def test_resolve_port_prefers_bs_port(clean_env):
    clean_env.setenv("BS_PORT", "4000")
    clean_env.setenv("PORT", "5000")
    assert resolve_port() == 4000


def test_resolve_port_skips_empty_bs_port(clean_env):
    clean_env.setenv("BS_PORT", "")
    clean_env.setenv("PORT", "5000")
    assert resolve_port() == 5000


def test_resolve_port_rejects_non_integer(clean_env):
    clean_env.setenv("PORT", "http")
    with pytest.raises(ValueError, match="must be an integer"):
        resolve_port()


def test_parse_boolean_env_reads_value(clean_env):
    clean_env.setenv("BUILD_SILENT", "off")
    assert parse_boolean_env("BUILD_SILENT") is False
    clean_env.setenv("BUILD_SILENT", "Yes")
    assert parse_boolean_env("BUILD_SILENT") is True


def test_environment_config_defaults(clean_env):
    cfg = get_environment_config()
    assert cfg == {
        "dev_mode": False,
        "build_settle": "exit",
        "build_timeout": None,
        "build_silent": False,
    }


def test_environment_config_dev_mode_requires_exact_value(clean_env):
    clean_env.setenv("NODE_ENV", "development")
    assert get_environment_config()["dev_mode"] is True
    clean_env.setenv("NODE_ENV", "production")
    assert get_environment_config()["dev_mode"] is False


def test_environment_config_build_settings(clean_env, caplog):
    clean_env.setenv("BUILD_SETTLE", "first")
    clean_env.setenv("BUILD_TIMEOUT", "2.5")
    cfg = get_environment_config()
    assert cfg["build_settle"] == "first"
    assert cfg["build_timeout"] == 2.5

    clean_env.setenv("BUILD_SETTLE", "sometimes")
    assert get_environment_config()["build_settle"] == "exit"
    assert "Unknown BUILD_SETTLE" in caplog.text


def test_environment_config_rejects_non_numeric_timeout(clean_env):
    clean_env.setenv("BUILD_TIMEOUT", "soon")
    with pytest.raises(ValueError, match="Invalid BUILD_TIMEOUT value 'soon'"):
        get_environment_config()


def test_environment_config_empty_timeout_means_none(clean_env):
    clean_env.setenv("BUILD_TIMEOUT", "")
    assert get_environment_config()["build_timeout"] is None


def test_server_config_defaults(monkeypatch):
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert get_server_config() == {"host": "127.0.0.1", "log_level": "info"}
