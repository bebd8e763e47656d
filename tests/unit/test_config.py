"""
tests/unit/test_config.py — Settings Tests

Covers:
  - Defaults load cleanly without a config file
  - capabilities_override uses the operator decimal-digit rule
  - guild_property_fields rejects empty and duplicate lists
  - Invalid log level is rejected
  - validate_all() raises ConfigError with a numbered list
  - REVERSETK_CONFIG env var is respected by load_settings()
  - Explicit config_path argument takes priority over env var
  - GatewayInterceptor.from_settings wiring
"""

from __future__ import annotations

import textwrap

import pytest
from pydantic import ValidationError

from reversetk.exceptions import ConfigError
from reversetk.gateway.normalizer import DEFAULT_GUILD_PROPERTY_FIELDS


def _make_settings(**overrides):
    from reversetk.config.settings import Settings
    return Settings(**overrides)


def _make_interceptor_cfg(**kwargs):
    from reversetk.config.settings import InterceptorConfig
    return InterceptorConfig(**kwargs)


def _make_logging_cfg(**kwargs):
    from reversetk.config.settings import LoggingConfig
    return LoggingConfig(**kwargs)


# ── InterceptorConfig ─────────────────────────────────────────────────────────

class TestInterceptorConfig:
    def test_defaults(self):
        cfg = _make_interceptor_cfg()
        assert cfg.fix_ready is True
        assert cfg.guild_property_fields == list(DEFAULT_GUILD_PROPERTY_FIELDS)
        assert cfg.capabilities_override is None
        assert cfg.capabilities_value is None

    def test_override_string(self):
        cfg = _make_interceptor_cfg(capabilities_override="16381")
        assert cfg.capabilities_value == 16381

    def test_override_int_from_yaml(self):
        cfg = _make_interceptor_cfg(capabilities_override=1021)
        assert cfg.capabilities_override == "1021"

    def test_override_empty_means_none(self):
        assert _make_interceptor_cfg(capabilities_override="").capabilities_override is None

    @pytest.mark.parametrize("bad", ["-1", "0x10", "abc", "4294967296"])
    def test_override_rejected(self, bad):
        with pytest.raises(ValidationError) as exc_info:
            _make_interceptor_cfg(capabilities_override=bad)
        assert "capabilities_override" in str(exc_info.value)

    def test_empty_allowlist_rejected(self):
        with pytest.raises(ValidationError):
            _make_interceptor_cfg(guild_property_fields=[])

    def test_duplicate_allowlist_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _make_interceptor_cfg(guild_property_fields=["id", "roles", "id"])
        assert "duplicate" in str(exc_info.value)


# ── LoggingConfig ─────────────────────────────────────────────────────────────

class TestLoggingConfig:
    def test_level_upper_cased(self):
        assert _make_logging_cfg(level="debug").level == "DEBUG"

    def test_invalid_level(self):
        with pytest.raises(ValidationError):
            _make_logging_cfg(level="LOUD")

    def test_backup_count_positive(self):
        with pytest.raises(ValidationError):
            _make_logging_cfg(backup_count=0)


# ── validate_all ──────────────────────────────────────────────────────────────

class TestValidateAll:
    def test_defaults_pass(self):
        _make_settings().validate_all()

    def test_missing_id_reported(self):
        settings = _make_settings(interceptor={"guild_property_fields": ["roles"]})
        with pytest.raises(ConfigError) as exc_info:
            settings.validate_all()
        assert "'id'" in str(exc_info.value)

    def test_missing_id_allowed_when_fix_ready_off(self):
        settings = _make_settings(
            interceptor={"fix_ready": False, "guild_property_fields": ["roles"]}
        )
        settings.validate_all()

    def test_every_problem_numbered(self, tmp_path):
        not_a_dir = tmp_path / "logfile"
        not_a_dir.write_text("x")
        settings = _make_settings(
            interceptor={"guild_property_fields": ["properties", "read_state"]},
            logging={"log_dir": str(not_a_dir)},
        )
        with pytest.raises(ConfigError) as exc_info:
            settings.validate_all()
        message = str(exc_info.value)
        assert "4 configuration problem(s)" in message
        assert "  1. " in message and "  4. " in message


# ── Loading ───────────────────────────────────────────────────────────────────

class TestLoadSettings:
    def _write(self, path, body):
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return path

    def test_missing_file_gives_defaults(self, tmp_path):
        from reversetk.config.settings import load_settings
        settings = load_settings(tmp_path / "nope.yaml")
        assert settings.fix_ready is True

    def test_yaml_sections(self, tmp_path):
        from reversetk.config.settings import load_settings
        path = self._write(tmp_path / "c.yaml", """
            interceptor:
              fix_ready: false
              capabilities_override: 1021
            logging:
              level: debug
            unrelated:
              ignored: true
        """)
        settings = load_settings(path)
        assert settings.fix_ready is False
        assert settings.interceptor.capabilities_value == 1021
        assert settings.log_level == "DEBUG"

    def test_env_var_path(self, tmp_path, monkeypatch):
        from reversetk.config.settings import get_settings
        path = self._write(tmp_path / "env.yaml", "interceptor:\n  fix_ready: false\n")
        monkeypatch.setenv("REVERSETK_CONFIG", str(path))
        assert get_settings().fix_ready is False
        assert get_settings() is get_settings()

    def test_explicit_path_beats_env(self, tmp_path, monkeypatch):
        from reversetk.config.settings import load_settings
        env_path = self._write(tmp_path / "env.yaml", "interceptor:\n  fix_ready: false\n")
        explicit = self._write(tmp_path / "explicit.yaml", "interceptor:\n  fix_ready: true\n")
        monkeypatch.setenv("REVERSETK_CONFIG", str(env_path))
        assert load_settings(explicit).fix_ready is True

    def test_env_override_nested(self, monkeypatch):
        monkeypatch.setenv("INTERCEPTOR__FIX_READY", "false")
        assert _make_settings().fix_ready is False

    def test_non_mapping_yaml(self, tmp_path):
        from reversetk.config.settings import load_settings
        path = self._write(tmp_path / "list.yaml", "- a\n- b\n")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        from reversetk.config.settings import load_settings
        path = self._write(tmp_path / "c.yaml", """
            interceptor:
              fix_ready: true
              capabilities_override: 1021
        """)
        monkeypatch.setenv("INTERCEPTOR__FIX_READY", "false")
        settings = load_settings(path)
        assert settings.fix_ready is False
        assert settings.interceptor.capabilities_value == 1021

    def test_yaml_beats_defaults_when_env_unset(self, tmp_path):
        from reversetk.config.settings import load_settings
        path = self._write(tmp_path / "c.yaml", "logging:\n  level: error\n")
        assert load_settings(path).log_level == "ERROR"

    def test_keyword_arguments_beat_env(self, monkeypatch):
        monkeypatch.setenv("INTERCEPTOR__FIX_READY", "false")
        assert _make_settings(interceptor={"fix_ready": True}).fix_ready is True

    def test_invalid_yaml_is_config_error(self, tmp_path):
        from reversetk.config.settings import load_settings
        path = self._write(tmp_path / "broken.yaml", "interceptor: [unclosed\n")
        with pytest.raises(ConfigError) as exc_info:
            load_settings(path)
        assert "not valid YAML" in str(exc_info.value)


# ── Interceptor wiring ────────────────────────────────────────────────────────

class TestFromSettings:
    def test_override_seeds_negotiator(self):
        from reversetk.gateway.interceptor import GatewayInterceptor
        settings = _make_settings(interceptor={"capabilities_override": "5"})
        interceptor = GatewayInterceptor.from_settings(settings)
        _, out, _ = interceptor.intercept_outgoing(2, {"capabilities": 999})
        assert out["capabilities"] == 5

    def test_override_applied_to_existing_negotiator(self, negotiator):
        from reversetk.gateway.interceptor import GatewayInterceptor
        negotiator.capture(1)
        settings = _make_settings(interceptor={"capabilities_override": "6"})
        GatewayInterceptor.from_settings(settings, negotiator)
        assert negotiator.get() == 6

    def test_fix_ready_and_allowlist_wired(self, negotiator):
        from reversetk.gateway.interceptor import GatewayInterceptor
        settings = _make_settings(
            interceptor={"fix_ready": True, "guild_property_fields": ["id"]}
        )
        interceptor = GatewayInterceptor.from_settings(settings, negotiator)
        _, data = interceptor.intercept_dispatch("READY", {"guilds": [{"id": "1", "roles": []}]})
        assert data["guilds"][0] == {"roles": [], "properties": {"id": "1"}}

    def test_sink_wired(self, negotiator):
        from reversetk.gateway.interceptor import GatewayInterceptor
        seen = []
        interceptor = GatewayInterceptor.from_settings(
            _make_settings(), negotiator, sink=lambda old, new: seen.append(new.value)
        )
        interceptor.on_connection_state("CONNECTING", "IDENTIFYING")
        assert seen == ["IDENTIFYING"]
