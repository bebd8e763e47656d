"""
Shared fixtures — isolate config resolution from the developer's
environment and provide fresh negotiator/interceptor instances per test.
"""
import pytest
import structlog

from reversetk.gateway.capabilities import CapabilityNegotiator
from reversetk.gateway.interceptor import GatewayInterceptor


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Drop any REVERSETK_CONFIG / INTERCEPTOR__* overrides and the cached
    Settings singleton so every test sees built-in defaults unless it
    provides its own config."""
    import reversetk.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict

    # Pin Rich's console width so CLI error messages are not line-wrapped
    # differently depending on the terminal / tmp path length.
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("REVERSETK_CONFIG", raising=False)
    for var in ("INTERCEPTOR__FIX_READY", "INTERCEPTOR__CAPABILITIES_OVERRIDE", "LOGGING__LEVEL"):
        monkeypatch.delenv(var, raising=False)

    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """READY binds session_id into structlog contextvars; keep it per-test."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def negotiator():
    return CapabilityNegotiator()


@pytest.fixture
def interceptor(negotiator):
    return GatewayInterceptor(negotiator)


@pytest.fixture
def ready_payload():
    return {
        "v": 9,
        "session_id": "abc123",
        "read_state": [{"id": "10", "last_message_id": "99"}],
        "user_guild_settings": [{"guild_id": "1", "muted": False}],
        "guilds": [
            {
                "id": "1",
                "name": "Guild One",
                "member_count": 5,
                "roles": [{"id": "1", "name": "@everyone"}],
                "channels": [{"id": "11"}],
            },
            {
                "id": "2",
                "name": "Guild Two",
                "data_mode": "full",
                "voice_states": [],
            },
        ],
    }
