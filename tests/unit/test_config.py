import pytest

from throttlekit.config import Settings, get_settings, load_settings
from throttlekit.exceptions import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "REDIS_URL",
        "LOGIN_MAX_FAILURES",
        "BOOKING_CODE_MAX_FAILURES",
        "AZAMPAY_CLIENT_ID",
        "AZAMPAY_CLIENT_SECRET",
        "AZAMPAY_AUTH_URL",
        "GATEWAY_CLOCK_SKEW_SECONDS",
        "LOG_JSON",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults():
    settings = Settings()

    assert settings.redis_url is None
    assert settings.distributed_store_enabled is False
    assert (settings.login_max_failures, settings.login_lockout_seconds, settings.login_streak_ttl_seconds) == (
        5,
        300,
        300,
    )
    assert (
        settings.booking_code_max_failures,
        settings.booking_code_lockout_seconds,
        settings.booking_code_streak_ttl_seconds,
    ) == (3, 300, 900)
    assert settings.gateway_clock_skew_seconds == 60
    assert settings.gateway_local_ttl_cap_seconds == 3300


def test_load_from_env(clean_env):
    clean_env.setenv("REDIS_URL", "redis://cache:6379/0")
    clean_env.setenv("LOGIN_MAX_FAILURES", "7")
    clean_env.setenv("AZAMPAY_AUTH_URL", "https://auth.example.test/")
    clean_env.setenv("LOG_JSON", "false")

    settings = load_settings()

    assert settings.distributed_store_enabled is True
    assert settings.login_max_failures == 7
    assert settings.azampay_auth_url == "https://auth.example.test"
    assert settings.log_json is False


def test_blank_values_use_defaults(clean_env):
    clean_env.setenv("REDIS_URL", "   ")
    clean_env.setenv("LOGIN_MAX_FAILURES", "")

    settings = load_settings()

    assert settings.redis_url is None
    assert settings.login_max_failures == 5


def test_non_numeric_env_is_rejected(clean_env):
    clean_env.setenv("BOOKING_CODE_MAX_FAILURES", "three")
    with pytest.raises(ConfigurationError, match="BOOKING_CODE_MAX_FAILURES"):
        load_settings()


@pytest.mark.parametrize(
    "overrides",
    [
        {"login_max_failures": 0},
        {"booking_code_lockout_seconds": -1},
        {"redis_url": "http://not-redis"},
        {"azampay_auth_url": "ftp://auth"},
        {"gateway_clock_skew_seconds": -5},
        {"environment": "qa"},
        {"log_level": "LOUD"},
        {"redis_namespace": ":"},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        Settings(**overrides)


def test_safe_dict_masks_secrets():
    settings = Settings(
        redis_url="redis://:hunter2@cache:6379/0",
        azampay_client_id="client-123456789",
        azampay_client_secret="super-secret-value",
    )

    dumped = repr(settings.safe_dict())

    assert "hunter2" not in dumped
    assert "super-secret-value" not in dumped
    assert "client-123456789" not in dumped


def test_get_settings_is_cached(clean_env, tmp_path):
    clean_env.chdir(tmp_path)
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_get_settings_reads_dotenv(clean_env, tmp_path):
    (tmp_path / ".env").write_text("LOGIN_MAX_FAILURES=9\n")
    clean_env.chdir(tmp_path)
    get_settings.cache_clear()
    try:
        assert get_settings().login_max_failures == 9
    finally:
        get_settings.cache_clear()
        # load_dotenv writes straight into os.environ
        clean_env.delenv("LOGIN_MAX_FAILURES", raising=False)
