import pytest

from whatsconnect.core.config import Settings
from whatsconnect.infra.transport.loader import build_transport_factory, import_factory
from whatsconnect.infra.transport.loopback import LoopbackTransport
from whatsconnect.infra.transport.pairing import SegnoPairingRenderer
from whatsconnect.services.connection_manager import SessionPolicy


def test_comma_separated_lists_are_parsed() -> None:
    settings = Settings(
        cors_allowed_origins_raw=" http://a.example , http://b.example,",
        trusted_hosts_raw="crm.example",
    )
    assert settings.cors_allowed_origins == ["http://a.example", "http://b.example"]
    assert settings.trusted_hosts == ["crm.example"]


def test_database_url_from_environment_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://crm@db.internal/crm")
    assert Settings().database_url == "postgresql+asyncpg://crm@db.internal/crm"


def test_database_url_is_built_from_parts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL_OVERRIDE", raising=False)
    settings = Settings(postgres_host="db", postgres_port=5433, postgres_db="crm")
    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert settings.database_url.endswith("@db:5433/crm")


def test_production_rejects_loopback_transport() -> None:
    settings = Settings(
        app_env="production",
        cors_allowed_origins_raw="https://crm.example",
        trusted_hosts_raw="crm.example",
    )
    with pytest.raises(ValueError, match="TRANSPORT_FACTORY"):
        settings.validate_security_settings()


def test_production_rejects_wildcard_origins() -> None:
    settings = Settings(app_env="production", cors_allowed_origins_raw="*")
    with pytest.raises(ValueError, match="Wildcard CORS"):
        settings.validate_security_settings()


def test_session_policy_follows_settings() -> None:
    settings = Settings(
        session_max_retries=5,
        session_backoff_base_ms=500,
        session_backoff_cap_ms=3000,
        session_send_timeout_seconds=15,
        session_lookup_timeout_seconds=2,
    )
    policy = SessionPolicy.from_settings(settings)
    assert policy.backoff.max_attempts == 5
    assert policy.backoff.delay_ms(4) == 3000
    assert policy.send_timeout_seconds == 15
    assert policy.lookup_timeout_seconds == 2


def test_transport_factory_path_must_name_an_attribute() -> None:
    with pytest.raises(ValueError):
        import_factory("whatsconnect.infra.transport.loopback")
    with pytest.raises(ValueError):
        import_factory("whatsconnect.infra.transport.loopback:Missing")


def test_loopback_factory_honours_auto_pair_setting() -> None:
    factory = build_transport_factory(Settings(loopback_auto_pair=False))

    async def emit(_) -> None:
        return None

    transport = factory(emit)
    assert isinstance(transport, LoopbackTransport)


def test_pairing_renderer_produces_png_data_uri() -> None:
    image = SegnoPairingRenderer().render("loopback@abc")
    assert image.startswith("data:image/png;base64,")
