"""Tests for configuration classes.

Tests SocialGateSettings, its sections, layered TOML loading and the
provider config source.
"""

from __future__ import annotations

import sys

from pathlib import Path

import pytest

from pydantic import ValidationError

from socialgate.config import (
    FlowSettings,
    ProviderSettings,
    SessionSettings,
    SocialGateSettings,
    get_settings,
    reload_settings,
    settings_config_source,
)


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


class TestDefaults:
    """Tests for built-in defaults."""

    def test_session_defaults(self):
        """Session lifetime is 120 minutes on the memory backend."""
        settings = SessionSettings()
        assert settings.lifetime == 120
        assert settings.cookie == "socialgate_session"
        assert settings.backend == "memory"
        assert settings.same_site == "lax"

    def test_flow_defaults(self):
        """Flow redirects default to /login, /dashboard and /."""
        settings = FlowSettings()
        assert settings.login_path == "/login"
        assert settings.home_path == "/dashboard"
        assert settings.logout_redirect == "/"
        assert settings.trusted_origins == []

    def test_default_providers_present(self):
        """google and github sections always exist, disabled."""
        settings = SocialGateSettings()
        assert set(settings.providers) == {"google", "github"}
        assert settings.providers["google"].enabled is False
        assert settings.providers["github"].client_id == ""

    def test_lifetime_must_be_positive(self):
        """A zero lifetime is rejected."""
        with pytest.raises(ValidationError):
            SessionSettings(lifetime=0)

    def test_provider_extra_keys_kept(self):
        """Custom providers can carry their own keys."""
        provider = ProviderSettings(client_id="a", tenant="acme")
        assert provider.model_dump()["tenant"] == "acme"


class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_nested_session_value(self, monkeypatch):
        """SOCIALGATE__SESSION__LIFETIME overrides the default."""
        monkeypatch.setenv("SOCIALGATE__SESSION__LIFETIME", "480")
        assert SocialGateSettings().session.lifetime == 480

    def test_provider_credentials(self, monkeypatch):
        """Provider values come from SOCIALGATE__PROVIDERS__<NAME>__<KEY>."""
        monkeypatch.setenv("SOCIALGATE__PROVIDERS__GITHUB__CLIENT_ID", "gh-id")
        monkeypatch.setenv("SOCIALGATE__PROVIDERS__GITHUB__ENABLED", "true")
        settings = SocialGateSettings()
        assert settings.providers["github"].client_id == "gh-id"
        assert settings.providers["github"].enabled is True
        assert "google" in settings.providers

    def test_trusted_origins_comma_separated(self, monkeypatch):
        """Trusted origins parse from a comma-separated string."""
        monkeypatch.setenv("SOCIALGATE_FLOW__TRUSTED_ORIGINS", "https://a.test, https://b.test")
        assert FlowSettings().trusted_origins == ["https://a.test", "https://b.test"]


class TestTomlFiles:
    """Tests for TOML configuration files."""

    def test_project_file(self):
        """./socialgate.toml is loaded."""
        Path("socialgate.toml").write_text(
            '[providers.google]\nclient_id = "from-file"\nenabled = true\n\n[flow]\nhome_path = "/app"\n',
            encoding="utf-8",
        )
        settings = SocialGateSettings()
        assert settings.providers["google"].client_id == "from-file"
        assert settings.providers["google"].enabled is True
        assert settings.flow.home_path == "/app"
        assert "github" in settings.providers

    def test_pyproject_section(self):
        """[tool.socialgate] in pyproject.toml is loaded."""
        Path("pyproject.toml").write_text(
            '[project]\nname = "host"\n\n[tool.socialgate.session]\nlifetime = 45\n',
            encoding="utf-8",
        )
        assert SocialGateSettings().session.lifetime == 45

    def test_project_file_overrides_pyproject(self):
        """socialgate.toml wins over pyproject.toml."""
        Path("pyproject.toml").write_text(
            "[tool.socialgate.session]\nlifetime = 45\n", encoding="utf-8"
        )
        Path("socialgate.toml").write_text("[session]\nlifetime = 90\n", encoding="utf-8")
        assert SocialGateSettings().session.lifetime == 90

    def test_explicit_config_file(self, tmp_path, monkeypatch):
        """$SOCIALGATE_CONFIG_FILE has the highest file priority."""
        Path("socialgate.toml").write_text("[session]\nlifetime = 90\n", encoding="utf-8")
        explicit = tmp_path / "explicit.toml"
        explicit.write_text("[session]\nlifetime = 15\n", encoding="utf-8")
        monkeypatch.setenv("SOCIALGATE_CONFIG_FILE", str(explicit))
        assert SocialGateSettings().session.lifetime == 15

    def test_env_beats_files(self, monkeypatch):
        """Environment variables override every file."""
        Path("socialgate.toml").write_text("[session]\nlifetime = 90\n", encoding="utf-8")
        monkeypatch.setenv("SOCIALGATE__SESSION__LIFETIME", "480")
        assert SocialGateSettings().session.lifetime == 480

    def test_invalid_file_is_skipped(self):
        """Unparseable files do not break loading."""
        Path("socialgate.toml").write_text("this is = = not toml", encoding="utf-8")
        assert SocialGateSettings().session.lifetime == 120


class TestExport:
    """Tests for to_toml, to_env and show."""

    @pytest.fixture()
    def settings(self):
        """Settings holding secrets."""
        return SocialGateSettings(
            providers={
                "google": ProviderSettings(
                    client_id="gid", client_secret="super-secret", enabled=True
                )
            },
            session=SessionSettings(redis_url="redis://:pw@cache:6379/0"),
        )

    def test_toml_is_valid_and_redacted(self, settings):
        """TOML export parses and never contains secrets."""
        output = settings.to_toml()
        assert "super-secret" not in output
        assert ":pw@" not in output
        data = tomllib.loads(output)
        assert data["providers"]["google"]["client_id"] == "gid"
        assert data["providers"]["google"]["client_secret"] == "********"
        assert data["session"]["lifetime"] == 120
        assert data["providers"]["github"]["enabled"] is False

    def test_env_export(self, settings):
        """Env export uses the nested variable names."""
        output = settings.to_env()
        assert 'export SOCIALGATE__PROVIDERS__GOOGLE__CLIENT_ID="gid"' in output
        assert 'export SOCIALGATE__PROVIDERS__GOOGLE__CLIENT_SECRET="********"' in output
        assert 'export SOCIALGATE__SESSION__LIFETIME="120"' in output
        assert "super-secret" not in output

    def test_show(self, settings):
        """show() renders one block per section and provider."""
        output = settings.show()
        assert "socialgate Configuration" in output
        assert "Provider: google" in output
        assert "Authentication Flow" in output
        assert "super-secret" not in output


class TestSettingsCache:
    """Tests for the cached accessors."""

    def test_cached_instance(self):
        """get_settings returns the same object until reloaded."""
        assert get_settings() is get_settings()

    def test_reload_picks_up_changes(self, monkeypatch):
        """reload_settings re-reads the environment."""
        first = get_settings()
        monkeypatch.setenv("SOCIALGATE__FLOW__HOME_PATH", "/home")
        reloaded = reload_settings()
        assert reloaded is not first
        assert reloaded.flow.home_path == "/home"

    def test_config_source(self, monkeypatch):
        """settings_config_source reads provider sections."""
        monkeypatch.setenv("SOCIALGATE__PROVIDERS__GOOGLE__CLIENT_ID", "env-id")
        reload_settings()
        assert settings_config_source("google")["client_id"] == "env-id"
        assert settings_config_source("myspace") == {}
