from __future__ import annotations

from pathlib import Path

import pytest

from rtoboard.config import DEFAULT_JWT_SECRET, Settings, load_settings, resolve_config_path


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.yaml", environ={})

    assert settings.jwt_secret == DEFAULT_JWT_SECRET
    assert settings.uses_default_secret
    assert settings.token_ttl_minutes == 60
    assert settings.uploader_emails == ("RTOITVALIDATION@cognizant.com",)
    assert settings.admin.email == "admin@cognizant.com"
    assert settings.store_path.name == "db.json"


def test_yaml_file_is_loaded_relative_to_its_directory(tmp_path: Path) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text(
        "\n".join(
            [
                "store_path: data/store.json",
                "jwt_secret: from-yaml",
                "token_ttl_minutes: 15",
                "uploader_emails:",
                "  - one@example.com",
                "  - two@example.com",
                "admin:",
                "  email: boss@example.com",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(config, environ={})

    assert settings.store_path == (tmp_path / "data" / "store.json").resolve()
    assert settings.jwt_secret == "from-yaml"
    assert settings.token_ttl_minutes == 15
    assert settings.uploader_emails == ("one@example.com", "two@example.com")
    assert settings.admin.email == "boss@example.com"
    assert settings.admin.username == "admin"


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text("jwt_secret: from-yaml\n", encoding="utf-8")

    settings = load_settings(
        config,
        environ={
            "RTOBOARD_DB_PATH": str(tmp_path / "env.json"),
            "RTOBOARD_JWT_SECRET": "from-env",
            "RTOBOARD_TOKEN_TTL_MINUTES": "5",
            "RTOBOARD_UPLOADER_EMAILS": "a@example.com, b@example.com",
            "RTOBOARD_ADMIN_EMAIL": "root@example.com",
            "RTOBOARD_ADMIN_PASSWORD": "hunter22",
        },
    )

    assert settings.store_path == (tmp_path / "env.json").resolve()
    assert settings.jwt_secret == "from-env"
    assert settings.token_ttl_minutes == 5
    assert settings.uploader_emails == ("a@example.com", "b@example.com")
    assert settings.admin.email == "root@example.com"
    assert settings.admin.password == "hunter22"


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Settings.from_dict({"token_ttl_minutes": 0})
    with pytest.raises(ValueError):
        Settings.from_dict({"uploader_emails": 12})

    config = tmp_path / "settings.yaml"
    config.write_text("- not\n- a mapping\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config, environ={})


def test_resolve_config_path(tmp_path: Path) -> None:
    assert resolve_config_path(str(tmp_path / "x.yaml")) == (tmp_path / "x.yaml").resolve()
    assert resolve_config_path(None).name == "settings.yaml"
