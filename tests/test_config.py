import json

import pytest

from voicememo import config
from voicememo.models import Config, ServerSettings


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    cfg_path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", cfg_path)
    monkeypatch.delenv(config.BASE_URL_ENV, raising=False)
    return cfg_path


def test_load_default_config_when_missing():
    cfg = config.load_config()
    assert isinstance(cfg, Config)
    assert cfg.backend_url is None
    assert cfg.request_timeout == 120.0


def test_save_and_load_config():
    config.save_config(Config(backend_url="http://relay:4000", request_timeout=30.0))

    loaded = config.load_config()
    assert loaded.backend_url == "http://relay:4000"
    assert loaded.request_timeout == 30.0


def test_update_config_validates_keys():
    config.update_config(backend_url="http://relay:4000")
    assert config.load_config().backend_url == "http://relay:4000"

    with pytest.raises(config.ConfigurationError):
        config.update_config(unknown="value")


def test_invalid_config_file_raises(isolated_config):
    isolated_config.write_text("{broken")
    with pytest.raises(config.ConfigurationError):
        config.load_config()

    isolated_config.write_text(json.dumps({"server_url": "http://old"}))
    with pytest.raises(config.ConfigurationError):
        config.load_config()


def test_environment_overrides_backend_url_without_persisting(isolated_config, monkeypatch):
    config.save_config(Config(backend_url="http://saved"))
    monkeypatch.setenv(config.BASE_URL_ENV, "http://from-env")

    assert config.load_config().backend_url == "http://from-env"

    config.update_config(request_timeout=5.0)
    stored = json.loads(isolated_config.read_text())
    assert stored["backend_url"] == "http://saved"


def test_require_backend_url():
    assert config.require_backend_url(" http://relay:4000/ ") == "http://relay:4000"
    for missing in (None, "", "   "):
        with pytest.raises(config.ConfigurationError):
            config.require_backend_url(missing)


def test_server_settings_defaults():
    settings = config.load_server_settings({})
    assert settings == ServerSettings()
    assert settings.port == 4000
    assert settings.cors_allow_origin == "*"
    assert settings.openai_api_key is None
    assert settings.max_upload_bytes == 25 * 1024 * 1024


def test_server_settings_from_environment():
    settings = config.load_server_settings(
        {
            "PORT": "8080",
            "OPENAI_API_KEY": "sk-test",
            "CORS_ALLOW_ORIGIN": "https://app.example",
            "VOICEMEMO_OPENAI_TIMEOUT": "30",
            "VOICEMEMO_SUMMARY_MODEL": "",
        }
    )
    assert settings.port == 8080
    assert settings.openai_api_key == "sk-test"
    assert settings.cors_allow_origin == "https://app.example"
    assert settings.openai_timeout == 30.0
    assert settings.summary_model == "gpt-4o-mini"


def test_server_settings_rejects_bad_port():
    with pytest.raises(config.ConfigurationError):
        config.load_server_settings({"PORT": "eighty"})
