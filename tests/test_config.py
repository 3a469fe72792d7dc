import pytest

from ycmlink.config import Settings, load_settings
from ycmlink.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("YCMLINK_CONFIG", raising=False)
    monkeypatch.delenv("YCMLINK_OPTIONS_FILE", raising=False)
    monkeypatch.delenv("YCMLINK_RPC_WORKERS", raising=False)


def test_defaults():
    s = Settings()
    assert s.host == "127.0.0.1"
    assert "c++-mode" in s.eligible_modes
    assert s.verify_response_hmac is True


def test_load_from_yaml(tmp_path):
    p = tmp_path / "config.yml"
    p.write_text(
        "server_directory: /opt/ycmd/ycmd\n"
        "options_file: /opt/ycmd/default_settings.json\n"
        "eligible_modes: [python-mode]\n"
        "unknown_key: ignored\n"
    )
    s = load_settings(str(p))
    assert s.server_directory == "/opt/ycmd/ycmd"
    assert s.eligible_modes == ["python-mode"]


def test_env_overrides_file(tmp_path, monkeypatch):
    p = tmp_path / "config.yml"
    p.write_text("options_file: from-file.json\nrpc_workers: 2\n")
    monkeypatch.setenv("YCMLINK_OPTIONS_FILE", "from-env.json")
    s = load_settings(str(p))
    assert s.options_file == "from-env.json"
    assert s.rpc_workers == 2


def test_config_path_from_env(tmp_path, monkeypatch):
    p = tmp_path / "config.yml"
    p.write_text("rpc_workers: 7\n")
    monkeypatch.setenv("YCMLINK_CONFIG", str(p))
    assert load_settings().rpc_workers == 7


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(str(tmp_path / "missing.yml"))


def test_missing_default_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("YCMLINK_CONFIG", str(tmp_path / "absent.yml"))
    assert load_settings().rpc_workers == 4


def test_malformed_yaml(tmp_path):
    p = tmp_path / "config.yml"
    p.write_text("eligible_modes: [unclosed\n")
    with pytest.raises(ConfigError):
        load_settings(str(p))


def test_non_mapping_yaml(tmp_path):
    p = tmp_path / "config.yml"
    p.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_settings(str(p))


def test_invalid_value(tmp_path):
    p = tmp_path / "config.yml"
    p.write_text("rpc_workers: many\n")
    with pytest.raises(ConfigError, match="Invalid"):
        load_settings(str(p))
