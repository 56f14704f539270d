"""Tests for config loader."""

from pathlib import Path

import pytest

from db_provisioner.core.config import CONFIG_FILE, ENV_PREFIX, ProvisioningConfig
from db_provisioner.core.config.loader import ConfigLoader


def _write_yaml(path: Path, content: str) -> None:
    """Write YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Clear provisioning environment variables."""
    import os

    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)


def test_init_invalid_environment_raises():
    """Test init invalid environment raises."""
    with pytest.raises(ValueError):
        ConfigLoader(config_dir="irrelevant", environment="invalid")


def test_missing_files_use_model_defaults(tmp_path: Path):
    """Test missing files use model defaults."""
    loader = ConfigLoader(config_dir=tmp_path / "config", environment="dev")
    cfg = loader.load(
        ProvisioningConfig,
        config_file=CONFIG_FILE,
        overrides={"principal": "alice"},
        env_prefix=ENV_PREFIX,
    )
    assert cfg.database == "AppDatabase"
    assert cfg.principal == "alice"


def test_environment_section_overrides_defaults(tmp_path: Path):
    """Test environment section overrides defaults."""
    cfg_dir = tmp_path / "config"
    _write_yaml(
        cfg_dir / "defaults" / CONFIG_FILE,
        "database: DefaultDb\nservice:\n  controller: localdb\n",
    )
    _write_yaml(
        cfg_dir / "environments" / "prod.yaml",
        "provisioning:\n  database: ProdDb\n  service:\n    name: MSSQL$PROD\n",
    )

    loader = ConfigLoader(config_dir=cfg_dir, environment="prod")
    cfg = loader.load(
        ProvisioningConfig,
        config_file=CONFIG_FILE,
        overrides={"principal": "alice"},
        use_env_vars=False,
    )

    assert cfg.database == "ProdDb"
    assert cfg.service.controller == "localdb"
    assert cfg.service.name == "MSSQL$PROD"


def test_env_vars_then_overrides(tmp_path: Path, monkeypatch):
    """Test env vars then overrides."""
    monkeypatch.setenv("DB_PROVISION_DATABASE", "FromEnv")
    monkeypatch.setenv("DB_PROVISION_ENDPOINT", "db01,1433")
    monkeypatch.setenv("DB_PROVISION_MSSQL", '{"login_timeout": 9}')

    loader = ConfigLoader(config_dir=tmp_path, environment="dev")
    cfg = loader.load(
        ProvisioningConfig,
        config_file=CONFIG_FILE,
        overrides={"database": "FromFlag", "principal": "alice"},
        env_prefix=ENV_PREFIX,
    )

    assert cfg.endpoint == "db01,1433"
    assert cfg.database == "FromFlag"
    assert cfg.mssql.login_timeout == 9


def test_numeric_env_values_stay_strings(tmp_path: Path, monkeypatch):
    """Test numeric env values stay strings."""
    monkeypatch.setenv("DB_PROVISION_DATABASE", "2024")
    loader = ConfigLoader(config_dir=tmp_path, environment="dev")
    cfg = loader.load(
        ProvisioningConfig,
        overrides={"principal": "alice"},
        env_prefix=ENV_PREFIX,
    )
    assert cfg.database == "2024"


def test_variable_substitution(tmp_path: Path, monkeypatch):
    """Test variable substitution."""
    monkeypatch.setenv("ADMIN_PASSWORD", "pw")
    cfg_dir = tmp_path / "config"
    _write_yaml(
        cfg_dir / "defaults" / CONFIG_FILE,
        "mssql:\n  trusted_connection: false\n  username: sa\n"
        "  password: ${ADMIN_PASSWORD}\n",
    )
    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    cfg = loader.load(
        ProvisioningConfig,
        config_file=CONFIG_FILE,
        overrides={"principal": "alice"},
        use_env_vars=False,
    )
    assert cfg.mssql.password == "pw"


def test_invalid_yaml_raises(tmp_path: Path):
    """Test invalid yaml raises."""
    import yaml

    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / CONFIG_FILE, "database: [unclosed")
    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    with pytest.raises(yaml.YAMLError):
        loader.load(ProvisioningConfig, config_file=CONFIG_FILE, use_env_vars=False)


def test_nested_env_vars(tmp_path: Path, monkeypatch):
    """Test nested env vars."""
    monkeypatch.setenv("DB_PROVISION_SERVICE__CONTROLLER", "systemd")
    monkeypatch.setenv("DB_PROVISION_MSSQL", '{"login_timeout": 9}')
    monkeypatch.setenv("DB_PROVISION_MSSQL__DRIVER", "ODBC Driver 18 for SQL Server")
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / CONFIG_FILE, "service:\n  name: mssql-server\n")

    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    cfg = loader.load(
        ProvisioningConfig,
        config_file=CONFIG_FILE,
        overrides={"principal": "alice"},
        env_prefix=ENV_PREFIX,
    )

    assert cfg.service.controller == "systemd"
    assert cfg.service.name == "mssql-server"
    assert cfg.mssql.driver == "ODBC Driver 18 for SQL Server"
    assert cfg.mssql.login_timeout == 9


def test_substitution_inside_strings(tmp_path: Path, monkeypatch):
    """Test substitution inside strings."""
    monkeypatch.setenv("SQL_HOST", "db01")
    monkeypatch.delenv("SQL_INSTANCE", raising=False)
    loader = ConfigLoader(config_dir=tmp_path, environment="dev")
    cfg = loader.load(
        ProvisioningConfig,
        overrides={"endpoint": "${SQL_HOST}\\${SQL_INSTANCE}", "principal": "alice"},
        use_env_vars=False,
    )
    assert cfg.endpoint == "db01\\${SQL_INSTANCE}"


def test_non_mapping_file_raises(tmp_path: Path):
    """Test non mapping file raises."""
    cfg_dir = tmp_path / "config"
    _write_yaml(cfg_dir / "defaults" / CONFIG_FILE, "- just\n- a list\n")
    loader = ConfigLoader(config_dir=cfg_dir, environment="dev")
    with pytest.raises(ValueError, match="expected a mapping"):
        loader.load(ProvisioningConfig, config_file=CONFIG_FILE, use_env_vars=False)
