import pytest

from pgbackup.errors import BackupError
from pgbackup.services.config_loader import ConfigLoader


def test_config_loader_loads_yaml_mapping(tmp_path):
    config_file = tmp_path / ".pgbackup.yml"
    config_file.write_text(
        "backup_dir: /srv/backup\ntimeout: 600\nretention_days: 30\n",
        encoding="utf-8",
    )

    loader = ConfigLoader()
    loaded = loader.load(str(config_file))

    assert loaded["backup_dir"] == "/srv/backup"
    assert loaded["timeout"] == 600
    assert loaded["retention_days"] == 30


def test_config_loader_returns_empty_mapping_without_path():
    assert ConfigLoader().load(None) == {}


def test_config_loader_rejects_unknown_keys(tmp_path):
    config_file = tmp_path / ".pgbackup.yml"
    config_file.write_text("unknown_key: true\n", encoding="utf-8")

    loader = ConfigLoader()

    with pytest.raises(BackupError, match="Unknown configuration keys"):
        loader.load(str(config_file))


def test_config_loader_rejects_missing_file(tmp_path):
    with pytest.raises(BackupError, match="Config file not found"):
        ConfigLoader().load(str(tmp_path / "missing.yml"))


def test_config_loader_rejects_non_mapping(tmp_path):
    config_file = tmp_path / ".pgbackup.yml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(BackupError, match="YAML mapping"):
        ConfigLoader().load(str(config_file))


@pytest.mark.parametrize(
    "content,key",
    [
        ("retention_days: thirty\n", "retention_days"),
        ("retention_days: true\n", "retention_days"),
        ("timeout: 1.5\n", "timeout"),
        ("timeout: [300]\n", "timeout"),
        ("backup_dir: 42\n", "backup_dir"),
        ("psql_command:\n  path: /usr/bin/psql\n", "psql_command"),
        ("dry_run: [yes]\n", "dry_run"),
    ],
)
def test_config_loader_rejects_wrong_value_types(tmp_path, content, key):
    config_file = tmp_path / ".pgbackup.yml"
    config_file.write_text(content, encoding="utf-8")

    with pytest.raises(BackupError, match=f"Invalid value for '{key}'"):
        ConfigLoader().load(str(config_file))


def test_config_loader_accepts_loose_flag_and_timeout_values(tmp_path):
    config_file = tmp_path / ".pgbackup.yml"
    config_file.write_text(
        "verbose: 1\nexplicit_login: \"0\"\ndry_run: true\ntimeout: \"abc\"\nreport_file:\n",
        encoding="utf-8",
    )

    loaded = ConfigLoader().load(str(config_file))

    assert loaded == {
        "verbose": 1,
        "explicit_login": "0",
        "dry_run": True,
        "timeout": "abc",
        "report_file": None,
    }
