import json

import pytest

from DSC_Storage.dsc_local.backup_settings import validate_settings
from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.types import BackupSettings


def test_load_without_saved_settings_returns_defaults(backup_store):
    settings = backup_store.load()
    assert settings == BackupSettings()
    assert settings.backup_frequency == "daily"
    assert settings.replication_factor == 3
    assert settings.storage_regions == ["us-east", "eu-west"]


def test_save_then_load(backup_store):
    custom = BackupSettings(
        auto_backup=False,
        backup_frequency="weekly",
        replication_factor=5,
        storage_regions=["ap-south"],
        compression_level=9,
        retention_period="forever",
    )
    assert backup_store.save(custom) is True
    assert backup_store.load() == custom


def test_reset_restores_defaults(backup_store):
    backup_store.save(BackupSettings(backup_frequency="hourly"))
    assert backup_store.reset() == BackupSettings()
    assert backup_store.load() == BackupSettings()


def test_unknown_keys_are_dropped(backup_store, local_client):
    doc = {"backup_frequency": "monthly", "legacy_flag": True}
    local_client.set(config.BACKUP_SETTINGS_KEY, json.dumps(doc))
    settings = backup_store.load()
    assert settings.backup_frequency == "monthly"
    assert settings.max_versions == 10


def test_invalid_settings_are_not_saved(backup_store):
    with pytest.raises(errors.ValidationError):
        backup_store.save(BackupSettings(backup_frequency="yearly"))
    assert backup_store.load() == BackupSettings()


@pytest.mark.parametrize("overrides", [
    {"retention_period": "2years"},
    {"replication_factor": 0},
    {"replication_factor": 11},
    {"compression_level": 10},
    {"max_versions": 0},
    {"storage_regions": []},
    {"bandwidth_limit_mbps": 0},
])
def test_validate_rejects(overrides):
    with pytest.raises(errors.ValidationError):
        validate_settings(BackupSettings(**overrides))


def test_validate_accepts_bounds():
    validate_settings(BackupSettings(replication_factor=1, compression_level=0, max_versions=100))
    validate_settings(BackupSettings(replication_factor=10, compression_level=9, max_versions=1))
