import json
from dataclasses import asdict, fields

import redis

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.types import BackupSettings


def _check_range(name: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise errors.ValidationError(f"{name} must be between {low} and {high}: {value}")


def validate_settings(settings: BackupSettings) -> None:
    if settings.backup_frequency not in config.VALID_BACKUP_FREQUENCIES:
        raise errors.ValidationError(f"Invalid backup frequency: {settings.backup_frequency}")
    if settings.retention_period not in config.VALID_RETENTION_PERIODS:
        raise errors.ValidationError(f"Invalid retention period: {settings.retention_period}")
    if not settings.storage_regions:
        raise errors.ValidationError("At least one storage region is required")
    if settings.bandwidth_limit_mbps <= 0:
        raise errors.ValidationError(f"Bandwidth limit must be positive: {settings.bandwidth_limit_mbps}")

    _check_range("replication_factor", settings.replication_factor, config.REPLICATION_RANGE)
    _check_range("compression_level", settings.compression_level, config.COMPRESSION_RANGE)
    _check_range("max_versions", settings.max_versions, config.MAX_VERSIONS_RANGE)


class BackupSettingsStore:
    """Backup preferences persisted as one JSON document in local Redis."""

    def __init__(self, client: redis.Redis):
        self.db: redis.Redis = client

    def save(self, settings: BackupSettings) -> bool:
        validate_settings(settings)
        try:
            self.db.set(config.BACKUP_SETTINGS_KEY, json.dumps(asdict(settings)))
            return True
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("save_backup_settings")

    def load(self) -> BackupSettings:
        try:
            raw = self.db.get(config.BACKUP_SETTINGS_KEY)
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("load_backup_settings")

        if raw is None:
            return BackupSettings()

        # Unknown keys from older documents are dropped
        known = {f.name for f in fields(BackupSettings)}
        data = {k: v for k, v in json.loads(raw).items() if k in known}
        return BackupSettings(**data)

    def reset(self) -> BackupSettings:
        try:
            self.db.delete(config.BACKUP_SETTINGS_KEY)
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("reset_backup_settings")
        return BackupSettings()
