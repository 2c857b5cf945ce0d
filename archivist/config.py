"""Configuration management for archivist."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _env_list(name: str, default: str = "") -> List[str]:
    """Read a comma separated environment variable into a list."""
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters for the relational store being dumped."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    name: str = "app"
    charset: str = "utf8mb4"
    dump_binary: str = "mysqldump"
    client_binary: str = "mysql"
    exclude_tables: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create config from environment variables."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "3306")),
            user=os.getenv("DB_USER", "root"),
            password=os.getenv("DB_PASS", ""),
            name=os.getenv("DB_NAME", "app"),
            charset=os.getenv("DB_CHARSET", "utf8mb4"),
            dump_binary=os.getenv("MYSQLDUMP_BIN", "mysqldump"),
            client_binary=os.getenv("MYSQL_BIN", "mysql"),
            exclude_tables=_env_list("BACKUP_EXCLUDE_TABLES"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.name:
            raise ValueError("database name must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class StorageConfig:
    """Backup storage layout and archive settings."""
    backup_root: str = "./backups"
    uploads_dir: str = "./uploads"
    compress_database: bool = True
    compression_level: int = 6
    chunk_size: int = 1024 * 1024
    exclude_patterns: List[str] = field(default_factory=list)
    weekly_day: int = 0  # 0 = Sunday ... 6 = Saturday

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        """Create config from environment variables."""
        return cls(
            backup_root=os.getenv("BACKUP_ROOT", "./backups"),
            uploads_dir=os.getenv("BACKUP_UPLOADS_DIR", "./uploads"),
            compress_database=_env_bool("BACKUP_COMPRESS_DATABASE", "true"),
            compression_level=int(os.getenv("BACKUP_COMPRESSION_LEVEL", "6")),
            chunk_size=int(os.getenv("BACKUP_CHUNK_SIZE", str(1024 * 1024))),
            exclude_patterns=_env_list("BACKUP_EXCLUDE_PATTERNS"),
            weekly_day=int(os.getenv("BACKUP_WEEKLY_DAY", "0")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not 1 <= self.compression_level <= 9:
            raise ValueError(f"compression_level must be between 1 and 9, got {self.compression_level}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.weekly_day <= 6:
            raise ValueError(f"weekly_day must be between 0 and 6, got {self.weekly_day}")


@dataclass(frozen=True)
class RetentionConfig:
    """Retention policy for completed runs."""
    days: int = 30
    min_keep: int = 0

    @classmethod
    def from_env(cls) -> 'RetentionConfig':
        """Create config from environment variables."""
        return cls(
            days=int(os.getenv("BACKUP_RETENTION_DAYS", "30")),
            min_keep=int(os.getenv("BACKUP_MIN_KEEP", "0")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.days < 1:
            raise ValueError(f"retention days must be at least 1, got {self.days}")
        if self.min_keep < 0:
            raise ValueError(f"min_keep must be non-negative, got {self.min_keep}")


@dataclass(frozen=True)
class LockConfig:
    """Advisory lock settings."""
    stale_after_seconds: int = 7200

    @classmethod
    def from_env(cls) -> 'LockConfig':
        """Create config from environment variables."""
        return cls(stale_after_seconds=int(os.getenv("BACKUP_LOCK_STALE_SECONDS", "7200")))

    def __post_init__(self):
        """Validate configuration."""
        if self.stale_after_seconds <= 0:
            raise ValueError(f"stale_after_seconds must be positive, got {self.stale_after_seconds}")


@dataclass(frozen=True)
class NotificationConfig:
    """Report delivery settings."""
    enabled: bool = False
    recipients: List[str] = field(default_factory=list)
    from_address: str = "backup@localhost"
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_starttls: bool = False
    notify_on_success: bool = True
    subject_success: str = "[Backup] Completed - %date%"
    subject_warning: str = "[Backup] Completed with warnings - %date%"
    subject_failure: str = "[Backup] FAILED - %date%"

    @classmethod
    def from_env(cls) -> 'NotificationConfig':
        """Create config from environment variables."""
        return cls(
            enabled=_env_bool("BACKUP_EMAIL_ENABLED", "false"),
            recipients=_env_list("BACKUP_ADMIN_EMAIL"),
            from_address=os.getenv("BACKUP_FROM_EMAIL", "backup@localhost"),
            smtp_host=os.getenv("BACKUP_SMTP_HOST", "localhost"),
            smtp_port=int(os.getenv("BACKUP_SMTP_PORT", "25")),
            smtp_user=os.getenv("BACKUP_SMTP_USER"),
            smtp_password=os.getenv("BACKUP_SMTP_PASS"),
            smtp_starttls=_env_bool("BACKUP_SMTP_STARTTLS", "false"),
            notify_on_success=_env_bool("BACKUP_EMAIL_ON_SUCCESS", "true"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not 0 < self.smtp_port < 65536:
            raise ValueError(f"smtp_port must be between 1 and 65535, got {self.smtp_port}")


@dataclass(frozen=True)
class BackupConfig:
    """Main backup configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    dry_run: bool = False
    debug: bool = False
    verify_checksums: bool = True
    pre_restore_snapshot: bool = False
    log_retention_days: int = 90

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create complete config from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            storage=StorageConfig.from_env(),
            retention=RetentionConfig.from_env(),
            lock=LockConfig.from_env(),
            notification=NotificationConfig.from_env(),
            dry_run=_env_bool("BACKUP_DRY_RUN", "false"),
            debug=_env_bool("BACKUP_DEBUG_MODE", "false"),
            verify_checksums=_env_bool("BACKUP_VERIFY_CHECKSUM", "true"),
            pre_restore_snapshot=_env_bool("BACKUP_BEFORE_RESTORE", "false"),
            log_retention_days=int(os.getenv("BACKUP_LOG_RETENTION_DAYS", "90")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.log_retention_days < 1:
            raise ValueError(f"log_retention_days must be at least 1, got {self.log_retention_days}")

    @property
    def backup_root(self) -> Path:
        return Path(self.storage.backup_root)

    @property
    def uploads_dir(self) -> Path:
        return Path(self.storage.uploads_dir)

    @property
    def log_dir(self) -> Path:
        return self.backup_root / "logs"

    @property
    def lock_path(self) -> Path:
        return self.backup_root / "backup.lock"


def validate_config(config: BackupConfig) -> list[str]:
    """Validate configuration and return list of warnings.

    Args:
        config: Backup configuration to validate

    Returns:
        List of warning messages (empty if no issues)
    """
    warnings = []

    if not config.database.password:
        warnings.append("Database password is empty")

    if config.retention.days < 7:
        warnings.append(f"Short retention window ({config.retention.days} days)")

    if config.notification.enabled and not config.notification.recipients:
        warnings.append("Email notifications enabled but no recipients configured")

    backup_root = config.backup_root.resolve()
    uploads_dir = config.uploads_dir.resolve()
    if backup_root == uploads_dir or backup_root in uploads_dir.parents:
        warnings.append(f"Uploads directory {uploads_dir} lies inside the backup root")
    if uploads_dir in backup_root.parents:
        warnings.append(f"Backup root {backup_root} lies inside the uploads directory")

    return warnings
