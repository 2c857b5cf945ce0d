from .config import BackupConfig, validate_config
from .backup.manager import BackupManager

__version__ = "0.1.0"
__author__ = "archivist-maintainers"
__url__ = ""

__all__ = ["BackupConfig", "BackupManager", "validate_config"]
