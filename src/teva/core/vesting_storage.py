"""
TEVA - Persistent Vesting Storage

Provides durable persistence for the vesting engine and its ledger with:
- Atomic writes (temp file + fsync + rename)
- Checksum verification on load
- Timestamped backups and recovery from the newest valid backup
"""

import hashlib
import json
import logging
import os
import shutil
import time
from datetime import datetime
from threading import Lock
from typing import Dict, Optional, Tuple

from . import config
from .vesting_exceptions import CorruptedDataError, StorageError

logger = logging.getLogger(__name__)

STORAGE_VERSION = "1.0"


class VestingStorageConfig:
    """Configuration for vesting storage"""

    STATE_FILENAME = "vesting_state.json"
    METADATA_FILENAME = "vesting_metadata.json"
    BACKUP_DIRNAME = "backups"

    # Max backup files to keep
    MAX_BACKUPS = 10


class VestingStorage:
    """
    Vesting state storage with data integrity and recovery.

    The state file holds one JSON package::

        {"metadata": {...}, "vesting": {...}, "token": {...}}

    where the metadata checksum covers the canonical JSON of the
    ``vesting`` and ``token`` sections.

    The ``token`` section is the ledger as of the engine's last save. Ledger
    changes made outside the engine are only captured by the next engine
    operation or an explicit ``VestingContract.checkpoint()``.
    """

    def __init__(self, data_dir: Optional[str] = None, max_backups: int = VestingStorageConfig.MAX_BACKUPS):
        self.data_dir = data_dir or config.DATA_DIR
        self.state_file = os.path.join(self.data_dir, VestingStorageConfig.STATE_FILENAME)
        self.metadata_file = os.path.join(self.data_dir, VestingStorageConfig.METADATA_FILENAME)
        self.backup_dir = os.path.join(self.data_dir, VestingStorageConfig.BACKUP_DIRNAME)
        self.max_backups = max_backups

        os.makedirs(self.data_dir, exist_ok=True)
        os.makedirs(self.backup_dir, exist_ok=True)

        self.lock = Lock()

    def _calculate_checksum(self, data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    @staticmethod
    def _canonical(vesting_data: dict, token_data: dict) -> str:
        return json.dumps({"vesting": vesting_data, "token": token_data}, sort_keys=True)

    def exists(self) -> bool:
        return os.path.exists(self.state_file)

    def save_to_disk(self, vesting_data: dict, token_data: dict, create_backup: bool = True) -> Tuple[bool, str]:
        """
        Save vesting state to disk with an atomic write.

        Args:
            vesting_data: ``VestingContract.to_dict()`` output
            token_data: ``TevaToken.to_dict()`` output
            create_backup: Whether to back up the previous state file

        Returns:
            tuple: (success: bool, message: str)
        """
        with self.lock:
            try:
                checksum = self._calculate_checksum(self._canonical(vesting_data, token_data))
                metadata = {
                    "timestamp": time.time(),
                    "investor_count": len(vesting_data.get("investors", [])),
                    "checksum": checksum,
                    "version": STORAGE_VERSION,
                }
                package = {"metadata": metadata, "vesting": vesting_data, "token": token_data}
                package_json = json.dumps(package, indent=2, sort_keys=True)

                if create_backup and os.path.exists(self.state_file):
                    self._create_backup()

                temp_file = self.state_file + ".tmp"
                with open(temp_file, "w", encoding="utf-8") as f:
                    f.write(package_json)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_file, self.state_file)

                with open(self.metadata_file, "w", encoding="utf-8") as f:
                    json.dump(metadata, f, indent=2)

                logger.debug(
                    "Vesting state saved",
                    extra={"event": "storage.saved", "checksum": checksum[:8], "path": self.state_file},
                )
                return True, f"Vesting state saved (checksum: {checksum[:8]}...)"

            except (OSError, TypeError, ValueError) as e:
                logger.error(
                    "Failed to save vesting state to disk",
                    extra={
                        "event": "storage.save_failed",
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                return False, f"Failed to save vesting state: {str(e)}"

    def load_from_disk(self) -> Tuple[bool, Optional[Dict], str]:
        """
        Load vesting state from disk with integrity checks.

        Falls back to the newest valid backup if the state file is corrupted.

        Returns:
            tuple: (success: bool, package: dict or None, message: str)
        """
        with self.lock:
            if not os.path.exists(self.state_file):
                return False, None, "No vesting state file found"

            try:
                package = self._read_package(self.state_file)
                return True, package, "Vesting state loaded successfully"
            except CorruptedDataError as e:
                logger.warning(
                    "Vesting state corrupted, attempting recovery",
                    extra={"event": "storage.corrupted", "error": e.message},
                )
                return self._attempt_recovery()
            except OSError as e:
                logger.error(
                    "Failed to load vesting state from disk",
                    extra={
                        "event": "storage.load_failed",
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                return False, None, f"Failed to load vesting state: {str(e)}"

    def _read_package(self, path: str) -> Dict:
        with open(path, "r", encoding="utf-8") as f:
            try:
                package = json.load(f)
            except json.JSONDecodeError as e:
                raise CorruptedDataError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(package, dict) or "vesting" not in package or "token" not in package:
            raise CorruptedDataError(f"Missing vesting or token section in {path}")

        expected_checksum = package.get("metadata", {}).get("checksum")
        if not expected_checksum:
            raise CorruptedDataError(f"Missing checksum in {path}")
        actual = self._calculate_checksum(self._canonical(package["vesting"], package["token"]))
        if actual != expected_checksum:
            raise CorruptedDataError(
                f"Checksum mismatch in {path}",
                details={"expected": expected_checksum, "actual": actual},
            )
        return package

    def _attempt_recovery(self) -> Tuple[bool, Optional[Dict], str]:
        for backup in self._list_backups():
            try:
                package = self._read_package(backup)
            except (CorruptedDataError, OSError):
                continue
            logger.warning(
                "Vesting state recovered from backup",
                extra={"event": "storage.recovered", "backup": os.path.basename(backup)},
            )
            return True, package, f"Recovered from backup {os.path.basename(backup)}"
        return False, None, "Vesting state corrupted and no valid backup found"

    def _create_backup(self) -> bool:
        try:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            backup_file = os.path.join(self.backup_dir, f"vesting_backup_{timestamp}.json")
            shutil.copy2(self.state_file, backup_file)
            self._cleanup_old_backups()
            return True
        except (OSError, shutil.Error) as e:
            logger.warning(
                "Failed to create vesting backup",
                extra={"event": "storage.backup_failed", "error": str(e), "error_type": type(e).__name__},
            )
            return False

    def _list_backups(self) -> list:
        """Backup paths, newest first."""
        backups = [
            os.path.join(self.backup_dir, f)
            for f in os.listdir(self.backup_dir)
            if f.startswith("vesting_backup_") and f.endswith(".json")
        ]
        # Names embed a sortable timestamp
        backups.sort(reverse=True)
        return backups

    def _cleanup_old_backups(self) -> None:
        for backup in self._list_backups()[self.max_backups:]:
            try:
                os.remove(backup)
            except OSError as e:
                logger.warning(
                    "Failed to remove old vesting backup",
                    extra={"event": "storage.cleanup_failed", "backup": backup, "error": str(e)},
                )

    def require_loaded(self) -> Dict:
        """Load the package or raise StorageError."""
        success, package, message = self.load_from_disk()
        if not success or package is None:
            raise StorageError(message)
        return package
