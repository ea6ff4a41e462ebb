"""Backup store: pre-fix file snapshots plus a JSON index.

Layout under the project root::

    .devmonitor-backups/
        metadata.json                 # {backup_id: BackupRecord}
        Button.tsx.backup.<id>        # original bytes

The index is the only source of truth for which backups exist; a blob without
an index entry is ignored and an entry without its blob cannot be restored.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import json
import uuid
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from devmonitor.logging_config import get_logger
from devmonitor.models import BackupRecord

logger = get_logger(__name__)

INDEX_FILE = "metadata.json"


class BackupError(Exception):
    """Base class for backup store failures."""


class BackupNotFoundError(BackupError):
    """No index entry or stored bytes for the requested backup."""


class BackupIntegrityError(BackupError):
    """Stored bytes no longer match the recorded checksum."""


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class BackupStore:
    """Creates, verifies, restores and prunes file snapshots."""

    def __init__(self, backup_dir: Path) -> None:
        self._dir = Path(backup_dir)
        self._index_path = self._dir / INDEX_FILE
        self._records: dict[str, BackupRecord] = {}
        self._load_index()

    @property
    def directory(self) -> Path:
        return self._dir

    def _load_index(self) -> None:
        if not self._index_path.exists():
            return
        try:
            raw = json.loads(self._index_path.read_text(encoding="utf-8"))
            self._records = {key: BackupRecord.model_validate(value) for key, value in raw.items()}
        except (OSError, ValueError, AttributeError, ValidationError) as exc:
            logger.warning("backup_index_unreadable", path=str(self._index_path), error=str(exc))
            self._records = {}

    def _save_index(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        payload = {key: record.model_dump(mode="json") for key, record in self._records.items()}
        tmp = self._index_path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self._index_path)

    def blob_path(self, record: BackupRecord) -> Path:
        return self._dir / f"{Path(record.file_path).name}.backup.{record.id}"

    def create(self, file_path: Path, fix_type: str = "", description: str = "") -> BackupRecord:
        """Snapshot ``file_path``. Raises ``BackupError`` if the snapshot cannot be stored."""
        source = Path(file_path).resolve()
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise BackupError(f"Cannot read {source} for backup: {exc}") from exc

        record = BackupRecord(
            id=uuid.uuid4().hex,
            file_path=str(source),
            original_size=len(data),
            checksum=checksum(data),
            fix_type=fix_type,
            description=description,
        )
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            self.blob_path(record).write_bytes(data)
            self._records[record.id] = record
            self._save_index()
        except OSError as exc:
            self._records.pop(record.id, None)
            raise BackupError(f"Cannot store backup for {source}: {exc}") from exc

        logger.info("backup_created", backup_id=record.id, file=record.file_path, size=record.original_size)
        return record

    def get(self, backup_id: str) -> Optional[BackupRecord]:
        return self._records.get(backup_id)

    def _read_verified(self, backup_id: str) -> tuple[BackupRecord, bytes]:
        record = self._records.get(backup_id)
        if record is None:
            raise BackupNotFoundError(f"Backup {backup_id} not found")
        blob = self.blob_path(record)
        if not blob.exists():
            raise BackupNotFoundError(f"Backup file for {backup_id} not found")
        try:
            data = blob.read_bytes()
        except OSError as exc:
            raise BackupError(f"Cannot read backup {backup_id}: {exc}") from exc
        if checksum(data) != record.checksum:
            raise BackupIntegrityError(f"Backup {backup_id} failed checksum verification")
        return record, data

    def restore(self, backup_id: str) -> BackupRecord:
        """Copy verified backup bytes over the original file."""
        record, data = self._read_verified(backup_id)
        target = Path(record.file_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("backup_restored", backup_id=backup_id, file=record.file_path)
        return record

    def validate(self, backup_id: str) -> bool:
        try:
            self._read_verified(backup_id)
        except BackupError as exc:
            logger.warning("backup_invalid", backup_id=backup_id, error=str(exc))
            return False
        return True

    def list(self, file_path: Optional[Path] = None) -> list[BackupRecord]:
        records = list(self._records.values())
        if file_path is not None:
            wanted = str(Path(file_path).resolve())
            records = [r for r in records if r.file_path == wanted]
        return sorted(records, key=lambda r: r.timestamp)

    def latest_for(self, file_path: Path) -> Optional[BackupRecord]:
        records = self.list(file_path)
        return records[-1] if records else None

    def delete(self, backup_id: str) -> bool:
        record = self._records.pop(backup_id, None)
        if record is None:
            return False
        self.blob_path(record).unlink(missing_ok=True)
        self._save_index()
        return True

    def prune(self, retention_days: int) -> list[str]:
        """Remove backups older than the retention window; return the removed ids."""
        cutoff = dt.datetime.now(dt.UTC) - dt.timedelta(days=retention_days)
        expired = [r for r in self._records.values() if r.timestamp < cutoff]
        for record in expired:
            self.blob_path(record).unlink(missing_ok=True)
            del self._records[record.id]
        if expired:
            self._save_index()
            logger.info("backups_pruned", count=len(expired), retention_days=retention_days)
        return [r.id for r in expired]
