"""
Installed-plugin catalog.

The catalog is the only persisted state: one record per installed
(name, target). Components receive a Catalog instance; nothing here is a
module-level singleton.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

import yaml

from pluginmgr.models.plugin import InstalledPluginRecord, Scope, Target

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    def get_installed(self) -> list[InstalledPluginRecord]: ...

    def upsert(self, record: InstalledPluginRecord) -> None: ...

    def remove(self, name: str, target: Target) -> bool: ...


def installed_standalone(records: list[InstalledPluginRecord]) -> list[InstalledPluginRecord]:
    return [r for r in records if r.scope == Scope.STANDALONE]


class InMemoryCatalog:
    """Catalog kept in process memory."""

    def __init__(self, records: list[InstalledPluginRecord] | None = None):
        self._records: dict[tuple[str, Target], InstalledPluginRecord] = {}
        for record in records or []:
            self.upsert(record)

    def get_installed(self) -> list[InstalledPluginRecord]:
        return [r.model_copy() for r in self._records.values()]

    def upsert(self, record: InstalledPluginRecord) -> None:
        self._records[record.key] = record.model_copy()

    def remove(self, name: str, target: Target) -> bool:
        return self._records.pop((name, target), None) is not None


class FileCatalog:
    """Catalog stored as a YAML list of records.

    Every mutation rewrites the file atomically (temp file + rename).
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> dict[tuple[str, Target], InstalledPluginRecord]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(f"Catalog is not a mapping, ignoring: {self.path}")
            return {}
        records: dict[tuple[str, Target], InstalledPluginRecord] = {}
        for raw in data.get("plugins") or []:
            if not isinstance(raw, dict):
                logger.warning(f"Skipping unreadable catalog entry in {self.path}: {raw!r}")
                continue
            try:
                record = InstalledPluginRecord(**raw)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable catalog entry in {self.path}: {e}")
                continue
            records[record.key] = record
        return records

    def _write(self, records: dict[tuple[str, Target], InstalledPluginRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(
            {"plugins": [r.model_dump(mode="json") for r in records.values()]},
            default_flow_style=False,
            sort_keys=False,
        )

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", prefix=".catalog-")
        closed = False
        try:
            os.write(fd, content.encode("utf-8"))
            os.fsync(fd)
            os.close(fd)
            closed = True
            os.replace(tmp_path, self.path)
        except Exception:
            if not closed:
                os.close(fd)
            if Path(tmp_path).exists():
                os.unlink(tmp_path)
            raise

    def get_installed(self) -> list[InstalledPluginRecord]:
        with self._lock:
            return list(self._read().values())

    def upsert(self, record: InstalledPluginRecord) -> None:
        with self._lock:
            records = self._read()
            records[record.key] = record
            self._write(records)

    def remove(self, name: str, target: Target) -> bool:
        with self._lock:
            records = self._read()
            if records.pop((name, target), None) is None:
                return False
            self._write(records)
            return True
