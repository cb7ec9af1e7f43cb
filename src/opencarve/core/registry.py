"""
In-process registry of generated output files.

The download endpoint resolves ids through this registry. Entries are kept
in insertion order and bounded both by count and by age; evicted entries
have their files removed from disk. Nothing survives a process restart.
"""

import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from opencarve.core.logging import get_logger

logger = get_logger(__name__)


def new_output_id() -> str:
    """Fresh opaque output id (uuid4, hex)."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class OutputRecord:
    """
    A generated output file and the metadata returned to the client.

    Attributes:
        id: Opaque download id
        file_name: Download file name
        path: Location of the file on disk
        mime_type: Content type served on download
        created_at: Unix timestamp (seconds)
        conversion_type: ``2d_outline``, ``2_5d_heightmap`` or ``3d_model``
        preview: Preview payload (viewBox, polylines, operations, height field)
        material: Material dimensions used for the conversion
        output: Output footprint and scale actually applied
    """

    id: str
    file_name: str
    path: Path
    mime_type: str
    created_at: float
    conversion_type: str
    preview: Optional[Dict[str, Any]] = None
    material: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for JSON/API (the on-disk path is not exposed)."""
        return {
            "id": self.id,
            "fileName": self.file_name,
            "mimeType": self.mime_type,
            "createdAt": self.created_at,
            "conversionType": self.conversion_type,
            "preview": self.preview,
            "material": self.material,
            "output": self.output,
        }


@dataclass
class OutputRegistry:
    """
    Thread-safe, bounded map from output id to OutputRecord.

    Example:
        >>> registry = OutputRegistry(max_entries=10)
        >>> registry.add(record)
        >>> registry.get(record.id)
    """

    max_entries: int = 500
    max_age_s: float = 24 * 3600.0
    clock: Callable[[], float] = time.time
    _entries: "OrderedDict[str, OutputRecord]" = field(default_factory=OrderedDict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def add(self, record: OutputRecord) -> None:
        """Insert a record, then evict expired and overflowing entries."""
        with self._lock:
            self._entries[record.id] = record
            self._entries.move_to_end(record.id)
            evicted = self._collect_evictions()
        self._remove_files(evicted)
        logger.debug("output_registered", output_id=record.id, file_name=record.file_name)

    def get(self, output_id: str) -> Optional[OutputRecord]:
        """Look up a record; unknown and expired ids return None."""
        with self._lock:
            evicted = self._collect_evictions()
            record = self._entries.get(output_id)
        self._remove_files(evicted)
        return record

    def list_records(self) -> List[OutputRecord]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        """Drop every entry and delete its file."""
        with self._lock:
            evicted = list(self._entries.values())
            self._entries.clear()
        self._remove_files(evicted)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, output_id: object) -> bool:
        with self._lock:
            return output_id in self._entries

    def _collect_evictions(self) -> List[OutputRecord]:
        # Caller holds the lock.
        evicted: List[OutputRecord] = []
        cutoff = self.clock() - self.max_age_s
        for output_id in list(self._entries):
            if self._entries[output_id].created_at >= cutoff:
                break
            evicted.append(self._entries.pop(output_id))
        while len(self._entries) > self.max_entries:
            _, record = self._entries.popitem(last=False)
            evicted.append(record)
        return evicted

    def _remove_files(self, records: List[OutputRecord]) -> None:
        for record in records:
            try:
                Path(record.path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning("output_file_remove_failed", output_id=record.id, error=str(e))
            else:
                logger.debug("output_evicted", output_id=record.id)
