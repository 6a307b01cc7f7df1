# -*- coding: utf-8 -*-
"""
Provenance log for CarbonLedger

Engines append one entry per operation (factor resolution, calculation,
aggregation, analysis, report assembly, signing) to a chain where each
entry's hash covers its parent's hash. Rewriting any earlier entry
breaks every hash after it, which ``verify_chain`` detects.

The log lives in memory for the life of the process. Callers that need
a durable audit trail export it with ``export_json``.

Example:
    >>> from carbonledger.provenance import ProvenanceTracker
    >>> tracker = ProvenanceTracker()
    >>> entry = tracker.record("calculation", "calculate", "calc_001")
    >>> tracker.verify_chain()
    True
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ENTITY_TYPES = frozenset({
    "activity", "emission_factor", "factor_override", "calculation", "batch",
    "aggregate", "analysis", "standard", "report", "signature",
})

ACTIONS = frozenset({
    "import", "register", "resolve", "calculate", "calculate_batch",
    "aggregate", "analyze", "compare", "assemble", "update", "sign",
    "revoke", "verify",
})


def hash_payload(data: Optional[Any]) -> str:
    """SHA-256 hex digest of ``data`` as sorted-key JSON.

    Values JSON cannot encode (Decimal, date, enum) go through ``str``,
    so equal payloads always hash equal. ``None`` hashes as ``null``.
    """
    text = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _link_hash(parent_hash: str, data_hash: str, action: str, timestamp: str) -> str:
    return hash_payload({
        "action": action,
        "data_hash": data_hash,
        "parent_hash": parent_hash,
        "timestamp": timestamp,
    })


@dataclass
class ProvenanceEntry:
    """One link in the chain. ``metadata`` always holds ``data_hash``."""

    entity_type: str
    entity_id: str
    action: str
    hash_value: str
    parent_hash: str
    timestamp: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class ProvenanceChain:
    """Append-only list of entries, each hashed over its parent."""

    def __init__(self, genesis: str = "CARBONLEDGER-GENESIS") -> None:
        self.genesis_hash = hashlib.sha256(genesis.encode("utf-8")).hexdigest()
        self._entries: List[ProvenanceEntry] = []
        self._lock = threading.RLock()

    @property
    def entries(self) -> Tuple[ProvenanceEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    @property
    def entry_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def add_entry(
        self,
        entity_type: str,
        action: str,
        entity_id: str,
        data: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProvenanceEntry:
        """Append an entry; raises ValueError when a key field is empty."""
        for name, value in (("entity_type", entity_type), ("action", action), ("entity_id", entity_id)):
            if not value:
                raise ValueError(f"{name} must not be empty")

        timestamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        data_hash = hash_payload(data)

        with self._lock:
            parent = self._entries[-1].hash_value if self._entries else self.genesis_hash
            entry = ProvenanceEntry(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                hash_value=_link_hash(parent, data_hash, action, timestamp),
                parent_hash=parent,
                timestamp=timestamp,
                metadata={"data_hash": data_hash, **(metadata or {})},
            )
            self._entries.append(entry)

        logger.debug(
            "Provenance %s/%s %s -> %s",
            entity_type, entity_id, action, entry.hash_value[:16],
        )
        return entry

    def verify_chain(self) -> bool:
        """Recompute every link; False at the first mismatch."""
        parent = self.genesis_hash
        for index, entry in enumerate(self.entries):
            expected = _link_hash(
                parent, entry.metadata.get("data_hash", ""), entry.action, entry.timestamp,
            )
            if entry.parent_hash != parent or entry.hash_value != expected:
                logger.warning("Provenance chain broken at entry %d", index)
                return False
            parent = entry.hash_value
        return True

    def export_json(self) -> str:
        return json.dumps([asdict(e) for e in self.entries], indent=2, default=str)


class ProvenanceTracker:
    """Chain plus the known vocabulary and a per-entity index."""

    def __init__(self, genesis: str = "CARBONLEDGER-GENESIS") -> None:
        self._chain = ProvenanceChain(genesis)
        self._by_entity: Dict[Tuple[str, str], List[ProvenanceEntry]] = {}
        self._lock = threading.RLock()

    @property
    def genesis_hash(self) -> str:
        return self._chain.genesis_hash

    @property
    def entry_count(self) -> int:
        return self._chain.entry_count

    def record(
        self,
        entity_type: str,
        action: str,
        entity_id: str,
        data: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProvenanceEntry:
        """Append an entry for an engine operation.

        Raises:
            ValueError: Unknown entity type or action, or an empty field.
        """
        if entity_type not in ENTITY_TYPES:
            raise ValueError(f"Unknown provenance entity type '{entity_type}'")
        if action not in ACTIONS:
            raise ValueError(f"Unknown provenance action '{action}'")

        entry = self._chain.add_entry(entity_type, action, entity_id, data, metadata)
        with self._lock:
            self._by_entity.setdefault((entity_type, entity_id), []).append(entry)
        return entry

    def get_entries_for_entity(self, entity_type: str, entity_id: str) -> List[ProvenanceEntry]:
        with self._lock:
            return list(self._by_entity.get((entity_type, entity_id), []))

    def verify_chain(self) -> bool:
        return self._chain.verify_chain()

    def export_json(self) -> str:
        return self._chain.export_json()


_tracker_lock = threading.Lock()
_tracker: Optional[ProvenanceTracker] = None


def get_provenance_tracker() -> ProvenanceTracker:
    """Process-wide tracker, anchored on the configured genesis string."""
    global _tracker
    if _tracker is None:
        with _tracker_lock:
            if _tracker is None:
                from carbonledger.config import get_config

                _tracker = ProvenanceTracker(get_config().genesis_hash)
    return _tracker


def set_provenance_tracker(tracker: ProvenanceTracker) -> None:
    if not isinstance(tracker, ProvenanceTracker):
        raise TypeError(f"Expected a ProvenanceTracker, got {type(tracker).__name__}")
    global _tracker
    with _tracker_lock:
        _tracker = tracker


def reset_provenance_tracker() -> None:
    """Drop the process-wide tracker; the next access builds a fresh one."""
    global _tracker
    with _tracker_lock:
        _tracker = None


__all__ = [
    "ENTITY_TYPES",
    "ACTIONS",
    "ProvenanceEntry",
    "ProvenanceChain",
    "ProvenanceTracker",
    "hash_payload",
    "get_provenance_tracker",
    "set_provenance_tracker",
    "reset_provenance_tracker",
]
