"""Durable tree store with idempotent, conflict-checked node upserts."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .errors import ConflictingWrite, NotFound
from .model import DecisionTree
from .node import Node

NODES = "nodes"
META = "meta"
CHECKPOINT_KEY = "checkpoint"


class StorageMedium:
    """Key-value medium with atomic single-key writes, grouped in namespaces."""

    def read(self, namespace: str, key: str) -> dict[str, Any] | None:
        raise NotImplementedError()

    def write(self, namespace: str, key: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError()

    def read_all(self, namespace: str) -> dict[str, dict[str, Any]]:
        raise NotImplementedError()


class MemoryMedium(StorageMedium):
    """Process-local medium; payloads are kept JSON-encoded so reads return copies."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def read(self, namespace: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            raw = self._data.get(namespace, {}).get(key)
        return None if raw is None else json.loads(raw)

    def write(self, namespace: str, key: str, payload: dict[str, Any]) -> None:
        raw = json.dumps(payload)
        with self._lock:
            self._data.setdefault(namespace, {})[key] = raw

    def read_all(self, namespace: str) -> dict[str, dict[str, Any]]:
        with self._lock:
            items = dict(self._data.get(namespace, {}))
        return {key: json.loads(raw) for key, raw in items.items()}


class DirectoryMedium(StorageMedium):
    """One JSON file per key under ``root/<namespace>/``, replaced atomically.

    File names are the SHA-1 of the key so deep node ids stay within file
    name limits; the key itself is stored next to the payload.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, namespace: str, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.root / namespace / f"{digest}.json"

    def read(self, namespace: str, key: str) -> dict[str, Any] | None:
        path = self._path(namespace, key)
        if not path.exists():
            return None
        return json.loads(path.read_text())["payload"]

    def write(self, namespace: str, key: str, payload: dict[str, Any]) -> None:
        path = self._path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as handle:
                json.dump({"key": key, "payload": payload}, handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read_all(self, namespace: str) -> dict[str, dict[str, Any]]:
        directory = self.root / namespace
        if not directory.is_dir():
            return {}
        entries = (json.loads(path.read_text()) for path in sorted(directory.glob("*.json")))
        return {entry["key"]: entry["payload"] for entry in entries}


@dataclass(frozen=True)
class Checkpoint:
    """Last durably committed phase boundary."""

    phase: int
    frontier: tuple[str, ...]
    done: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"phase": self.phase, "frontier": list(self.frontier), "done": self.done}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Checkpoint":
        return cls(
            phase=int(payload["phase"]),
            frontier=tuple(str(node_id) for node_id in payload["frontier"]),
            done=bool(payload.get("done", False)),
        )


class TreeStore:
    """Single source of truth for the partial and final tree."""

    def __init__(self, medium: StorageMedium) -> None:
        self._medium = medium
        self._lock = threading.RLock()
        self._logger = logging.getLogger(__name__)

    @classmethod
    def open(cls, path: str | Path) -> "TreeStore":
        return cls(DirectoryMedium(path))

    @classmethod
    def in_memory(cls) -> "TreeStore":
        return cls(MemoryMedium())

    @property
    def medium(self) -> StorageMedium:
        return self._medium

    def get(self, node_id: str) -> Node:
        payload = self._medium.read(NODES, node_id)
        if payload is None:
            raise NotFound(node_id)
        return Node.from_dict(payload)

    def contains(self, node_id: str) -> bool:
        return self._medium.read(NODES, node_id) is not None

    def put(self, node: Node) -> bool:
        """Upsert ``node``; return ``True`` when the medium was written."""
        with self._lock:
            if node.is_split:
                for child in node.children:
                    if self._medium.read(NODES, child) is None:
                        raise NotFound(child)

            payload = node.to_dict()
            stored_payload = self._medium.read(NODES, node.node_id)
            if stored_payload is None:
                self._medium.write(NODES, node.node_id, payload)
                return True

            stored = Node.from_dict(stored_payload)
            if stored.is_terminal:
                if node.is_unknown:
                    self._logger.debug("ignoring unknown write over resolved node %s", node.node_id)
                    return False
                if stored.same_outcome(node):
                    return False
                raise ConflictingWrite(node.node_id, stored.outcome(), node.outcome())

            if stored_payload == payload:
                return False
            self._medium.write(NODES, node.node_id, payload)
            return True

    def put_many(self, nodes: Iterable[Node]) -> int:
        """Upsert ``nodes`` in order; return the number of writes."""
        written = 0
        for node in nodes:
            if self.put(node):
                written += 1
        return written

    def snapshot(self) -> DecisionTree:
        nodes = self._medium.read_all(NODES)
        return DecisionTree.from_nodes(Node.from_dict(payload) for payload in nodes.values())

    def commit_phase(self, phase: int, frontier: Iterable[str], *, done: bool = False) -> Checkpoint:
        checkpoint = Checkpoint(phase=int(phase), frontier=tuple(frontier), done=done)
        with self._lock:
            self._medium.write(META, CHECKPOINT_KEY, checkpoint.to_dict())
        return checkpoint

    def checkpoint(self) -> Checkpoint | None:
        payload = self._medium.read(META, CHECKPOINT_KEY)
        return None if payload is None else Checkpoint.from_dict(payload)
