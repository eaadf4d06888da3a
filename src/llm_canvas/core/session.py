"""session serialize/deserialize with id remapping, plus the persistence slot.

snapshot schema:
    {"nodes": [<node dict>, ...], "timestamp": "<iso-8601>"}

ids in a snapshot are never reused on load: every record gets a fresh id from
the store's counter and parent ids are rewritten through the old→new map.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .errors import SessionLoadError
from .models import (
    EXPANDED_SIZE,
    MIN_RESIZE_HEIGHT,
    MIN_RESIZE_WIDTH,
    MINIMUM_Y,
    ORIGIN_TITLE,
    CanvasNode,
    NodeStore,
    is_node_id,
)


AUTOSAVE_FILE = "autosave.json"
EXPORT_PREFIX = "llm-canvas-session"


def serialize(nodes: Iterable[CanvasNode], timestamp: Optional[datetime] = None) -> dict:
    """snapshot of every node record."""
    return {
        "nodes": [copy.deepcopy(node.to_dict()) for node in nodes],
        "timestamp": (timestamp or datetime.now()).isoformat(),
    }


def is_origin_title(title: str) -> bool:
    return title == ORIGIN_TITLE or "origin" in title.lower()


def fits_resize_minimum(width, height) -> bool:
    return width is not None and height is not None \
        and width >= MIN_RESIZE_WIDTH and height >= MIN_RESIZE_HEIGHT


@dataclass
class DecodedSession:
    """nodes rebuilt from a snapshot, not yet placed on a canvas."""

    nodes: list[CanvasNode] = field(default_factory=list)
    id_mapping: dict = field(default_factory=dict)  # old id -> new id
    origin_id: Optional[int] = None


class SessionCodec:
    """converts between the node store and session snapshots."""

    def __init__(self, store: NodeStore) -> None:
        self.store = store

    def serialize(self) -> dict:
        return serialize(self.store.nodes)

    @staticmethod
    def node_records(snapshot) -> Optional[list]:
        """the snapshot's node list, or None when it is missing or malformed."""
        if not isinstance(snapshot, dict):
            return None
        records = snapshot.get("nodes")
        if not isinstance(records, list):
            return None
        return records

    def decode(self, snapshot) -> Optional[DecodedSession]:
        """rebuild nodes with fresh ids. returns None for malformed input.

        the store's id counter advances; nothing else in the store changes.
        """
        records = self.node_records(snapshot)
        if records is None:
            logging.debug("session snapshot has no usable nodes array")
            return None

        decoded = DecodedSession()
        sources: list[tuple[dict, CanvasNode]] = []

        for record in records:
            if not isinstance(record, dict) or not is_node_id(record.get("id")):
                logging.debug(f"skipping malformed node record: {record!r}")
                continue

            new_id = self.store.allocate_id()
            node = self._build_node(record, new_id)
            decoded.id_mapping[record["id"]] = new_id
            decoded.nodes.append(node)
            sources.append((record, node))

        for record, node in sources:
            old_parent = record.get("parentId")
            node.parent_id = decoded.id_mapping.get(old_parent) if is_node_id(old_parent) else None

        decoded.origin_id = self._find_origin(decoded.nodes)
        for node in decoded.nodes:
            node.is_origin = node.id == decoded.origin_id

        return decoded

    def _build_node(self, record: dict, new_id: int) -> CanvasNode:
        node = CanvasNode.from_dict(record)
        node.id = new_id
        node.parent_id = None  # remapped once every record has an id
        node.y = max(MINIMUM_Y, node.y)

        if node.is_box_view or not fits_resize_minimum(node.width, node.height):
            node.width, node.height = EXPANDED_SIZE
        if not fits_resize_minimum(node.expanded_width, node.expanded_height):
            node.expanded_width = node.expanded_height = None

        # boxing is applied by the engine once the node is placed
        node.is_box_view = False
        # no request survives a reload
        node.is_thinking = False
        return node

    @staticmethod
    def _find_origin(nodes: list[CanvasNode]) -> Optional[int]:
        """explicit origin marker first, then the legacy title rule."""
        for node in nodes:
            if node.is_origin:
                return node.id

        matches = [n for n in nodes if is_origin_title(n.title)]
        if len(matches) > 1:
            logging.warning(
                f"{len(matches)} nodes look like the origin by title; "
                f"using node {matches[0].id} ({matches[0].title!r})"
            )
        return matches[0].id if matches else None


# --- boundary (text / files) ---

def dumps(snapshot: dict) -> str:
    return json.dumps(snapshot, indent=2)


def loads(text: str) -> dict:
    """parse snapshot text. raises SessionLoadError on bad input."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise SessionLoadError(f"error loading session file: {e}") from e
    if not isinstance(data, dict):
        raise SessionLoadError("error loading session file: expected a json object")
    return data


def export_filename(now: Optional[datetime] = None) -> str:
    """timestamp-named file name for a downloaded snapshot."""
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{EXPORT_PREFIX}-{stamp}.json"


class AutosaveSlot:
    """single file holding the latest autosave snapshot."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def write(self, snapshot: dict) -> None:
        """overwrite the slot atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".autosave-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(dumps(snapshot))
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def read(self) -> Optional[dict]:
        """latest snapshot, or None when absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            return loads(self.path.read_text())
        except (OSError, SessionLoadError) as e:
            logging.warning(f"ignoring unreadable autosave at {self.path}: {e}")
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def exists(self) -> bool:
        return self.path.exists()
