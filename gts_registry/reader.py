"""
Entity readers for bulk-loading the store.

This module defines the GtsReader protocol the store consumes, plus:
- GtsFileReader: walks files and directories of JSON documents
- GtsMemoryReader: serves a fixed list of entities (tests, embedding)

Invariants:
    - next() returns None once the reader is exhausted
    - reset() rewinds to the first entity
    - Only entities with a valid GTS ID are produced
    - A file reachable through several paths or symlinks is read once

How to change safely:
    - Protocol changes require updating every reader
    - Unreadable or malformed files are skipped with a warning, never fatal
"""

from __future__ import annotations

import json
import logging
import os
from abc import abstractmethod
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from .config import DEFAULT_CONFIG, GtsConfig
from .entity import JsonEntity, JsonFile

logger = logging.getLogger(__name__)

VALID_EXTENSIONS = (".json", ".jsonc", ".gts")
EXCLUDE_DIRS = ("node_modules", "dist", "build")


@runtime_checkable
class GtsReader(Protocol):
    """Protocol for entity sources.

    Example:
        >>> reader = GtsFileReader(["./schemas"])
        >>> while (entity := reader.next()) is not None:
        ...     print(entity.id)
    """

    @abstractmethod
    def next(self) -> Optional[JsonEntity]:
        """Return the next entity, or None when exhausted."""
        ...

    @abstractmethod
    def read_by_id(self, entity_id: str) -> Optional[JsonEntity]:
        """Look up a single entity on demand, or None if unsupported/absent."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Rewind to the first entity."""
        ...


class GtsFileReader:
    """Reads entities from JSON files and directory trees.

    Files ending in .json, .jsonc or .gts are loaded. A file may hold one
    JSON object or a list of objects; list members are labelled
    '<file>#<index>'.

    Attributes:
        paths: Files or directories to scan ('~/' is expanded)
        config: Identifier field configuration
    """

    def __init__(self, paths: Sequence[str], config: Optional[GtsConfig] = None) -> None:
        self.paths = [os.path.expanduser(p) for p in paths]
        self.config = config or DEFAULT_CONFIG
        self._files: List[str] = []
        self._file_index = 0
        self._pending: List[JsonEntity] = []
        self._initialized = False

    def next(self) -> Optional[JsonEntity]:
        if not self._initialized:
            self._files = self._collect_files()
            self._initialized = True

        while not self._pending and self._file_index < len(self._files):
            self._pending = self._process_file(self._files[self._file_index])
            self._file_index += 1

        if self._pending:
            return self._pending.pop(0)
        return None

    def read_by_id(self, entity_id: str) -> Optional[JsonEntity]:
        # Files are only scanned sequentially
        return None

    def reset(self) -> None:
        self._file_index = 0
        self._pending = []
        self._initialized = False

    def _collect_files(self) -> List[str]:
        seen = set()
        collected: List[str] = []

        def add(file_path: str) -> None:
            if not file_path.lower().endswith(VALID_EXTENSIONS):
                return
            real_path = os.path.realpath(file_path)
            if real_path not in seen:
                seen.add(real_path)
                collected.append(real_path)

        for path in self.paths:
            abs_path = os.path.abspath(path)
            if os.path.isdir(abs_path):
                for root, dirs, files in os.walk(abs_path):
                    dirs[:] = sorted(d for d in dirs if d not in EXCLUDE_DIRS)
                    for name in sorted(files):
                        add(os.path.join(root, name))
            elif os.path.isfile(abs_path):
                add(abs_path)
            else:
                logger.warning(f"Path does not exist, skipping: {path}")

        logger.debug(f"Collected {len(collected)} file(s) from {len(self.paths)} path(s)")
        return collected

    def _process_file(self, file_path: str) -> List[JsonEntity]:
        try:
            with open(file_path, encoding="utf-8") as f:
                content = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable JSON file {file_path}: {e}")
            return []

        json_file = JsonFile(path=file_path, name=os.path.basename(file_path), content=content)
        entities: List[JsonEntity] = []

        if isinstance(content, list):
            for idx, item in enumerate(content):
                if isinstance(item, dict):
                    entity = JsonEntity.from_content(item, self.config, json_file, idx)
                    if entity.gts_id is not None:
                        entities.append(entity)
        elif isinstance(content, dict):
            entity = JsonEntity.from_content(content, self.config, json_file)
            if entity.gts_id is not None:
                entities.append(entity)

        return entities


class GtsMemoryReader:
    """Serves a fixed collection of entities.

    Unlike GtsFileReader it supports read_by_id, which lets a store resolve
    entities lazily instead of preloading them.
    """

    def __init__(self, entities: Iterable[JsonEntity]) -> None:
        self._entities = [e for e in entities if e.gts_id is not None]
        self._by_id: Dict[str, JsonEntity] = {e.gts_id.id: e for e in self._entities}
        self._index = 0

    def next(self) -> Optional[JsonEntity]:
        if self._index >= len(self._entities):
            return None
        entity = self._entities[self._index]
        self._index += 1
        return entity

    def read_by_id(self, entity_id: str) -> Optional[JsonEntity]:
        return self._by_id.get(entity_id)

    def reset(self) -> None:
        self._index = 0
