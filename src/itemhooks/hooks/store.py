"""In-memory hook configuration store."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from .pattern import matches
from .types import WILDCARD, HookDefinition, HookOperation, Phase


logger = logging.getLogger(__name__)

_IndexKey = tuple[Phase, str, str]


@dataclass(frozen=True)
class _Generation:
    number: int
    definitions: tuple[HookDefinition, ...] = ()
    by_id: dict[str, HookDefinition] = field(default_factory=dict)
    index: dict[_IndexKey, tuple[tuple[int, HookDefinition], ...]] = field(default_factory=dict)


def _index_key(definition: HookDefinition) -> _IndexKey:
    selector = definition.operation
    item = selector.item.value if selector.item else WILDCARD
    action = selector.action.value if selector.action else WILDCARD
    return (definition.phase, item, action)


def _lookup_keys(operation: HookOperation, phase: Phase) -> list[_IndexKey]:
    item = operation.item.value
    action = operation.action.value
    return [
        (phase, item, action),
        (phase, item, WILDCARD),
        (phase, WILDCARD, action),
        (phase, WILDCARD, WILDCARD),
    ]


def _build_generation(number: int, definitions: Iterable[HookDefinition]) -> _Generation:
    ordered = tuple(definitions)
    by_id: dict[str, HookDefinition] = {}
    buckets: dict[_IndexKey, list[tuple[int, HookDefinition]]] = {}
    for position, definition in enumerate(ordered):
        if definition.id in by_id:
            raise ValueError(f"hook id 重複：{definition.id}")
        by_id[definition.id] = definition
        buckets.setdefault(_index_key(definition), []).append((position, definition))
    index = {key: tuple(entries) for key, entries in buckets.items()}
    return _Generation(number=number, definitions=ordered, by_id=by_id, index=index)


class HookConfigStore:
    """Holds one immutable generation of hook definitions.

    ``load`` builds the next generation completely and installs it with a
    single reference swap, so readers see either the old or the new set.
    """

    def __init__(self, definitions: Iterable[HookDefinition] = ()) -> None:
        self._write_lock = threading.Lock()
        self._generation = _build_generation(0, definitions)

    @property
    def generation(self) -> int:
        return self._generation.number

    def load(self, definitions: Iterable[HookDefinition]) -> None:
        with self._write_lock:
            next_generation = _build_generation(self._generation.number + 1, definitions)
            self._generation = next_generation
        logger.debug("Hook 設定已載入：generation=%s count=%s", next_generation.number, len(next_generation.definitions))

    def definitions(self) -> tuple[HookDefinition, ...]:
        return self._generation.definitions

    def get(self, definition_id: str) -> HookDefinition | None:
        return self._generation.by_id.get(definition_id)

    def __len__(self) -> int:
        return len(self._generation.definitions)

    def find_matching(self, operation: HookOperation, phase: Phase, target_path: str) -> list[HookDefinition]:
        snapshot = self._generation
        if not snapshot.index:
            return []
        candidates: list[tuple[int, HookDefinition]] = []
        for key in _lookup_keys(operation, phase):
            candidates.extend(snapshot.index.get(key, ()))
        candidates.sort(key=lambda entry: entry[0])
        return [
            definition
            for _, definition in candidates
            if definition.enabled and matches(definition.pattern, target_path)
        ]
