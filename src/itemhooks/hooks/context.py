"""Operation context builder."""

from __future__ import annotations

from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from .errors import EmptyTargetPathError
from .types import HookContext, HookOperation, Phase


def build_context(
    operation: HookOperation,
    phase: Phase,
    target_path: str,
    item_id: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> HookContext:
    if not target_path:
        raise EmptyTargetPathError("target_path 不可為空")
    frozen = MappingProxyType({str(key): "" if value is None else str(value) for key, value in (metadata or {}).items()})
    return HookContext(
        operation=operation,
        phase=phase,
        target_path=str(target_path),
        item_id=str(item_id) if item_id is not None else None,
        metadata=frozen,
        timestamp=now or datetime.now().astimezone(),
    )


def context_payload(context: HookContext) -> dict[str, Any]:
    """JSON document written to the hook's stdin."""
    payload: dict[str, Any] = {
        "operation": str(context.operation),
        "item_type": context.operation.item.value,
        "action": context.operation.action.value,
        "phase": context.phase.value,
        "target_path": context.target_path,
        "timestamp": context.timestamp.isoformat(timespec="seconds"),
        "metadata": dict(context.metadata),
    }
    if context.item_id is not None:
        payload["item_id"] = context.item_id
    return payload
