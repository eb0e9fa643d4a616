"""Hook command templating."""

from __future__ import annotations

import re
import shlex

from .types import HookContext


_TOKEN_RE = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*(?:\.[^\s{}]+)?)\s*\}\}")
_DOUBLE_QUOTE_SPECIAL = re.compile(r'[\\"$`]')


def token_values(context: HookContext) -> dict[str, str]:
    values = {
        "operation": str(context.operation),
        "item_type": context.operation.item.value,
        "action": context.operation.action.value,
        "phase": context.phase.value,
        "target_path": context.target_path,
        "item_id": context.item_id or "",
        "timestamp": context.timestamp.isoformat(timespec="seconds"),
    }
    for key, value in context.metadata.items():
        values[f"meta.{key}"] = value
    return values


def _quote_states(template: str) -> list[str]:
    """Shell quote context (``""``, ``"'"`` or ``'"'``) at each index of ``template``."""
    states: list[str] = []
    state = ""
    escaped = False
    for char in template:
        states.append(state)
        if escaped:
            escaped = False
        elif state == "'":
            if char == "'":
                state = ""
        elif char == "\\":
            escaped = True
        elif state == '"':
            if char == '"':
                state = ""
        elif char in "'\"":
            state = char
    states.append(state)
    return states


def _shell_escape(value: str, state: str) -> str:
    if state == "'":
        return value.replace("'", "'\\''")
    if state == '"':
        return _DOUBLE_QUOTE_SPECIAL.sub(r"\\\g<0>", value)
    return shlex.quote(value)


def render_template(value: str, context: HookContext, *, quote: bool = False) -> str:
    """Replace ``{{token}}`` placeholders; unknown tokens stay verbatim.

    With ``quote`` the result is meant for ``/bin/sh``: each value is escaped
    for the quote context its token sits in, so ``"{{target_path}}"`` and a
    bare ``{{target_path}}`` both expand to exactly one word.
    """
    values = token_values(context)
    states = _quote_states(value) if quote else []

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        if not quote:
            return values[name]
        return _shell_escape(values[name], states[match.start()])

    return _TOKEN_RE.sub(_replace, value)


def render_argv(command: str, context: HookContext) -> list[str]:
    return [render_template(part, context) for part in shlex.split(command)]
