"""
Best-effort JSON recovery for model output.

``load_json`` never raises: it returns ``Recovered`` with the parsed value,
or ``Unrecoverable`` with a reason. Repair itself is delegated to
``json_repair``, which fixes trailing commas, missing commas, bare keys,
single quotes and output truncated mid-structure.

Mismatched nesting (``[`` closed by ``}``) is not guessed at.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from json_repair import repair_json

_CLOSERS = {"}": "{", "]": "["}


@dataclass(frozen=True)
class Recovered:
    value: Any
    repaired: bool = False


@dataclass(frozen=True)
class Unrecoverable:
    reason: str


RecoveryOutcome = Union[Recovered, Unrecoverable]


def load_json(text: str) -> RecoveryOutcome:
    """Strict parse first, repair second."""
    try:
        return Recovered(json.loads(text))
    except json.JSONDecodeError as exc:
        strict_error = _describe(exc)
    except ValueError as exc:
        strict_error = str(exc)

    outcome = recover_json(text)
    if isinstance(outcome, Unrecoverable):
        return Unrecoverable(f"{strict_error}; repair: {outcome.reason}")
    return outcome


def recover_json(text: str) -> RecoveryOutcome:
    if not text or not text.strip():
        return Unrecoverable("empty response")

    mismatch = find_mismatched_bracket(text)
    if mismatch is not None:
        return Unrecoverable(mismatch)

    try:
        value = json.loads(repair_json(text))
    except json.JSONDecodeError as exc:
        return Unrecoverable(_describe(exc))
    except ValueError as exc:
        return Unrecoverable(str(exc))

    # json_repair answers "" when it finds no structure at all
    if not isinstance(value, (dict, list)):
        return Unrecoverable("no JSON object found")
    return Recovered(value, repaired=True)


def find_mismatched_bracket(text: str) -> Optional[str]:
    """Describe the first closer that does not match its opener, if any.

    Brackets inside double-quoted strings are ignored. Unclosed openers are
    fine here; truncated output is left for the repair step to close.
    """
    stack = []
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in _CLOSERS:
            if not stack or stack[-1] != _CLOSERS[ch]:
                return f"mismatched '{ch}' at offset {i}"
            stack.pop()
    return None


def _describe(exc: json.JSONDecodeError) -> str:
    return f"{exc.msg} (line {exc.lineno}, column {exc.colno})"
