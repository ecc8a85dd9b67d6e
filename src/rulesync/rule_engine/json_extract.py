"""Recover JSON payloads from free-text LLM responses.

Models wrap answers in code fences, prepend commentary, or return the JSON as
an encoded string. These helpers strip those layers, then try each top-level
balanced bracket span in turn, falling back to the widest span.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def unwrap_response(text: str | None) -> str | None:
    """Strip a fenced block and one level of JSON string encoding."""
    if not text or not isinstance(text, str):
        return None
    s = text.strip()
    fence = _FENCE_RE.search(s)
    if fence and fence.group(1):
        s = fence.group(1).strip()
    if len(s) >= 2 and s.startswith('"') and s.endswith('"'):
        try:
            decoded = json.loads(s)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, str):
            s = decoded.strip()
    return s


def balanced_spans(s: str, opening: str, closing: str) -> Iterator[str]:
    """Yield each top-level ``opening``...``closing`` span, left to right.

    Brackets inside double-quoted strings (escapes honoured) do not count.
    Quotes are only tracked inside a span; commentary quoting is ignored.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(s):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth:
            in_string = True
        elif ch == opening:
            if depth == 0:
                start = i
            depth += 1
        elif ch == closing and depth:
            depth -= 1
            if depth == 0:
                yield s[start : i + 1]


def _outermost_span(s: str, opening: str, closing: str) -> str | None:
    start = s.find(opening)
    end = s.rfind(closing)
    if start < 0 or end <= start:
        return None
    return s[start : end + 1]


def _first_parsed(s: str, opening: str, closing: str, kind: type) -> Any | None:
    spans = list(balanced_spans(s, opening, closing))
    widest = _outermost_span(s, opening, closing)
    if widest is not None and widest not in spans:
        spans.append(widest)
    for span in spans:
        try:
            parsed = json.loads(span)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, kind):
            return parsed
    return None


def extract_json_array(text: str | None) -> list[Any] | None:
    """First ``[...]`` span of ``text`` that parses as a JSON array, else None."""
    s = unwrap_response(text)
    if s is None:
        return None
    return _first_parsed(s, "[", "]", list)


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """First ``{...}`` span of ``text`` that parses as a JSON object, else None."""
    s = unwrap_response(text)
    if s is None:
        return None
    return _first_parsed(s, "{", "}", dict)


def extract_rules_payload(text: str | None) -> list[Any] | None:
    """Rules list from either a bare array or a ``{"rules": [...]}`` object."""
    s = unwrap_response(text)
    if s is None:
        return None
    if s.lstrip().startswith("{"):
        obj = extract_json_object(s)
        if obj is not None and isinstance(obj.get("rules"), list):
            return obj["rules"]
    return extract_json_array(s)
