"""Inline directives that override the default sync policy for a file.

``@kody-sync`` forces a file to sync even when repository sync is disabled;
``@kody-ignore`` removes the file's rule and keeps it out of sync. Markers are
only honoured near the top or bottom of a file, where header/footer comments live.
"""

from __future__ import annotations

import re

SYNC_MARKER = "@kody-sync"
IGNORE_MARKER = "@kody-ignore"

WINDOW_SIZE = 10
SHORT_FILE_LINES = 2 * WINDOW_SIZE


def _marker_pattern(token: str) -> re.Pattern[str]:
    # Boundary before '@' and after the token: "word@kody-sync" and "@kody-sync-x" never match.
    return re.compile(
        rf"(?:^|[^a-zA-Z0-9._-]){re.escape(token)}(?![a-zA-Z0-9_-])",
        re.IGNORECASE,
    )


_SYNC_RE = _marker_pattern(SYNC_MARKER)
_IGNORE_RE = _marker_pattern(IGNORE_MARKER)


def scan_windows(content: str) -> tuple[list[str], list[str]]:
    """Return the (head, tail) line windows that are scanned for markers.

    Files of at most 20 lines are split into two non-overlapping halves;
    longer files contribute their first 10 and last 10 lines.
    """
    lines = content.strip().split("\n")
    total = len(lines)
    if total <= SHORT_FILE_LINES:
        half = total // 2
        return lines[:half], lines[half:]
    return lines[:WINDOW_SIZE], lines[-WINDOW_SIZE:]


def _has_marker(content: str | None, pattern: re.Pattern[str]) -> bool:
    if not content or not isinstance(content, str) or not content.strip():
        return False
    head, tail = scan_windows(content)
    return any(pattern.search(line.strip()) for line in head) or any(
        pattern.search(line.strip()) for line in tail
    )


def should_force_sync(content: str | None) -> bool:
    return _has_marker(content, _SYNC_RE)


def should_ignore(content: str | None) -> bool:
    return _has_marker(content, _IGNORE_RE)
