"""Appends a problem's evaluation harness to user code."""
from __future__ import annotations

from typing import Mapping

from judge.languages import get_language_class
from judge.engine.errors import UnsupportedLanguage

HARNESS_START = '--- HARNESS START ---'
HARNESS_END = '--- HARNESS END ---'


def resolve_harness(harness, language: str) -> str:
    """Pick the harness text for *language*.

    A plain string applies to every language; a mapping is looked up by
    language and yields ``''`` when the language has no entry.
    """
    if isinstance(harness, Mapping):
        raw = harness.get(language) or ''
    else:
        raw = harness or ''
    return str(raw).strip()


def compose(user_code: str, language: str, problem, comment_marker: str | None = None) -> str:
    """Return the single executable source for *user_code* on *problem*.

    *comment_marker* overrides the registered adapter's marker; the
    orchestrator passes the marker of the adapter it actually runs.
    """
    if comment_marker is None:
        adapter_cls = get_language_class(language)
        if adapter_cls is None:
            raise UnsupportedLanguage(language)
        comment_marker = adapter_cls.COMMENT_MARKER

    harness = resolve_harness(getattr(problem, 'harness', ''), language)
    if not harness:
        return user_code

    return (
        f"{user_code}\n"
        f"{comment_marker} {HARNESS_START}\n"
        f"{harness}\n"
        f"{comment_marker} {HARNESS_END}"
    )
