"""Code-kind detection and test filename normalization.

The test writer cannot rely on the model to pick the right extension, so
every batch of proposals is normalized after generation: if ANY changed file
looks like UI component code, every proposal is moved to the UI extension
(``.test.tsx``); otherwise to the plain one (``.test.ts``).  The same holds
for ``.spec.*`` names and the JavaScript pair (``.jsx`` / ``.js``).  Only
test-file suffixes are rewritten: helpers such as ``jest.setup.js`` and
declaration files (``globals.d.ts``) keep their names.

This is a heuristic.  A PR that mixes UI and plain code gets UI extensions
for all of its tests.  Swap in another :class:`FileKindPolicy` rather than
growing the rules here.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from prflow.core.state import ChangedFile


class CodeKind(StrEnum):
    UI = "ui"
    PLAIN = "plain"


UI_EXTENSIONS: tuple[str, ...] = (".tsx", ".jsx")
UI_IMPORT_MARKERS: tuple[str, ...] = ("import React", 'from "react"', "from 'react'")
UI_DIR_MARKERS: tuple[str, ...] = ("app/",)

# (plain suffix, ui suffix)
_EXTENSION_PAIRS: tuple[tuple[str, str], ...] = (
    (".test.ts", ".test.tsx"),
    (".spec.ts", ".spec.tsx"),
    (".test.js", ".test.jsx"),
    (".spec.js", ".spec.jsx"),
)


def is_ui_file(file: ChangedFile) -> bool:
    """True if a single changed file looks like UI component code."""
    if file.content is None:
        return False
    return (
        file.filename.endswith(UI_EXTENSIONS)
        or any(marker in file.content for marker in UI_IMPORT_MARKERS)
        or any(marker in file.filename for marker in UI_DIR_MARKERS)
    )


def detect_code_kind(changed_files: Iterable[ChangedFile]) -> CodeKind:
    """UI if any changed file matches, plain otherwise."""
    return CodeKind.UI if any(is_ui_file(f) for f in changed_files) else CodeKind.PLAIN


def matches_kind(filename: str, kind: CodeKind) -> bool:
    """True if *filename* carries a test suffix of *kind*."""
    index = 1 if kind == CodeKind.UI else 0
    return filename.endswith(tuple(pair[index] for pair in _EXTENSION_PAIRS))


def normalize_test_filename(filename: str, kind: CodeKind) -> str:
    """Rewrite the test suffix of *filename* toward *kind*.

    ``sum.test.ts`` becomes ``sum.test.tsx`` for UI code and back for plain
    code.  Filenames without a test suffix are returned unchanged.
    """
    if matches_kind(filename, kind):
        return filename
    source, target = (0, 1) if kind == CodeKind.UI else (1, 0)
    for pair in _EXTENSION_PAIRS:
        if filename.endswith(pair[source]):
            return filename[: -len(pair[source])] + pair[target]
    return filename


class FileKindPolicy:
    """Default detection + normalization policy used by the test writer."""

    def detect(self, changed_files: Iterable[ChangedFile]) -> CodeKind:
        return detect_code_kind(changed_files)

    def normalize(self, filename: str, kind: CodeKind) -> str:
        return normalize_test_filename(filename, kind)
