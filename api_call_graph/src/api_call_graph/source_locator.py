"""
Finds the original .java file behind a compiled unit and cuts a method body
out of it.

The lookup is heuristic: walk up from the .class file to a build file
(pom.xml / build.gradle), then try the conventional source roots. The body
is matched with a brace-balanced regex, which handles ordinary methods but
not everything (constructors, annotated parameters, very deep nesting);
callers fall back to the tree-sitter index or to the disassembly.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

from api_call_graph.inputs.directory_scanning import read_text
from api_call_graph.models.unit_models import ClassUnit

logger = logging.getLogger(__name__)

PROJECT_ROOT_MARKERS = ("pom.xml", "build.gradle", "build.gradle.kts")
MAX_ROOT_SEARCH_DEPTH = 10
SOURCE_ROOTS = (("src", "main", "java"), ("src",))
SOURCE_EXTENSION = ".java"

# Braces nested inside a body are matched up to this many levels (the body's
# own braces included). Deeper bodies don't match.
MAX_BRACE_DEPTH = 3

_MODIFIERS = r"(?:\b(?:public|protected|private|static|final|synchronized|abstract|default)\b|\s)+"
_RETURN_TYPE = r"[\w<>\[\],.?]+"


def _brace_content(depth: int) -> str:
    content = r"[^{}]"
    for _ in range(depth - 1):
        content = r"(?:[^{}]|\{" + content + r"*\})"
    return content


@lru_cache(maxsize=1024)
def method_body_pattern(method_name: str) -> re.Pattern:
    return re.compile(
        _MODIFIERS
        + _RETURN_TYPE + r"\s+"
        + re.escape(method_name)
        + r"\s*\([^)]*\)\s*(?:throws[^{]*)?"
        + r"\{(" + _brace_content(MAX_BRACE_DEPTH) + r"*)\}"
    )


def extract_method_body(source: str, method_name: str, search_text: Optional[str] = None) -> Optional[str]:
    """
    Body (without the outer braces, stripped) of the first method called
    `method_name` in `source`, or None. Overloads: the first match wins.

    `search_text`, if given, is what gets matched: a copy of `source` of the
    same length with foreign regions blanked out. The body is then cut from
    `source` at the matched offsets.
    """
    if method_name.startswith("<"):
        return None  # <init>/<clinit> have no name in source
    if search_text is not None and len(search_text) != len(source):
        raise ValueError("search_text must line up with source")
    match = method_body_pattern(method_name).search(source if search_text is None else search_text)
    return source[match.start(1):match.end(1)].strip() if match else None


def find_project_root(path: str, markers=PROJECT_ROOT_MARKERS) -> Optional[Path]:
    """Nearest ancestor of `path` holding a build file, searching a bounded number of levels."""
    current = Path(path).resolve().parent
    for _ in range(MAX_ROOT_SEARCH_DEPTH):
        if any((current / marker).exists() for marker in markers):
            return current
        if current.parent == current:
            break
        current = current.parent
    return None


def source_file_name(unit: ClassUnit) -> str:
    """SourceFile hint if the compiler kept it, else the top-level type name + .java"""
    if unit.source_file:
        return unit.source_file
    return unit.simple_name.split("$", 1)[0] + SOURCE_EXTENSION


def candidate_source_paths(unit: ClassUnit, project_root: Path) -> list[Path]:
    package_parts = unit.package.split(".") if unit.package else []
    name = source_file_name(unit)
    return [project_root.joinpath(*root, *package_parts, name) for root in SOURCE_ROOTS]


class SourceLocator:
    """Caches project roots and file contents across the methods of a run."""

    def __init__(self, markers=PROJECT_ROOT_MARKERS):
        self.markers = markers
        self._located: dict[str, Optional[str]] = {}
        self._texts: dict[str, Optional[str]] = {}

    def locate(self, unit: ClassUnit) -> Optional[str]:
        """Path of the unit's source file, or None when there is none to be found."""
        if unit.name in self._located:
            return self._located[unit.name]

        located = None
        root = find_project_root(unit.file_path, self.markers)
        if root is not None:
            for candidate in candidate_source_paths(unit, root):
                if candidate.is_file():
                    located = str(candidate)
                    break
        if located is None:
            logger.debug("No source file for %s", unit.name)
        self._located[unit.name] = located
        return located

    def read(self, path: str) -> Optional[str]:
        if path not in self._texts:
            try:
                self._texts[path] = read_text(path)
            except OSError as e:
                logger.warning("Could not read source file %s: %s", path, e)
                self._texts[path] = None
        return self._texts[path]
