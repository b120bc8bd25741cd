# --- Directory scanning ------------------------------------------------------
import logging
import os
from dataclasses import dataclass, field

from api_call_graph.classfile import parse_class_file
from api_call_graph.errors import ClassFormatError
from api_call_graph.models.unit_models import ClassUnit

logger = logging.getLogger(__name__)

CLASS_FILE_EXTENSION = ".class"


def read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


@dataclass
class ScanResult:
    """Everything the reader found under one classes directory."""
    root: str
    units: list[ClassUnit] = field(default_factory=list)
    paths: dict[str, str] = field(default_factory=dict)  # class name -> .class path
    skipped: list[str] = field(default_factory=list)  # files that failed to parse


def scan_class_files(root_dir: str) -> list[str]:
    """
    Recursively lists every .class file under `root_dir` (absolute paths,
    sorted so runs are reproducible).
    """
    found = []
    for dirpath, dirnames, filenames in os.walk(root_dir):
        dirnames.sort()
        for fn in sorted(filenames):
            if fn.endswith(CLASS_FILE_EXTENSION):
                found.append(os.path.abspath(os.path.join(dirpath, fn)))
    return found


def load_units(root_dir: str) -> ScanResult:
    """
    Parses every class file under `root_dir`. A file that can't be read or
    parsed is logged and skipped; the walk carries on.
    """
    result = ScanResult(root=os.path.abspath(root_dir))
    for path in scan_class_files(root_dir):
        try:
            unit = parse_class_file(path)
        except (ClassFormatError, OSError) as e:
            logger.warning("Failed to load %s: %s", path, e)
            result.skipped.append(path)
            continue
        if unit.name in result.paths:
            logger.warning("Duplicate class %s in %s (already loaded from %s)", unit.name, path, result.paths[unit.name])
        result.units.append(unit)
        result.paths[unit.name] = path

    logger.info("Loaded %d units from %s (%d skipped)", len(result.units), root_dir, len(result.skipped))
    return result
