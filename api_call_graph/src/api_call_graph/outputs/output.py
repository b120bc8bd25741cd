import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from api_call_graph.errors import OutputDirectoryError
from api_call_graph.graph import CallGraph, to_json_graph
from api_call_graph.method_bodies import MethodBodyExtractor
from api_call_graph.method_filter import MethodFilter
from api_call_graph.models.analysis_models import Endpoint, MethodInfo, RunSummary

logger = logging.getLogger(__name__)

FULL_GRAPH_FILE = "full_call_graph.json"
CONTROLLER_BODIES_FILE = "controller_method_bodies.json"
METHOD_BODIES_SUFFIX = "_method_bodies.json"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")


def safe_filename(name: str) -> str:
    """Replaces every character other than letters, digits, '.', '-' and '_' with '_'."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def endpoint_basename(endpoint: Endpoint) -> str:
    return f"{endpoint.http_method}_{endpoint.path}"


def write_json(path: str, payload) -> None:
    # Serialise first so a bad payload never leaves a half-written file behind
    text = json.dumps(payload, indent=2)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


@dataclass
class GenerationReport:
    endpoints_processed: int = 0
    endpoints_written: int = 0
    written: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    overwritten: list[str] = field(default_factory=list)  # file names claimed by more than one endpoint


# --- Artifact generation -----------------------------------------------------

class ArtifactGenerator:
    """
    Writes the full graph, one subgraph per endpoint, and (when a body
    extractor is given) the method-body bundles. A failed write is logged and
    counted; the remaining artifacts are still written.
    """

    def __init__(self, graph: CallGraph, output_dir: str,
                 body_extractor: Optional[MethodBodyExtractor] = None,
                 filters: Optional[dict[str, MethodFilter]] = None,
                 project_src_path: Optional[str] = None):
        self.graph = graph
        self.output_dir = output_dir
        self.body_extractor = body_extractor
        self.filters = filters or {}
        self.project_src_path = project_src_path.rstrip(os.sep) if project_src_path else None

    def ensure_output_dir(self):
        try:
            os.makedirs(self.output_dir, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(f"Failed to create output directory {self.output_dir}: {e}") from e

    def generate(self, endpoints: Iterable[Endpoint], controller_types: Iterable[str] = ()) -> GenerationReport:
        self.ensure_output_dir()
        report = GenerationReport()

        self._write(FULL_GRAPH_FILE, self.graph.as_dict(), report)

        endpoints = sorted(endpoints, key=lambda e: e.key)
        claimed: dict[str, str] = {}  # file name -> endpoint key
        written_files: set[str] = set()
        for endpoint in endpoints:
            report.endpoints_processed += 1
            basename = endpoint_basename(endpoint)
            filename = safe_filename(basename + ".json")
            if filename in claimed:
                logger.warning(
                    "Endpoints %r and %r both write %s; the later one overwrites it",
                    claimed[filename], endpoint.key, filename,
                )
                report.overwritten.append(filename)
            claimed[filename] = endpoint.key
            subgraph = self.graph.subgraph_from(endpoint.entry_method)
            if self._write(filename, to_json_graph(subgraph), report) and filename not in written_files:
                written_files.add(filename)
                report.endpoints_written += 1

            if self.body_extractor is not None:
                bundle = {
                    "endpoint": endpoint.key,
                    "entryPoint": endpoint.entry_method,
                    "methods": self.method_entries(endpoint.entry_method),
                }
                self._write(safe_filename(basename + METHOD_BODIES_SUFFIX), bundle, report)

        if self.body_extractor is not None:
            mapped = {e.entry_method for e in endpoints}
            self._write(CONTROLLER_BODIES_FILE, self.controller_bundle(controller_types, mapped), report)

        logger.info("Generated call graphs for %d endpoints", report.endpoints_processed)
        return report

    def controller_bundle(self, controller_types: Iterable[str], mapped: set[str]) -> dict:
        controllers = []
        for controller_method in self.body_extractor.find_controller_methods(controller_types):
            if controller_method.full_name in mapped:
                continue
            controllers.append({
                "controllerMethod": controller_method.full_name,
                "methods": self.method_entries(controller_method.full_name),
            })
        return {"controllers": controllers}

    def method_entries(self, entry_point: str) -> list[dict]:
        """
        The ordered `methods` array of a bundle. Bodies flagged by the method
        filters are left out; the entry point itself always stays.
        """
        entries = []
        hierarchy = self.body_extractor.extract_method_hierarchy_with_info(self.graph, entry_point)
        for name, info in hierarchy.items():
            if name != entry_point and self._is_filtered(info):
                continue
            entry = {"name": name, "body": info.body}
            if info.file_path is not None:
                entry["filePath"] = self.relative_path(info.file_path)
            entries.append(entry)
        return entries

    def relative_path(self, path: str) -> str:
        """Paths under the project's src/ folder are written relative to it."""
        if self.project_src_path and path.startswith(self.project_src_path + os.sep):
            return path[len(self.project_src_path) + 1:]
        return path

    def _is_filtered(self, info: MethodInfo) -> bool:
        method_filter = self.filters.get(info.class_name)
        return method_filter is not None and method_filter.should_skip_method_body(info.name, info.descriptor)

    def _write(self, filename: str, payload, report: GenerationReport) -> bool:
        path = os.path.join(self.output_dir, filename)
        try:
            write_json(path, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to write %s: %s", path, e)
            report.failed.append(path)
            return False
        logger.info("Wrote %s", path)
        report.written.append(path)
        return True


# --- Pretty printing ---------------------------------------------------------

def print_summary(summary: RunSummary):
    """
    Human-friendly recap of a run.
    """
    print("\n=== INPUT ===")
    print(f" - classes: {summary.classes_dir}")
    print(f" - units loaded: {summary.units_loaded} ({summary.units_skipped} skipped)")
    print(f" - call edges: {summary.edges}")

    print("\n=== OUTPUT ===")
    print(f" - directory: {summary.output_dir}")
    print(f" - endpoints detected: {summary.endpoints_detected}")
    print(f" - endpoints written: {summary.endpoints_written}")
    if summary.bodies_enabled:
        print(f" - method bodies loaded: {summary.bodies_loaded}")
    else:
        print(" - method bodies: disabled")
    for path in summary.failed_artifacts:
        print(f"   failed: {path}")
