"""
The analysis as an explicit sequence of stages over one classes directory.

    load_units -> extract -> resolve_interfaces -> generate_artifacts

Each stage checks that the previous one ran: interface resolution needs
every unit read and every raw edge recorded, and artifacts need the
resolved graph.
"""

import logging
import os
from typing import Optional

from api_call_graph.call_edges import extract_call_edges
from api_call_graph.config import AnalysisConfig
from api_call_graph.endpoints import EndpointDetector
from api_call_graph.errors import BodyExtractionUnavailable, ClassFormatError, InputDirectoryError, PipelineStageError
from api_call_graph.graph import CallGraph
from api_call_graph.inputs.directory_scanning import ScanResult, load_units
from api_call_graph.interfaces import build_interface_map, resolve_interface_calls
from api_call_graph.method_bodies import MethodBodyExtractor
from api_call_graph.method_filter import MethodFilter
from api_call_graph.models.analysis_models import Endpoint, RunSummary
from api_call_graph.outputs.output import ArtifactGenerator, GenerationReport

logger = logging.getLogger(__name__)


def guess_project_src_path(classes_dir: str) -> Optional[str]:
    """<project>/target/classes -> <project>/src, if that directory exists."""
    project_dir = os.path.dirname(os.path.dirname(os.path.abspath(classes_dir)))
    src_dir = os.path.join(project_dir, "src")
    return src_dir if os.path.isdir(src_dir) else None


class AnalysisPipeline:
    """Owns the unit set, the call graph and the interface map of one run."""

    def __init__(self, config: AnalysisConfig):
        self.config = config
        self.scan: Optional[ScanResult] = None
        self.graph = CallGraph()
        self.interface_map: Optional[dict[str, set[str]]] = None
        self.detector = EndpointDetector()
        self._extracted = False
        self._resolved = False

    # -- stages ---------------------------------------------------------------

    def load_units(self) -> ScanResult:
        if not os.path.isdir(self.config.classes_dir):
            raise InputDirectoryError(f"Provided classes path is not a directory: {self.config.classes_dir}")
        self.scan = load_units(self.config.classes_dir)
        return self.scan

    def extract(self) -> list[Endpoint]:
        """Call edges and endpoints, unit by unit. A unit whose bytecode won't decode is skipped."""
        if self.scan is None:
            raise PipelineStageError("extract() needs load_units() first")
        if self._extracted:
            raise PipelineStageError("extract() already ran")

        for unit in self.scan.units:
            try:
                extract_call_edges(unit, self.graph, self.config.excluded_prefixes)
            except ClassFormatError as e:
                logger.warning("Skipping calls of %s: %s", unit.name, e)
            self.detector.scan_unit(unit)

        self._extracted = True
        logger.info("Detected %d REST endpoints", len(self.detector.endpoints))
        return self.detector.endpoints

    def resolve_interfaces(self) -> int:
        """Runs exactly once, after extraction has seen every unit."""
        if not self._extracted:
            raise PipelineStageError("resolve_interfaces() needs extract() first")
        if self._resolved:
            raise PipelineStageError("resolve_interfaces() already ran; a second pass would expand twice")

        self.interface_map = build_interface_map(self.scan.units)
        added = resolve_interface_calls(self.graph, self.interface_map)
        self._resolved = True
        return added

    def build_body_extractor(self) -> Optional[MethodBodyExtractor]:
        """The body extractor, or None if it can't be set up (bodies are then skipped)."""
        try:
            extractor = MethodBodyExtractor(excluded_prefixes=self.config.excluded_prefixes)
        except BodyExtractionUnavailable as e:
            logger.warning("Method body extraction disabled: %s", e)
            return None
        extractor.load(self.scan.units)
        return extractor

    def generate_artifacts(self, body_extractor: Optional[MethodBodyExtractor] = None) -> GenerationReport:
        if not self._resolved:
            raise PipelineStageError("generate_artifacts() needs resolve_interfaces() first")

        filters = None
        if self.config.filter_generated_methods:
            filters = {unit.name: MethodFilter.for_unit(unit) for unit in self.scan.units}

        generator = ArtifactGenerator(
            self.graph,
            self.config.output_dir,
            body_extractor=body_extractor,
            filters=filters,
            project_src_path=guess_project_src_path(self.config.classes_dir),
        )
        return generator.generate(self.detector.endpoints, self.detector.controller_types)

    # -- all of it ------------------------------------------------------------

    def run(self) -> RunSummary:
        """
        Runs every stage. InputDirectoryError / OutputDirectoryError propagate:
        those are the only fatal failures.
        """
        summary = RunSummary(
            classes_dir=os.path.abspath(self.config.classes_dir),
            output_dir=os.path.abspath(self.config.output_dir),
        )
        scan = self.load_units()
        summary.units_loaded = len(scan.units)
        summary.units_skipped = len(scan.skipped)

        endpoints = self.extract()
        self.resolve_interfaces()
        summary.edges = sum(1 for _ in self.graph.edges())
        summary.endpoints_detected = len(endpoints)

        body_extractor = self.build_body_extractor() if self.config.extract_method_bodies else None
        if body_extractor is not None:
            summary.bodies_enabled = True
            summary.bodies_loaded = len(body_extractor.method_infos)

        report = self.generate_artifacts(body_extractor)
        summary.endpoints_written = report.endpoints_written
        summary.failed_artifacts = list(report.failed)
        return summary
