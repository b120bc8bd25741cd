"""
Recovers a readable body for every loaded method.

Two tiers: the bytecode disassembly is always there; when the original .java
file can be located the source text replaces it (regex first, then the
tree-sitter index for what the regex can't match). Bodies are then served in
call-hierarchy order for an entry point.
"""

import logging
from typing import Iterable, Optional

from api_call_graph.bytecode import render
from api_call_graph.call_edges import DEFAULT_EXCLUDED_PREFIXES, is_excluded
from api_call_graph.errors import ClassFormatError
from api_call_graph.graph import CallGraph
from api_call_graph.indexer import JavaSourceIndex
from api_call_graph.models.analysis_models import PLACEHOLDER_BODY, ControllerMethod, MethodInfo
from api_call_graph.models.unit_models import ACC_BRIDGE, ACC_SYNTHETIC, ClassUnit, MethodDecl, method_id, split_method_id
from api_call_graph.source_locator import SourceLocator, extract_method_body

logger = logging.getLogger(__name__)


def is_controller_class(class_name: str) -> bool:
    """Name-based fallback for controllers that carry no (retained) annotation."""
    return ".controllers." in class_name or class_name.endswith("Controller")


class MethodBodyExtractor:
    """
    Holds one MethodInfo per method identifier for the lifetime of a run.
    Overloads share an identifier; the first declaration with code wins.
    """

    def __init__(self, source_index: Optional[JavaSourceIndex] = None,
                 locator: Optional[SourceLocator] = None,
                 excluded_prefixes: Iterable[str] = DEFAULT_EXCLUDED_PREFIXES):
        # JavaSourceIndex() raises BodyExtractionUnavailable without a grammar
        self.source_index = source_index if source_index is not None else JavaSourceIndex()
        self.locator = locator if locator is not None else SourceLocator()
        self.excluded_prefixes = tuple(excluded_prefixes)
        self.method_bodies: dict[str, str] = {}  # disassembly, keyed by method identifier
        self.method_infos: dict[str, MethodInfo] = {}
        self.source_hits = 0

    def load(self, units: Iterable[ClassUnit]) -> int:
        """Renders and reconciles bodies for every method of `units`. Returns the count loaded."""
        unit_count = 0
        for unit in units:
            unit_count += 1
            try:
                self._load_unit(unit)
            except ClassFormatError as e:
                logger.warning("Skipping bodies of %s: %s", unit.name, e)
        logger.info(
            "Loaded %d method bodies from %d units (%d from source)",
            len(self.method_infos), unit_count, self.source_hits,
        )
        return len(self.method_infos)

    def _load_unit(self, unit: ClassUnit):
        """Renders every method of `unit` first; nothing is stored if one of them fails to decode."""
        source_path = self.locator.locate(unit)
        source = self.locator.read(source_path) if source_path else None

        bodies: dict[str, str] = {}
        infos: dict[str, MethodInfo] = {}
        for method in unit.methods:
            identifier = method_id(unit.name, method.name)
            if bodies.get(identifier) or self.method_bodies.get(identifier):
                continue

            disassembly = render(method, unit.constant_pool)
            bodies[identifier] = disassembly

            source_body = self._source_body(unit, method, source, source_path) if source else None

            infos[identifier] = MethodInfo(
                full_name=identifier,
                name=method.name,
                descriptor=method.descriptor,
                class_name=unit.name,
                access=method.access,
                file_path=source_path if source_body is not None else unit.file_path,
                body=source_body if source_body is not None else disassembly,
            )

        self.method_bodies.update(bodies)
        self.method_infos.update(infos)
        self.source_hits += sum(1 for info in infos.values() if info.file_path == source_path)

    def _source_body(self, unit: ClassUnit, method: MethodDecl, source: str, source_path: str) -> Optional[str]:
        """
        Regex over the text the type itself declares (nested, local and
        anonymous types blanked out), then the syntax tree. Types the file
        doesn't declare by name (anonymous, local) get no source body.
        """
        own_text = self.source_index.class_text(source, source_path, unit.name)
        if own_text is None:
            return None
        body = extract_method_body(source, method.name, search_text=own_text)
        if body is None:
            body = self.source_index.find_method_body(source, source_path, unit.name, method.name)
        return body

    # -- Hierarchy ------------------------------------------------------------

    def ordered_methods(self, call_graph: CallGraph, entry_point: str) -> list[str]:
        """
        Pre-order DFS from `entry_point`: callees in sorted order, each method
        once, platform callees pruned. Uses an explicit stack; the order is
        the same as the recursive walk.
        """
        ordered: list[str] = []
        visited: set[str] = set()
        stack = [entry_point]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            ordered.append(current)
            callees = sorted(
                c for c in call_graph.get_callees(current)
                if c not in visited and not is_excluded(c, self.excluded_prefixes)
            )
            stack.extend(reversed(callees))
        return ordered

    def extract_method_hierarchy(self, call_graph: CallGraph, entry_point: str) -> dict[str, str]:
        """method identifier -> body text, in call-hierarchy order"""
        return {
            name: info.body
            for name, info in self.extract_method_hierarchy_with_info(call_graph, entry_point).items()
        }

    def extract_method_hierarchy_with_info(self, call_graph: CallGraph, entry_point: str) -> dict[str, MethodInfo]:
        """
        method identifier -> MethodInfo, in call-hierarchy order. Methods we
        hold no body for (outside the analysed tree) get a placeholder.
        """
        result: dict[str, MethodInfo] = {}
        for name in self.ordered_methods(call_graph, entry_point):
            info = self.method_infos.get(name)
            if info is None:
                owner, simple = split_method_id(name)
                info = MethodInfo(
                    full_name=name,
                    name=simple,
                    descriptor="()",
                    class_name=owner,
                    access=0,
                    file_path=None,
                    body=PLACEHOLDER_BODY,
                )
            result[name] = info
        return result

    def find_controller_methods(self, controller_types: Iterable[str] = ()) -> list[ControllerMethod]:
        """
        Methods of controller types: annotated ones (`controller_types`) or
        ones whose name looks like a controller. Constructors, static
        initialisers and compiler-generated methods are left out.
        """
        annotated = set(controller_types)
        found = []
        for info in self.method_infos.values():
            if info.class_name not in annotated and not is_controller_class(info.class_name):
                continue
            if info.name.startswith("<") or info.access & (ACC_SYNTHETIC | ACC_BRIDGE):
                continue
            found.append(ControllerMethod(info.full_name, info.name, info.class_name))
        return sorted(found, key=lambda m: m.full_name)
