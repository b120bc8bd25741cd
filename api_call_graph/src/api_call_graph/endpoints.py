"""
Detects Spring-style HTTP endpoints from annotations.

A type counts as a controller when it carries an annotation whose simple
name ends in "Controller" (@Controller, @RestController). Each of its
methods carrying a mapping annotation becomes an Endpoint keyed by
"<VERB> <path>". Two methods mapping to the same key: the later one wins.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from api_call_graph.models.analysis_models import Endpoint
from api_call_graph.models.unit_models import Annotation, ClassUnit, EnumValue, MethodDecl, method_id

logger = logging.getLogger(__name__)

VERB_BY_ANNOTATION = {
    "GetMapping": "GET",
    "PostMapping": "POST",
    "PutMapping": "PUT",
    "DeleteMapping": "DELETE",
    "PatchMapping": "PATCH",
    "RequestMapping": "REQUEST",
}


@dataclass
class _MethodScan:
    """Per-method scan state, reset for every method."""
    is_rest_mapped: bool = False
    http_method: str = "UNKNOWN"
    path: str = ""


def _first(value):
    """Annotation arrays (String[] value() etc.) -> their first element."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def is_controller_marker(annotation: Annotation) -> bool:
    return annotation.simple_name.endswith("Controller")


def _handle_mapping(scan: _MethodScan, annotation: Annotation):
    scan.is_rest_mapped = True
    scan.http_method = VERB_BY_ANNOTATION[annotation.simple_name]

    # @RequestMapping(method = RequestMethod.POST) names the verb explicitly
    verb = _first(annotation.values.get("method"))
    if isinstance(verb, EnumValue):
        scan.http_method = verb.const_name

    for attribute in ("path", "value"):
        path = _first(annotation.values.get(attribute))
        if isinstance(path, str):
            scan.path = path
            break


# annotation simple name -> handler(scan, annotation)
ANNOTATION_HANDLERS: dict[str, Callable[[_MethodScan, Annotation], None]] = {
    name: _handle_mapping for name in VERB_BY_ANNOTATION
}


class EndpointDetector:
    """
    Per-unit state machine: visit_unit() resets the controller flag,
    visit_method() scans one method's annotations and registers an endpoint
    when both the type and the method qualify.
    """

    def __init__(self):
        self._endpoints: dict[str, Endpoint] = {}
        self.controller_types: set[str] = set()
        self._current_unit: Optional[str] = None
        self._is_controller = False

    def visit_unit(self, unit: ClassUnit):
        self._current_unit = unit.name
        self._is_controller = any(is_controller_marker(a) for a in unit.annotations)
        if self._is_controller:
            self.controller_types.add(unit.name)

    def visit_method(self, method: MethodDecl) -> Optional[Endpoint]:
        if self._current_unit is None:
            raise RuntimeError("visit_unit() must be called before visit_method()")

        scan = _MethodScan()
        for annotation in method.annotations:
            handler = ANNOTATION_HANDLERS.get(annotation.simple_name)
            if handler is not None:
                handler(scan, annotation)

        if not (self._is_controller and scan.is_rest_mapped):
            return None

        endpoint = Endpoint(scan.http_method, scan.path, method_id(self._current_unit, method.name))
        previous = self._endpoints.get(endpoint.key)
        if previous is not None:
            logger.debug("Endpoint %s: %s replaces %s", endpoint.key, endpoint.entry_method, previous.entry_method)
        self._endpoints[endpoint.key] = endpoint
        return endpoint

    def scan_unit(self, unit: ClassUnit) -> list[Endpoint]:
        self.visit_unit(unit)
        found = [self.visit_method(m) for m in unit.methods]
        return [e for e in found if e is not None]

    def scan(self, units: Iterable[ClassUnit]) -> list[Endpoint]:
        for unit in units:
            self.scan_unit(unit)
        return self.endpoints

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints.values())

    def entry_methods(self) -> set[str]:
        return {e.entry_method for e in self._endpoints.values()}
