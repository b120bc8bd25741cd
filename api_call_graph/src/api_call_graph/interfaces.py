import logging
from typing import Iterable

from api_call_graph.graph import CallGraph
from api_call_graph.models.unit_models import ClassUnit, split_method_id

logger = logging.getLogger(__name__)


def build_interface_map(units: Iterable[ClassUnit]) -> dict[str, set[str]]:
    """interface name -> names of every loaded class that declares it."""
    interface_map: dict[str, set[str]] = {}
    for unit in units:
        for interface in unit.interfaces:
            interface_map.setdefault(interface, set()).add(unit.name)
    return interface_map


def resolve_interface_calls(graph: CallGraph, interface_map: dict[str, set[str]]) -> int:
    """
    For every edge whose callee lives on a known interface, adds one edge per
    implementation with the same member name. The edge to the interface
    method stays.

    Needs the complete interface map, i.e. run it once, after every unit has
    been read. Returns the number of edges added.
    """
    expanded: dict[str, set[str]] = {}
    added = 0
    for caller in graph.all_methods():
        original = graph.get_callees(caller)
        callees = set(original)
        for callee in original:
            owner, name = split_method_id(callee)
            callees.update(f"{impl}.{name}" for impl in interface_map.get(owner, ()))
        expanded[caller] = callees
        added += len(callees) - len(original)

    graph.replace_edges(expanded)
    logger.info("Interface resolution added %d edges", added)
    return added
