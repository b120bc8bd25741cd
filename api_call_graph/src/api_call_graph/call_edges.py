import logging
from typing import Callable, Iterable

from api_call_graph.bytecode import decode
from api_call_graph.graph import CallGraph
from api_call_graph.models.unit_models import ClassUnit, Instruction, method_id

logger = logging.getLogger(__name__)

# Callee owners under these prefixes are platform code: no body to analyse.
DEFAULT_EXCLUDED_PREFIXES = ("java.", "javax.", "jdk.", "sun.")


def is_excluded(identifier: str, prefixes: Iterable[str]) -> bool:
    return identifier.startswith(tuple(prefixes))


def _record_call(graph: CallGraph, caller: str, instruction: Instruction, prefixes: tuple[str, ...]):
    ref = instruction.operands[0]
    callee = method_id(ref.owner, ref.name)
    if not is_excluded(callee, prefixes):
        graph.add_edge(caller, callee)


# mnemonic -> handler(graph, caller, instruction, excluded_prefixes)
# invokedynamic is deliberately absent: lambda targets are not followed.
INSTRUCTION_HANDLERS: dict[str, Callable] = {
    "invokevirtual": _record_call,
    "invokespecial": _record_call,
    "invokestatic": _record_call,
    "invokeinterface": _record_call,
}


def extract_call_edges(unit: ClassUnit, graph: CallGraph,
                       excluded_prefixes: Iterable[str] = DEFAULT_EXCLUDED_PREFIXES) -> int:
    """
    Adds a caller -> callee edge for every invocation instruction in every
    method of `unit`. Returns how many call instructions were seen (including
    the excluded ones).

    Every method is decoded before the first edge is added: a unit whose
    bytecode raises ClassFormatError leaves the graph untouched.
    """
    prefixes = tuple(excluded_prefixes)
    decoded = [
        (method_id(unit.name, method.name), list(decode(method.code, unit.constant_pool)))
        for method in unit.methods
        if method.code is not None
    ]

    calls = 0
    for caller, instructions in decoded:
        for instruction in instructions:
            handler = INSTRUCTION_HANDLERS.get(instruction.mnemonic)
            if handler is not None:
                handler(graph, caller, instruction, prefixes)
                calls += 1
    logger.debug("%s: %d call instructions", unit.name, calls)
    return calls
