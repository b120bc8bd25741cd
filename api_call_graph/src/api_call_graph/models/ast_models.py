# --- Data models for the Java source index -----------------------------------
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SourceMethod:
    """A method or constructor declaration found in a .java file."""
    name: str  # e.g. "addUser", or "<init>" for constructors
    params: list[str]  # param type/name strings (lightweight)
    line: int
    col: int
    body: Optional[str]  # text between the outer braces, stripped; None for abstract methods


@dataclass
class SourceClass:
    """A type declared in a .java file."""
    simple_name: str  # e.g. "UserService"
    binary_name: str  # name as the compiler writes it, e.g. "com.acme.Outer$Inner"
    line: int
    col: int
    methods: dict[str, list[SourceMethod]] = field(default_factory=dict)  # name -> [overloads]
    start_byte: int = 0
    end_byte: int = 0
    # byte spans inside [start_byte, end_byte) that belong to other types
    # (nested, local, anonymous)
    foreign_spans: list[tuple[int, int]] = field(default_factory=list)
