# --- Data models for analysis results ---------------------------------------
from dataclasses import dataclass, field
from typing import Optional

PLACEHOLDER_BODY = "// Method body not available (external library or JDK method)"


@dataclass(frozen=True)
class Endpoint:
    """An HTTP-exposed controller method."""
    http_method: str  # "GET", "POST", ..., "REQUEST" when the verb is unspecified
    path: str  # e.g. "/users/{id}"
    entry_method: str  # method identifier, e.g. "com.acme.UserController.getUser"

    @property
    def key(self) -> str:
        return f"{self.http_method} {self.path}"


@dataclass
class MethodInfo:
    """A method plus the best body text we could recover for it."""
    full_name: str  # method identifier
    name: str  # simple name
    descriptor: str
    class_name: str
    access: int
    file_path: Optional[str]  # source file if located, else the .class file; None if unknown
    body: str


@dataclass(frozen=True)
class ControllerMethod:
    full_name: str
    method_name: str
    controller_name: str

    def __str__(self) -> str:
        return self.full_name


@dataclass
class RunSummary:
    """Counts reported at the end of a run."""
    classes_dir: str
    output_dir: str
    units_loaded: int = 0
    units_skipped: int = 0
    edges: int = 0
    endpoints_detected: int = 0
    endpoints_written: int = 0
    bodies_loaded: int = 0
    bodies_enabled: bool = False
    failed_artifacts: list[str] = field(default_factory=list)
