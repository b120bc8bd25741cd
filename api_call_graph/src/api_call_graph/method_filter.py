from dataclasses import dataclass

from api_call_graph.models.unit_models import ClassUnit

# Annotations (by simple name) that mean "accessors here are generated"
GENERATED_ACCESSOR_MARKERS = frozenset({"Data", "Getter", "Setter", "Builder", "Generated", "Value"})


@dataclass(frozen=True)
class MethodFilter:
    """
    Advisory per-type filter: decides whether a method's body is noise
    (generated getters/setters/builders, service interface stubs) and should
    be left out of body bundles. It never touches the call graph.
    """
    class_name: str
    is_interface: bool = False
    contains_service: bool = False
    has_generated_accessors: bool = False

    @classmethod
    def for_unit(cls, unit: ClassUnit) -> "MethodFilter":
        return cls(
            class_name=unit.name,
            is_interface=unit.is_interface,
            contains_service="service" in unit.name.lower(),
            has_generated_accessors=any(a.simple_name in GENERATED_ACCESSOR_MARKERS for a in unit.annotations),
        )

    def should_skip_method_body(self, name: str, descriptor: str) -> bool:
        if self.contains_service and self.is_interface:
            return True
        if self.has_generated_accessors:
            return is_getter(name, descriptor) or is_setter(name, descriptor) or is_builder(name, descriptor)
        return False


def _has_property_suffix(name: str, prefix: str) -> bool:
    return name.startswith(prefix) and len(name) > len(prefix) and name[len(prefix)].isupper()


def is_getter(name: str, descriptor: str) -> bool:
    # getName() returning anything but void, isActive() returning boolean
    if _has_property_suffix(name, "get"):
        return descriptor.startswith("()") and not descriptor.endswith(")V")
    return _has_property_suffix(name, "is") and descriptor == "()Z"


def is_setter(name: str, descriptor: str) -> bool:
    return _has_property_suffix(name, "set") and descriptor.endswith(")V")


def is_builder(name: str, descriptor: str) -> bool:
    return name in ("builder", "toBuilder") or ("Builder" in descriptor and not descriptor.endswith(")V"))
