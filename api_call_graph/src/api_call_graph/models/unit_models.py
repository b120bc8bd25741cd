# --- Data models for compiled units ------------------------------------------
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Optional, Union

# Access flags we care about (JVMS 4.1 / 4.6)
ACC_PUBLIC = 0x0001
ACC_PRIVATE = 0x0002
ACC_PROTECTED = 0x0004
ACC_STATIC = 0x0008
ACC_FINAL = 0x0010
ACC_SUPER = 0x0020
ACC_BRIDGE = 0x0040
ACC_NATIVE = 0x0100
ACC_INTERFACE = 0x0200
ACC_ABSTRACT = 0x0400
ACC_SYNTHETIC = 0x1000
ACC_ANNOTATION = 0x2000
ACC_ENUM = 0x4000


def dotted(internal_name: str) -> str:
    """'com/acme/Foo$Bar' -> 'com.acme.Foo$Bar'"""
    return internal_name.replace("/", ".")


def method_id(owner: str, name: str) -> str:
    """
    Builds the vertex key used everywhere: '<fqcn>.<method>'.
    Overloads share a key on purpose; descriptors are not part of it.
    """
    return f"{dotted(owner)}.{name}"


def split_method_id(identifier: str) -> tuple[str, str]:
    """'com.acme.Foo.bar' -> ('com.acme.Foo', 'bar')"""
    owner, _, name = identifier.rpartition(".")
    return owner, name


class EnumValue(NamedTuple):
    """An enum constant used as an annotation element, e.g. RequestMethod.GET."""
    type_name: str  # dotted enum type, e.g. "org.springframework.web.bind.annotation.RequestMethod"
    const_name: str  # e.g. "GET"


class ClassLiteral(NamedTuple):
    """A class literal used as an annotation element, e.g. String.class."""
    descriptor: str


class ConstantMarker(NamedTuple):
    """Placeholder for a loaded constant with no literal form (method handles, dynamic constants)."""
    text: str  # e.g. "#15", "#dynamic name desc"


@dataclass(frozen=True)
class Annotation:
    """One annotation as stored in a Runtime(In)VisibleAnnotations attribute."""
    type_name: str  # dotted, e.g. "org.springframework.web.bind.annotation.GetMapping"
    values: dict = field(default_factory=dict)  # element name -> AnnotationValue
    visible: bool = True

    @property
    def simple_name(self) -> str:
        return self.type_name.rsplit(".", 1)[-1]


AnnotationValue = Union[int, float, str, bool, EnumValue, ClassLiteral, Annotation, list]


class MethodRef(NamedTuple):
    """A resolved Methodref / InterfaceMethodref constant."""
    owner: str  # internal name, e.g. "com/acme/UserRepository"
    name: str
    descriptor: str
    is_interface: bool


class Instruction(NamedTuple):
    """One decoded bytecode instruction."""
    offset: int
    opcode: int
    mnemonic: str  # lower case, e.g. "invokevirtual"
    operands: tuple = ()


@dataclass(frozen=True)
class MethodDecl:
    """A method declared by a unit, with its raw Code attribute if it has one."""
    name: str  # e.g. "addUser", "<init>"
    descriptor: str  # e.g. "(Ljava/lang/String;)V"
    access: int
    annotations: tuple[Annotation, ...] = ()
    code: Optional[bytes] = None  # None for abstract/native methods
    max_stack: int = 0
    max_locals: int = 0


@dataclass(frozen=True)
class ClassUnit:
    """Information about one compiled type, loaded from one .class file."""
    name: str  # dotted fully-qualified name, e.g. "com.acme.UserService"
    file_path: str  # absolute path of the .class file
    access: int
    super_name: Optional[str]
    interfaces: tuple[str, ...]  # dotted interface names
    methods: tuple[MethodDecl, ...]
    annotations: tuple[Annotation, ...] = ()
    source_file: Optional[str] = None  # SourceFile attribute, e.g. "UserService.java"
    constant_pool: Any = field(default=None, repr=False, compare=False)  # classfile.ConstantPool

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    @property
    def package(self) -> str:
        return self.name.rpartition(".")[0]

    @property
    def is_interface(self) -> bool:
        return bool(self.access & ACC_INTERFACE)
