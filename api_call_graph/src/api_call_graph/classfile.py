"""
Minimal JVM class file parser.

Reads just enough of the class file format (JVMS chapter 4) to build a
ClassUnit: the constant pool, the type header, every method with its Code
attribute, the SourceFile attribute, and runtime (in)visible annotations on
the type and on its methods. Everything else is skipped by length.
"""

import struct
from typing import Optional

from api_call_graph.errors import ClassFormatError
from api_call_graph.models.unit_models import (
    Annotation,
    ClassLiteral,
    ClassUnit,
    ConstantMarker,
    EnumValue,
    MethodDecl,
    MethodRef,
    dotted,
)

MAGIC = 0xCAFEBABE

# Constant pool tags
CONSTANT_Utf8 = 1
CONSTANT_Integer = 3
CONSTANT_Float = 4
CONSTANT_Long = 5
CONSTANT_Double = 6
CONSTANT_Class = 7
CONSTANT_String = 8
CONSTANT_Fieldref = 9
CONSTANT_Methodref = 10
CONSTANT_InterfaceMethodref = 11
CONSTANT_NameAndType = 12
CONSTANT_MethodHandle = 15
CONSTANT_MethodType = 16
CONSTANT_Dynamic = 17
CONSTANT_InvokeDynamic = 18
CONSTANT_Module = 19
CONSTANT_Package = 20

# tag -> struct format of the entry payload
_CP_LAYOUT = {
    CONSTANT_Integer: ">i",
    CONSTANT_Float: ">f",
    CONSTANT_Long: ">q",
    CONSTANT_Double: ">d",
    CONSTANT_Class: ">H",
    CONSTANT_String: ">H",
    CONSTANT_Fieldref: ">HH",
    CONSTANT_Methodref: ">HH",
    CONSTANT_InterfaceMethodref: ">HH",
    CONSTANT_NameAndType: ">HH",
    CONSTANT_MethodHandle: ">BH",
    CONSTANT_MethodType: ">H",
    CONSTANT_Dynamic: ">HH",
    CONSTANT_InvokeDynamic: ">HH",
    CONSTANT_Module: ">H",
    CONSTANT_Package: ">H",
}

# annotation element tag -> constant pool tag of its value
_ELEMENT_CONSTANT_TAGS = {
    "B": CONSTANT_Integer,
    "C": CONSTANT_Integer,
    "I": CONSTANT_Integer,
    "S": CONSTANT_Integer,
    "Z": CONSTANT_Integer,
    "J": CONSTANT_Long,
    "F": CONSTANT_Float,
    "D": CONSTANT_Double,
}

ANNOTATION_ATTRIBUTES = {
    "RuntimeVisibleAnnotations": True,
    "RuntimeInvisibleAnnotations": False,
}


def decode_modified_utf8(raw: bytes) -> str:
    """
    Class files store strings as 'modified UTF-8': NUL is encoded as C0 80 and
    supplementary characters as two 3-byte surrogates. Undo both.
    """
    try:
        text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", errors="surrogatepass")
    except UnicodeDecodeError as e:
        raise ClassFormatError(f"malformed Utf8 constant: {e}") from e
    if any("\ud800" <= ch <= "\udfff" for ch in text):
        text = text.encode("utf-16-le", errors="surrogatepass").decode("utf-16-le", errors="replace")
    return text


def descriptor_to_name(descriptor: str) -> str:
    """'Lorg/acme/Foo;' -> 'org.acme.Foo' (other descriptors are returned as-is)."""
    if descriptor.startswith("L") and descriptor.endswith(";"):
        return dotted(descriptor[1:-1])
    return descriptor


class _ByteReader:
    """Big-endian cursor over a bytes buffer that fails with ClassFormatError."""

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def unpack(self, fmt: str):
        try:
            values = struct.unpack_from(fmt, self.data, self.pos)
        except struct.error as e:
            raise ClassFormatError(f"truncated class file at offset {self.pos}") from e
        self.pos += struct.calcsize(fmt)
        return values

    def u1(self) -> int:
        return self.unpack(">B")[0]

    def u2(self) -> int:
        return self.unpack(">H")[0]

    def u4(self) -> int:
        return self.unpack(">I")[0]

    def take(self, length: int) -> bytes:
        end = self.pos + length
        if end > len(self.data):
            raise ClassFormatError(f"truncated class file: wanted {length} bytes at offset {self.pos}")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk


class ConstantPool:
    """
    Indexed like the JVM does: entry 0 is unused and the slot after a Long or
    Double is None. Entries are stored as (tag, *payload) tuples.
    """

    def __init__(self, entries: list):
        self._entries = entries

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, index: int) -> tuple:
        if index <= 0 or index >= len(self._entries) or self._entries[index] is None:
            raise ClassFormatError(f"bad constant pool index {index}")
        return self._entries[index]

    def _expect(self, index: int, *tags: int) -> tuple:
        entry = self.entry(index)
        if entry[0] not in tags:
            raise ClassFormatError(f"constant pool #{index} has tag {entry[0]}, expected one of {tags}")
        return entry

    def utf8(self, index: int) -> str:
        return self._expect(index, CONSTANT_Utf8)[1]

    def class_name(self, index: int) -> str:
        """Internal name of a CONSTANT_Class entry, e.g. 'com/acme/Foo'."""
        return self.utf8(self._expect(index, CONSTANT_Class)[1])

    def name_and_type(self, index: int) -> tuple[str, str]:
        _, name_index, desc_index = self._expect(index, CONSTANT_NameAndType)
        return self.utf8(name_index), self.utf8(desc_index)

    def member_ref(self, index: int) -> tuple[str, str, str]:
        """(owner, name, descriptor) of a Fieldref / Methodref / InterfaceMethodref."""
        _, class_index, nat_index = self._expect(
            index, CONSTANT_Fieldref, CONSTANT_Methodref, CONSTANT_InterfaceMethodref
        )
        name, descriptor = self.name_and_type(nat_index)
        return self.class_name(class_index), name, descriptor

    def constant(self, index: int, tag: int):
        """Payload of a single-value entry (Integer, Long, Float, Double) with the given tag."""
        return self._expect(index, tag)[1]

    def invoke_dynamic(self, index: int) -> tuple[str, str]:
        """(name, descriptor) of a CONSTANT_InvokeDynamic call site."""
        _, _bootstrap, nat_index = self._expect(index, CONSTANT_InvokeDynamic)
        return self.name_and_type(nat_index)

    def method_ref(self, index: int) -> MethodRef:
        tag = self._expect(index, CONSTANT_Methodref, CONSTANT_InterfaceMethodref)[0]
        owner, name, descriptor = self.member_ref(index)
        return MethodRef(owner, name, descriptor, tag == CONSTANT_InterfaceMethodref)

    def literal(self, index: int):
        """
        Value loaded by ldc/ldc_w/ldc2_w, in a printable form: numbers and
        strings as themselves, classes as ClassLiteral, anything else as a
        ConstantMarker.
        """
        entry = self.entry(index)
        tag = entry[0]
        if tag in (CONSTANT_Integer, CONSTANT_Float, CONSTANT_Long, CONSTANT_Double):
            return entry[1]
        if tag == CONSTANT_String:
            return self.utf8(entry[1])
        if tag == CONSTANT_Class:
            return ClassLiteral(self.class_name(index))
        if tag == CONSTANT_MethodType:
            return ClassLiteral(self.utf8(entry[1]))
        if tag == CONSTANT_Dynamic:
            name, descriptor = self.name_and_type(entry[2])
            return ConstantMarker(f"#dynamic {name} {descriptor}")
        return ConstantMarker(f"#{tag}")


def _read_constant_pool(reader: _ByteReader) -> ConstantPool:
    count = reader.u2()
    entries: list = [None] * count
    index = 1
    while index < count:
        tag = reader.u1()
        if tag == CONSTANT_Utf8:
            length = reader.u2()
            entries[index] = (tag, decode_modified_utf8(reader.take(length)))
        elif tag in _CP_LAYOUT:
            entries[index] = (tag, *reader.unpack(_CP_LAYOUT[tag]))
        else:
            raise ClassFormatError(f"unknown constant pool tag {tag} at index {index}")
        # Long and Double take two slots
        index += 2 if tag in (CONSTANT_Long, CONSTANT_Double) else 1
    return ConstantPool(entries)


def _read_element_value(reader: _ByteReader, pool: ConstantPool):
    tag = chr(reader.u1())
    if tag in _ELEMENT_CONSTANT_TAGS:
        value = pool.constant(reader.u2(), _ELEMENT_CONSTANT_TAGS[tag])
        if tag == "Z":
            return bool(value)
        if tag == "C":
            if not 0 <= value <= 0xFFFF:
                raise ClassFormatError(f"char element value {value} out of range")
            return chr(value)
        return value
    if tag == "s":
        return pool.utf8(reader.u2())
    if tag == "e":
        type_name = descriptor_to_name(pool.utf8(reader.u2()))
        return EnumValue(type_name, pool.utf8(reader.u2()))
    if tag == "c":
        return ClassLiteral(pool.utf8(reader.u2()))
    if tag == "@":
        return _read_annotation(reader, pool, visible=True)
    if tag == "[":
        return [_read_element_value(reader, pool) for _ in range(reader.u2())]
    raise ClassFormatError(f"unknown annotation element tag {tag!r}")


def _read_annotation(reader: _ByteReader, pool: ConstantPool, visible: bool) -> Annotation:
    type_name = descriptor_to_name(pool.utf8(reader.u2()))
    values = {}
    for _ in range(reader.u2()):
        name = pool.utf8(reader.u2())
        values[name] = _read_element_value(reader, pool)
    return Annotation(type_name=type_name, values=values, visible=visible)


def _read_annotations(data: bytes, pool: ConstantPool, visible: bool) -> list[Annotation]:
    reader = _ByteReader(data)
    return [_read_annotation(reader, pool, visible) for _ in range(reader.u2())]


def _read_attributes(reader: _ByteReader, pool: ConstantPool) -> list[tuple[str, bytes]]:
    attributes = []
    for _ in range(reader.u2()):
        name = pool.utf8(reader.u2())
        length = reader.u4()
        attributes.append((name, reader.take(length)))
    return attributes


def _read_method(reader: _ByteReader, pool: ConstantPool) -> MethodDecl:
    access, name_index, desc_index = reader.unpack(">HHH")
    code: Optional[bytes] = None
    max_stack = max_locals = 0
    annotations: list[Annotation] = []

    for attr_name, payload in _read_attributes(reader, pool):
        if attr_name == "Code":
            code_reader = _ByteReader(payload)
            max_stack, max_locals, code_length = code_reader.unpack(">HHI")
            code = code_reader.take(code_length)
            # exception table and nested attributes are not needed
        elif attr_name in ANNOTATION_ATTRIBUTES:
            annotations.extend(_read_annotations(payload, pool, ANNOTATION_ATTRIBUTES[attr_name]))

    return MethodDecl(
        name=pool.utf8(name_index),
        descriptor=pool.utf8(desc_index),
        access=access,
        annotations=tuple(annotations),
        code=code,
        max_stack=max_stack,
        max_locals=max_locals,
    )


def parse_class_bytes(data: bytes, file_path: str = "<memory>") -> ClassUnit:
    """
    Parses the bytes of one .class file into a ClassUnit.
    Raises ClassFormatError on anything that isn't a well-formed class file.
    """
    reader = _ByteReader(data)
    magic, _minor, _major = reader.unpack(">IHH")
    if magic != MAGIC:
        raise ClassFormatError(f"bad magic 0x{magic:08X} in {file_path}")

    pool = _read_constant_pool(reader)
    access, this_index, super_index = reader.unpack(">HHH")
    interfaces = tuple(dotted(pool.class_name(reader.u2())) for _ in range(reader.u2()))

    # Fields: skip over them, we only need methods
    for _ in range(reader.u2()):
        reader.unpack(">HHH")
        _read_attributes(reader, pool)

    methods = tuple(_read_method(reader, pool) for _ in range(reader.u2()))

    source_file = None
    annotations: list[Annotation] = []
    for attr_name, payload in _read_attributes(reader, pool):
        if attr_name == "SourceFile":
            source_file = pool.utf8(_ByteReader(payload).u2())
        elif attr_name in ANNOTATION_ATTRIBUTES:
            annotations.extend(_read_annotations(payload, pool, ANNOTATION_ATTRIBUTES[attr_name]))

    return ClassUnit(
        name=dotted(pool.class_name(this_index)),
        file_path=file_path,
        access=access,
        super_name=dotted(pool.class_name(super_index)) if super_index else None,
        interfaces=interfaces,
        methods=methods,
        annotations=tuple(annotations),
        source_file=source_file,
        constant_pool=pool,
    )


def parse_class_file(path: str) -> ClassUnit:
    """Reads and parses a .class file from disk."""
    with open(path, "rb") as f:
        data = f.read()
    return parse_class_bytes(data, path)
