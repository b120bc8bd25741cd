"""Tests for the class file parser."""

import pytest

from api_call_graph.classfile import decode_modified_utf8, descriptor_to_name, parse_class_bytes, parse_class_file
from api_call_graph.errors import ClassFormatError
from api_call_graph.models.unit_models import EnumValue
from classfile_builder import (
    ACC_INTERFACE,
    ACC_ABSTRACT,
    GET_MAPPING,
    LOMBOK_DATA,
    REQUEST_MAPPING,
    REQUEST_METHOD,
    REST_CONTROLLER,
    ClassFileBuilder,
    Enum,
    RawElement,
    ann,
    call,
)


class TestParseClassBytes:
    def given_class(self, builder):
        self.data = builder.build()

    def when_parsed(self):
        self.unit = parse_class_bytes(self.data, "/tmp/Foo.class")

    def test_reads_names_and_interfaces(self):
        self.given_class(ClassFileBuilder("com/acme/UserServiceImpl", interfaces=["com/acme/UserService"]))
        self.when_parsed()
        assert self.unit.name == "com.acme.UserServiceImpl"
        assert self.unit.simple_name == "UserServiceImpl"
        assert self.unit.package == "com.acme"
        assert self.unit.super_name == "java.lang.Object"
        assert self.unit.interfaces == ("com.acme.UserService",)
        assert self.unit.file_path == "/tmp/Foo.class"

    def test_reads_source_file_hint(self):
        self.given_class(ClassFileBuilder("com/acme/Outer$Inner", source_file="Outer.java"))
        self.when_parsed()
        assert self.unit.source_file == "Outer.java"

    def test_source_file_is_optional(self):
        self.given_class(ClassFileBuilder("com/acme/Foo"))
        self.when_parsed()
        assert self.unit.source_file is None

    def test_reads_methods_in_declaration_order(self):
        self.given_class(
            ClassFileBuilder("com/acme/Foo")
            .method("<init>", calls=[call("java/lang/Object", "<init>", "invokespecial")])
            .method("run", "(I)Ljava/lang/String;", max_stack=3, max_locals=2)
        )
        self.when_parsed()
        assert [m.name for m in self.unit.methods] == ["<init>", "run"]
        run = self.unit.methods[1]
        assert run.descriptor == "(I)Ljava/lang/String;"
        assert run.max_stack == 3
        assert run.max_locals == 2
        assert run.code is not None

    def test_abstract_methods_have_no_code(self):
        self.given_class(
            ClassFileBuilder("com/acme/Repo", access=ACC_INTERFACE | ACC_ABSTRACT).method("findAll", abstract=True)
        )
        self.when_parsed()
        assert self.unit.is_interface
        assert self.unit.methods[0].code is None

    def test_reads_type_and_method_annotations(self):
        self.given_class(
            ClassFileBuilder("com/acme/ItemController", annotations=[ann(REST_CONTROLLER)])
            .method("list", annotations=[ann(GET_MAPPING, value=["/items"])])
            .method("save", annotations=[ann(REQUEST_MAPPING, path="/save", method=[Enum(REQUEST_METHOD, "POST")])])
        )
        self.when_parsed()
        assert self.unit.annotations[0].type_name == "org.springframework.web.bind.annotation.RestController"
        assert self.unit.annotations[0].simple_name == "RestController"

        get = self.unit.methods[0].annotations[0]
        assert get.simple_name == "GetMapping"
        assert get.values == {"value": ["/items"]}

        request = self.unit.methods[1].annotations[0]
        assert request.values["path"] == "/save"
        assert request.values["method"] == [
            EnumValue("org.springframework.web.bind.annotation.RequestMethod", "POST")
        ]

    def test_reads_invisible_annotations(self):
        self.given_class(ClassFileBuilder("com/acme/User", invisible_annotations=[ann(LOMBOK_DATA)]))
        self.when_parsed()
        assert self.unit.annotations[0].simple_name == "Data"
        assert self.unit.annotations[0].visible is False

    def test_reads_primitive_annotation_values(self):
        self.given_class(ClassFileBuilder("com/acme/Foo", annotations=[ann("Lcom/acme/Limits;", max=10, strict=True)]))
        self.when_parsed()
        assert self.unit.annotations[0].values == {"max": 10, "strict": True}

    def test_long_constants_take_two_slots(self):
        builder = ClassFileBuilder("com/acme/Foo")
        builder.cp.long(1 << 40)
        builder.method("run", calls=[call("com/acme/Bar", "go")])
        self.given_class(builder)
        self.when_parsed()
        assert self.unit.methods[0].name == "run"


class TestMalformedInput:
    def test_rejects_bad_magic(self):
        with pytest.raises(ClassFormatError, match="magic"):
            parse_class_bytes(b"\x00\x00\x00\x00" + b"\x00" * 20)

    def test_rejects_truncated_file(self):
        data = ClassFileBuilder("com/acme/Foo").method("run").build()
        with pytest.raises(ClassFormatError):
            parse_class_bytes(data[: len(data) // 2])

    def test_rejects_empty_file(self):
        with pytest.raises(ClassFormatError):
            parse_class_bytes(b"")

    def test_rejects_invalid_utf8_constant(self):
        data = ClassFileBuilder("com/acme/Foo").method("zqzq").build()
        assert data.count(b"zqzq") == 1
        with pytest.raises(ClassFormatError, match="Utf8"):
            parse_class_bytes(data.replace(b"zqzq", b"\xff\xfe\xff\xfe"))

    def test_rejects_char_element_pointing_at_a_string(self):
        data = ClassFileBuilder("com/acme/Foo", annotations=[ann("Lcom/acme/Sep;", value=RawElement("C", "x"))]).build()
        with pytest.raises(ClassFormatError, match="tag"):
            parse_class_bytes(data)

    def test_rejects_int_element_pointing_at_a_string(self):
        data = ClassFileBuilder("com/acme/Foo", annotations=[ann("Lcom/acme/Limits;", max=RawElement("I", "ten"))]).build()
        with pytest.raises(ClassFormatError):
            parse_class_bytes(data)

    def test_reads_from_disk(self, tmp_path):
        path = ClassFileBuilder("com/acme/Foo").method("run").write(tmp_path)
        unit = parse_class_file(str(path))
        assert unit.name == "com.acme.Foo"
        assert unit.file_path == str(path)


def test_decodes_modified_utf8_nul_and_surrogates():
    assert decode_modified_utf8(b"a\xc0\x80b") == "a\x00b"
    assert decode_modified_utf8(b"\xed\xa0\xbd\xed\xb8\x80") == "\U0001F600"
    assert decode_modified_utf8("héllo".encode("utf-8")) == "héllo"


def test_invalid_utf8_is_a_format_error():
    with pytest.raises(ClassFormatError):
        decode_modified_utf8(b"ok\xff")


def test_descriptor_to_name():
    assert descriptor_to_name("Lcom/acme/Foo;") == "com.acme.Foo"
    assert descriptor_to_name("I") == "I"
