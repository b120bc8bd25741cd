"""Tests for the generated-method filter."""

import pytest

from api_call_graph.classfile import parse_class_bytes
from api_call_graph.method_filter import MethodFilter, is_builder, is_getter, is_setter
from classfile_builder import ACC_ABSTRACT, ACC_INTERFACE, LOMBOK_DATA, ClassFileBuilder, ann


def _filter(builder) -> MethodFilter:
    return MethodFilter.for_unit(parse_class_bytes(builder.build()))


@pytest.mark.parametrize("name, descriptor, expected", [
    ("getName", "()Ljava/lang/String;", True),
    ("getName", "()V", False),
    ("getaway", "()I", False),
    ("get", "()I", False),
    ("isActive", "()Z", True),
    ("isActive", "()I", False),
])
def test_is_getter(name, descriptor, expected):
    assert is_getter(name, descriptor) is expected


def test_is_setter():
    assert is_setter("setName", "(Ljava/lang/String;)V")
    assert not is_setter("setName", "(Ljava/lang/String;)Lcom/acme/User;")
    assert not is_setter("settle", "()V")


def test_is_builder():
    assert is_builder("builder", "()Lcom/acme/User$UserBuilder;")
    assert is_builder("toBuilder", "()Lcom/acme/User$UserBuilder;")
    assert is_builder("name", "(Ljava/lang/String;)Lcom/acme/User$UserBuilder;")
    assert not is_builder("name", "()Ljava/lang/String;")


class TestMethodFilter:
    def test_service_interfaces_skip_everything(self):
        method_filter = _filter(ClassFileBuilder("com/acme/UserService", access=ACC_INTERFACE | ACC_ABSTRACT))
        assert method_filter.is_interface
        assert method_filter.contains_service
        assert method_filter.should_skip_method_body("findUser", "(J)Lcom/acme/User;")

    def test_service_classes_are_kept(self):
        method_filter = _filter(ClassFileBuilder("com/acme/UserServiceImpl"))
        assert not method_filter.should_skip_method_body("findUser", "(J)Lcom/acme/User;")

    def test_generated_accessors_are_skipped_on_marked_types(self):
        method_filter = _filter(ClassFileBuilder("com/acme/User", invisible_annotations=[ann(LOMBOK_DATA)]))
        assert method_filter.has_generated_accessors
        assert method_filter.should_skip_method_body("getName", "()Ljava/lang/String;")
        assert method_filter.should_skip_method_body("setName", "(Ljava/lang/String;)V")
        assert method_filter.should_skip_method_body("builder", "()Lcom/acme/User$UserBuilder;")
        assert not method_filter.should_skip_method_body("validate", "()V")

    def test_accessors_are_kept_on_unmarked_types(self):
        method_filter = _filter(ClassFileBuilder("com/acme/User"))
        assert not method_filter.should_skip_method_body("getName", "()Ljava/lang/String;")
