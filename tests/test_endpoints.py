"""Tests for endpoint detection."""

import pytest

from api_call_graph.classfile import parse_class_bytes
from api_call_graph.endpoints import EndpointDetector
from api_call_graph.models.analysis_models import Endpoint
from classfile_builder import (
    CONTROLLER,
    DELETE_MAPPING,
    GET_MAPPING,
    POST_MAPPING,
    PUT_MAPPING,
    REQUEST_MAPPING,
    REQUEST_METHOD,
    REST_CONTROLLER,
    ClassFileBuilder,
    Enum,
    ann,
)


class TestEndpointDetector:
    def given_units(self, *builders):
        self.units = [parse_class_bytes(b.build()) for b in builders]

    def when_scanned(self):
        self.detector = EndpointDetector()
        self.endpoints = self.detector.scan(self.units)

    def then_endpoints_are(self, *expected):
        assert sorted(self.endpoints, key=lambda e: e.key) == sorted(expected, key=lambda e: e.key)

    def test_detects_get_mapping_on_rest_controller(self):
        self.given_units(
            ClassFileBuilder("com/acme/Ctrl", annotations=[ann(REST_CONTROLLER)])
            .method("list", annotations=[ann(GET_MAPPING, value=["/items"])])
            .method("helper")
        )
        self.when_scanned()
        self.then_endpoints_are(Endpoint("GET", "/items", "com.acme.Ctrl.list"))
        assert self.endpoints[0].key == "GET /items"

    def test_derives_verb_from_each_mapping_annotation(self):
        self.given_units(
            ClassFileBuilder("com/acme/Ctrl", annotations=[ann(CONTROLLER)])
            .method("create", annotations=[ann(POST_MAPPING, path=["/items"])])
            .method("update", annotations=[ann(PUT_MAPPING, value=["/items/{id}"])])
            .method("remove", annotations=[ann(DELETE_MAPPING, value=["/items/{id}"])])
            .method("any", annotations=[ann(REQUEST_MAPPING, value=["/any"])])
        )
        self.when_scanned()
        self.then_endpoints_are(
            Endpoint("POST", "/items", "com.acme.Ctrl.create"),
            Endpoint("PUT", "/items/{id}", "com.acme.Ctrl.update"),
            Endpoint("DELETE", "/items/{id}", "com.acme.Ctrl.remove"),
            Endpoint("REQUEST", "/any", "com.acme.Ctrl.any"),
        )

    def test_request_mapping_method_attribute_names_the_verb(self):
        self.given_units(
            ClassFileBuilder("com/acme/Ctrl", annotations=[ann(REST_CONTROLLER)])
            .method("save", annotations=[ann(REQUEST_MAPPING, value="/save", method=[Enum(REQUEST_METHOD, "POST")])])
        )
        self.when_scanned()
        self.then_endpoints_are(Endpoint("POST", "/save", "com.acme.Ctrl.save"))

    def test_mapping_without_path_uses_empty_path(self):
        self.given_units(
            ClassFileBuilder("com/acme/Ctrl", annotations=[ann(REST_CONTROLLER)])
            .method("root", annotations=[ann(GET_MAPPING)])
        )
        self.when_scanned()
        self.then_endpoints_are(Endpoint("GET", "", "com.acme.Ctrl.root"))

    def test_path_attribute_wins_over_value(self):
        self.given_units(
            ClassFileBuilder("com/acme/Ctrl", annotations=[ann(REST_CONTROLLER)])
            .method("both", annotations=[ann(GET_MAPPING, value=["/v"], path=["/p"])])
        )
        self.when_scanned()
        self.then_endpoints_are(Endpoint("GET", "/p", "com.acme.Ctrl.both"))

    def test_ignores_mappings_outside_controllers(self):
        self.given_units(
            ClassFileBuilder("com/acme/NotAController")
            .method("list", annotations=[ann(GET_MAPPING, value=["/items"])])
        )
        self.when_scanned()
        assert self.endpoints == []
        assert self.detector.controller_types == set()

    def test_controller_flag_resets_between_units(self):
        self.given_units(
            ClassFileBuilder("com/acme/Ctrl", annotations=[ann(REST_CONTROLLER)]).method("a"),
            ClassFileBuilder("com/acme/Plain").method("list", annotations=[ann(GET_MAPPING, value=["/x"])]),
        )
        self.when_scanned()
        assert self.endpoints == []
        assert self.detector.controller_types == {"com.acme.Ctrl"}

    def test_same_key_last_detected_wins(self):
        self.given_units(
            ClassFileBuilder("com/acme/First", annotations=[ann(REST_CONTROLLER)])
            .method("list", annotations=[ann(GET_MAPPING, value=["/items"])]),
            ClassFileBuilder("com/acme/Second", annotations=[ann(REST_CONTROLLER)])
            .method("items", annotations=[ann(GET_MAPPING, value=["/items"])]),
        )
        self.when_scanned()
        self.then_endpoints_are(Endpoint("GET", "/items", "com.acme.Second.items"))
        assert self.detector.entry_methods() == {"com.acme.Second.items"}

    def test_visit_method_needs_a_unit(self):
        unit = parse_class_bytes(ClassFileBuilder("com/acme/Ctrl").method("a").build())
        with pytest.raises(RuntimeError):
            EndpointDetector().visit_method(unit.methods[0])
