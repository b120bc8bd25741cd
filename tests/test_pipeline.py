"""End-to-end tests for the analysis pipeline."""

import json
import struct

import pytest

from api_call_graph.config import get_config
from api_call_graph.errors import InputDirectoryError, PipelineStageError
from api_call_graph.models.analysis_models import Endpoint
from api_call_graph.pipeline import AnalysisPipeline, guess_project_src_path
from classfile_builder import (
    ACC_ABSTRACT,
    ACC_INTERFACE,
    GET_MAPPING,
    REST_CONTROLLER,
    ClassFileBuilder,
    ann,
    call,
)


def _config(classes_dir, output_dir, **overrides):
    return get_config(str(classes_dir), output_dir=str(output_dir), **overrides)


class TestEndToEnd:
    def given_classes(self, tmp_path, *builders):
        self.classes = tmp_path / "target" / "classes"
        for builder in builders:
            builder.write(self.classes)
        self.output = tmp_path / "out"

    def when_run(self, **overrides):
        self.pipeline = AnalysisPipeline(_config(self.classes, self.output, **overrides))
        self.summary = self.pipeline.run()

    def test_interface_calls_reach_implementations(self, tmp_path):
        self.given_classes(
            tmp_path,
            ClassFileBuilder("A").method("foo", calls=[call("B", "bar"), call("I", "bar", kind="invokeinterface")]),
            ClassFileBuilder("B", interfaces=["I"]).method("bar"),
            ClassFileBuilder("Impl", interfaces=["I"]).method("bar"),
            ClassFileBuilder("I", access=ACC_INTERFACE | ACC_ABSTRACT).method("bar", abstract=True),
        )
        self.when_run(extract_method_bodies=False)

        callees = self.pipeline.graph.get_callees("A.foo")
        assert {"B.bar", "I.bar", "Impl.bar"} <= callees
        assert self.pipeline.interface_map == {"I": {"B", "Impl"}}
        assert self.summary.units_loaded == 4
        assert self.summary.edges == 3

    def test_controller_endpoint_gets_its_reachable_subgraph(self, tmp_path):
        self.given_classes(
            tmp_path,
            ClassFileBuilder("Ctrl", annotations=[ann(REST_CONTROLLER)])
            .method("list", annotations=[ann(GET_MAPPING, value=["/items"])], calls=[
                call("Svc", "find"),
                call("java/util/List", "size", kind="invokeinterface"),
            ]),
            ClassFileBuilder("Svc").method("find", calls=[call("Repo", "all")]),
            ClassFileBuilder("Repo").method("all"),
        )
        self.when_run(extract_method_bodies=False)

        assert self.pipeline.detector.endpoints == [Endpoint("GET", "/items", "Ctrl.list")]
        assert self.pipeline.graph.subgraph_from("Ctrl.list") == {"Ctrl.list": {"Svc.find"}, "Svc.find": {"Repo.all"}}
        with open(self.output / "GET__items.json", encoding="utf-8") as f:
            assert json.load(f) == {"Ctrl.list": ["Svc.find"], "Svc.find": ["Repo.all"]}
        assert self.summary.endpoints_detected == 1
        assert self.summary.endpoints_written == 1
        assert not self.summary.bodies_enabled

    def test_writes_body_bundles_when_enabled(self, tmp_path):
        self.given_classes(
            tmp_path,
            ClassFileBuilder("Ctrl", annotations=[ann(REST_CONTROLLER)])
            .method("list", annotations=[ann(GET_MAPPING, value=["/items"])], calls=[call("Svc", "find")]),
            ClassFileBuilder("Svc").method("find"),
        )
        self.when_run()

        assert self.summary.bodies_enabled
        assert self.summary.bodies_loaded == 2
        with open(self.output / "GET__items_method_bodies.json", encoding="utf-8") as f:
            bundle = json.load(f)
        assert [m["name"] for m in bundle["methods"]] == ["Ctrl.list", "Svc.find"]
        assert (self.output / "controller_method_bodies.json").exists()

    def test_corrupt_class_files_are_skipped(self, tmp_path):
        self.given_classes(tmp_path, ClassFileBuilder("Svc").method("find", calls=[call("Repo", "all")]))
        (self.classes / "Broken.class").write_bytes(b"\xca\xfe\xba\xbe\x00")
        (self.classes / "notes.txt").write_text("ignored")
        self.when_run(extract_method_bodies=False)

        assert self.summary.units_loaded == 1
        assert self.summary.units_skipped == 1
        assert self.pipeline.graph.get_callees("Svc.find") == {"Repo.all"}

    def test_class_file_with_invalid_utf8_is_skipped(self, tmp_path):
        self.given_classes(tmp_path, ClassFileBuilder("Svc").method("find", calls=[call("Repo", "all")]))
        data = ClassFileBuilder("Bad").method("zqzq", calls=[call("Svc", "find")]).build()
        (self.classes / "Bad.class").write_bytes(data.replace(b"zqzq", b"\xff\xfe\xff\xfe"))
        self.when_run()

        assert self.summary.units_loaded == 1
        assert self.summary.units_skipped == 1
        assert self.pipeline.graph.get_callees("Svc.find") == {"Repo.all"}

    def test_unit_with_undecodable_bytecode_leaves_no_trace(self, tmp_path):
        def broken(cp):
            return b"\xba" + struct.pack(">H", cp.class_("Bad")) + b"\x00\x00\xb1"

        self.given_classes(
            tmp_path,
            ClassFileBuilder("Svc").method("find", calls=[call("Repo", "all")]),
            ClassFileBuilder("Bad").method("go", calls=[call("Svc", "find")]).method("lambda", code=broken),
        )
        self.when_run()

        assert self.summary.units_loaded == 2
        assert "Bad.go" not in self.pipeline.graph
        assert self.pipeline.graph.get_callees("Svc.find") == {"Repo.all"}
        assert self.summary.bodies_enabled
        assert self.summary.bodies_loaded == 1

    def test_missing_classes_dir_is_fatal(self, tmp_path):
        pipeline = AnalysisPipeline(_config(tmp_path / "nope", tmp_path / "out"))
        with pytest.raises(InputDirectoryError):
            pipeline.run()


class TestStageOrder:
    @pytest.fixture
    def pipeline(self, tmp_path):
        ClassFileBuilder("A").method("foo").write(tmp_path / "classes")
        return AnalysisPipeline(_config(tmp_path / "classes", tmp_path / "out"))

    def test_extract_needs_loaded_units(self, pipeline):
        with pytest.raises(PipelineStageError):
            pipeline.extract()

    def test_resolution_needs_extraction(self, pipeline):
        pipeline.load_units()
        with pytest.raises(PipelineStageError):
            pipeline.resolve_interfaces()

    def test_resolution_runs_once(self, pipeline):
        pipeline.load_units()
        pipeline.extract()
        pipeline.resolve_interfaces()
        with pytest.raises(PipelineStageError):
            pipeline.resolve_interfaces()

    def test_artifacts_need_resolution(self, pipeline):
        pipeline.load_units()
        pipeline.extract()
        with pytest.raises(PipelineStageError):
            pipeline.generate_artifacts()


def test_guess_project_src_path(tmp_path):
    classes = tmp_path / "target" / "classes"
    classes.mkdir(parents=True)
    assert guess_project_src_path(str(classes)) is None
    (tmp_path / "src").mkdir()
    assert guess_project_src_path(str(classes)) == str(tmp_path / "src")
