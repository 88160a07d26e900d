"""Tests for normalized spec loading, validation and operation filtering."""

import copy
import json

import pytest
import yaml

from agentic_api_testgen.models import OperationFilter
from agentic_api_testgen.spec_store import (
    SpecFormatError,
    SpecStore,
    load_normalized_spec,
    parse_normalized_spec,
    select_operations,
)

from conftest import SAMPLE_SPEC_DOC


class TestParse:
    """Tests for document validation and conversion."""

    def test_parses_sample(self, sample_spec):
        assert sample_spec.id == "things-api"
        assert sample_spec.title == "Things API"
        assert sample_spec.default_server_url == "https://things.example.com"
        create = sample_spec.operations[1]
        assert create.method == "POST"
        assert create.has_body is True
        assert create.request_body_schema["type"] == "object"
        get = sample_spec.operations[2]
        assert get.has_path_param is True
        assert get.parameters[0].location == "path"
        assert get.response_codes == ["200", "404"]

    def test_missing_operations_rejected(self):
        doc = {"id": "x", "info": {"title": "X"}}
        with pytest.raises(SpecFormatError, match="operations"):
            parse_normalized_spec(doc)

    def test_bad_method_rejected(self):
        doc = copy.deepcopy(SAMPLE_SPEC_DOC)
        doc["operations"][0]["method"] = "fetch"
        with pytest.raises(SpecFormatError):
            parse_normalized_spec(doc)

    def test_method_case_insensitive(self):
        doc = copy.deepcopy(SAMPLE_SPEC_DOC)
        doc["operations"][0]["method"] = "GET"
        assert parse_normalized_spec(doc).operations[0].method == "GET"


class TestLoad:
    """Tests for loading from disk."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "things.yaml"
        path.write_text(yaml.safe_dump(SAMPLE_SPEC_DOC), encoding="utf-8")
        assert len(load_normalized_spec(path).operations) == 3

    def test_json(self, tmp_path):
        path = tmp_path / "things.json"
        path.write_text(json.dumps(SAMPLE_SPEC_DOC), encoding="utf-8")
        assert load_normalized_spec(path).id == "things-api"

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "things.txt"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(SpecFormatError, match="Unsupported"):
            load_normalized_spec(path)

    def test_store_load_file(self, tmp_path):
        path = tmp_path / "things.json"
        path.write_text(json.dumps(SAMPLE_SPEC_DOC), encoding="utf-8")
        store = SpecStore()
        store.load_file(path)
        assert store.find_by_id("things-api") is not None
        assert store.find_by_id("other") is None


class TestSelectOperations:
    """Tests for the run operation filter."""

    def test_full(self, sample_spec):
        assert len(select_operations(sample_spec, OperationFilter())) == 3

    def test_tag(self, sample_spec):
        ops = select_operations(sample_spec, OperationFilter(mode="tag", tags=("WRITE",)))
        assert [op.operation_id for op in ops] == ["createThing"]

    def test_single_keeps_spec_order(self, sample_spec):
        ops = select_operations(
            sample_spec, OperationFilter(mode="single", operation_ids=("getThing", "listThings")),
        )
        assert [op.operation_id for op in ops] == ["listThings", "getThing"]

    def test_unknown_mode(self, sample_spec):
        with pytest.raises(ValueError):
            select_operations(sample_spec, OperationFilter(mode="random"))
