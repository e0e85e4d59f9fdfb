"""
Unit tests for workstream detection.
Tests parse_workstream_response and WorkstreamDetector from
services/workstream_detector.py
"""
import asyncio
import json
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from langchain_core.language_models import FakeListChatModel

from config import PipelineConfig
from import_types import Complexity
from services.workstream_detector import (
    WorkstreamDetectionError,
    WorkstreamDetector,
    parse_workstream_response,
    truncate_corpus,
)


def _ws(index, **overrides):
    data = {
        "id": f"workstream-{index}",
        "name": f"Workstream {index}",
        "description": f"Scope of workstream {index}",
        "keyRequirements": ["a", "b", "c"],
        "estimatedComplexity": "high",
        "dependencies": [],
        "suggestedPhase": "Planning",
        "hierarchyLevel": 0,
    }
    data.update(overrides)
    return data


def _reply(workstreams, summary=None):
    payload = {"workstreams": workstreams}
    if summary is not None:
        payload["summary"] = summary
    return json.dumps(payload)


class TestParseWorkstreamResponse:
    """Test parse_workstream_response function."""

    def test_parses_aliased_fields(self):
        """Test that camelCase keys map onto Workstream fields."""
        raw = _reply([
            _ws(1),
            _ws(2, parent="Workstream 1", hierarchyLevel=1, isEpic=False, dependencies=["workstream-1"]),
            _ws(3, effortHours=40, documentSections=["Section 2"]),
        ], summary={"documentType": "SOW", "overallScope": "Portal rebuild"})

        workstreams, summary = parse_workstream_response(raw)

        assert [w.name for w in workstreams] == ["Workstream 1", "Workstream 2", "Workstream 3"]
        second = workstreams[1]
        assert second.parent_ref == "Workstream 1"
        assert second.hierarchy_level == 1
        assert second.dependencies == ["workstream-1"]
        assert second.estimated_complexity == Complexity.HIGH
        assert second.key_requirements == ["a", "b", "c"]
        assert workstreams[2].effort_hours == 40
        assert workstreams[2].document_sections == ["Section 2"]
        assert summary == {"total_workstreams": 3, "document_type": "SOW", "overall_scope": "Portal rebuild"}

    def test_fenced_json_accepted(self):
        """Test that a markdown-fenced reply is parsed."""
        raw = f"Here you go:\n```json\n{_reply([_ws(1), _ws(2), _ws(3)])}\n```"
        workstreams, _ = parse_workstream_response(raw)
        assert len(workstreams) == 3

    def test_defaults_for_missing_fields(self):
        """Test default id, complexity, phase and summary."""
        minimal = [{"name": f"W{i}", "description": "d", "estimatedComplexity": "extreme"} for i in range(3)]
        workstreams, summary = parse_workstream_response(_reply(minimal))

        assert [w.id for w in workstreams] == ["workstream-1", "workstream-2", "workstream-3"]
        assert all(w.estimated_complexity == Complexity.MEDIUM for w in workstreams)
        assert all(w.suggested_phase == "Implementation" for w in workstreams)
        assert all(w.hierarchy_level is None for w in workstreams)
        assert summary["document_type"] == "Unknown"

    def test_skips_entries_without_name_or_description(self):
        """Test that incomplete workstreams are dropped."""
        raw = _reply([_ws(1), _ws(2, name=""), _ws(3, description=None), _ws(4), _ws(5)])
        workstreams, _ = parse_workstream_response(raw)
        assert [w.name for w in workstreams] == ["Workstream 1", "Workstream 4", "Workstream 5"]

    def test_too_few_workstreams(self):
        """Test that fewer than the minimum raises."""
        with pytest.raises(WorkstreamDetectionError, match="Insufficient workstreams detected"):
            parse_workstream_response(_reply([_ws(1), _ws(2)]))

    def test_no_valid_workstreams(self):
        """Test that an all-invalid reply raises."""
        with pytest.raises(WorkstreamDetectionError, match="No valid workstreams"):
            parse_workstream_response(_reply([_ws(1, name=None)]))

    def test_too_many_workstreams_truncated(self):
        """Test that more than the maximum are cut down."""
        workstreams, summary = parse_workstream_response(_reply([_ws(i) for i in range(1, 13)]))
        assert len(workstreams) == 10
        assert summary["total_workstreams"] == 10

    def test_invalid_json(self):
        """Test that a non-JSON reply raises."""
        with pytest.raises(WorkstreamDetectionError, match="invalid JSON"):
            parse_workstream_response("I could not find any workstreams.")

    def test_invalid_structure(self):
        """Test that JSON without a workstreams list raises."""
        with pytest.raises(WorkstreamDetectionError, match="Invalid workstream structure"):
            parse_workstream_response(json.dumps({"items": []}))


class TestTruncateCorpus:
    """Test truncate_corpus function."""

    def test_short_corpus_unchanged(self):
        assert truncate_corpus("abc", 10) == "abc"

    def test_long_corpus_marked(self):
        """Test that truncation appends a marker."""
        assert truncate_corpus("abcdef", 3) == "abc\n\n[Document truncated for analysis...]"


class TestWorkstreamDetector:
    """Test WorkstreamDetector with a fake chat model."""

    def test_detect(self):
        """Test end-to-end detection against a canned reply."""
        llm = FakeListChatModel(responses=[_reply([_ws(1), _ws(2), _ws(3)])])
        detector = WorkstreamDetector(PipelineConfig(store_mode="memory"), llm=llm)

        result = asyncio.run(detector.detect("corpus text", {"project_name": "Acme", "document_names": ["a.md"]}))

        assert len(result.workstreams) == 3
        assert result.document_length == len("corpus text")
        assert result.summary["total_workstreams"] == 3

    def test_detect_propagates_parse_errors(self):
        """Test that an unusable reply raises to the caller."""
        llm = FakeListChatModel(responses=[_reply([_ws(1)])])
        detector = WorkstreamDetector(PipelineConfig(store_mode="memory"), llm=llm)

        with pytest.raises(WorkstreamDetectionError):
            asyncio.run(detector.detect("corpus text", {}))
