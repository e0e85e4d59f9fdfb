"""
Unit tests for the import pipeline.
Tests ImportPipeline.analyze from importer/analyzer.py with fake
collaborators and the in-memory store.
"""
import asyncio
import pytest
import sys
from datetime import date
from pathlib import Path
from types import SimpleNamespace

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from config import PipelineConfig
from import_types import (
    Checklist,
    ChecklistItem,
    ChecklistSection,
    Document,
    ImportFatalError,
    Milestone,
    Phase,
    ProjectMember,
    Timeline,
    Workstream,
)
from importer.analyzer import ImportPipeline, combine_documents, find_effort_document
from run_persistence import InMemoryImportStore
from services.resource_parser import ResourceParser

START = date(2026, 1, 5)

DOCUMENTS = [
    Document(filename="sow.md", text="Statement of work for the Acme portal.", classification="SOW"),
    Document(filename="requirements.md", text="The portal must support SSO.", classification="Requirements"),
]


def _workstreams():
    return [
        Workstream(id="ws-1", name="Requirements Analysis", description="Gather requirements"),
        Workstream(id="ws-2", name="Backend Development", description="Build APIs", dependencies=["ws-1"]),
        Workstream(id="ws-3", name="User Acceptance Testing", description="UAT", dependencies=["ws-2"]),
    ]


class FakeDetector:
    def __init__(self, workstreams=None, error=None):
        self.workstreams = workstreams if workstreams is not None else _workstreams()
        self.error = error
        self.contexts = []

    async def detect(self, corpus, context):
        self.contexts.append(context)
        if self.error:
            raise self.error
        return SimpleNamespace(workstreams=self.workstreams, prompt_tokens=1000, completion_tokens=500)


class FakeTimelineExtractor:
    def __init__(self, error=None):
        self.error = error

    async def extract(self, corpus, context):
        if self.error:
            raise self.error
        timeline = Timeline(
            phases=[Phase(name="Discovery", start_date=START, end_date=date(2026, 1, 18))],
            milestones=[Milestone(name="Sign-off", due_date=date(2026, 1, 18))],
        )
        return SimpleNamespace(timeline=timeline, cost=0.01)


class FakeChecklistGenerator:
    def __init__(self, failing=()):
        self.failing = set(failing)

    async def generate(self, workstream, corpus, context):
        if workstream.name in self.failing:
            raise RuntimeError("model overloaded")
        checklist = Checklist(
            project_id=context["project_id"],
            title=f"{workstream.name} Checklist",
            related_task_id=workstream.task_id,
            sections=[ChecklistSection(name="Execution", items=[ChecklistItem("Do it"), ChecklistItem("Check it")])],
        )
        return SimpleNamespace(checklists=[checklist], cost=0.02)


class NoTaskStore(InMemoryImportStore):
    async def insert_task(self, task):
        raise RuntimeError("tasks table locked")


class PartialTaskStore(InMemoryImportStore):
    def __init__(self, failing_titles):
        super().__init__()
        self.failing_titles = set(failing_titles)

    async def insert_task(self, task):
        if task.title in self.failing_titles:
            raise RuntimeError("tasks table locked")
        return await super().insert_task(task)


class NoRunStore(InMemoryImportStore):
    async def insert_run(self, run):
        raise RuntimeError("disk full")


def _pipeline(store, **overrides):
    collaborators = {
        "workstream_detector": FakeDetector(),
        "timeline_extractor": FakeTimelineExtractor(),
        "resource_parser": ResourceParser(),
        "checklist_generator": FakeChecklistGenerator(),
    }
    collaborators.update(overrides)
    return ImportPipeline(store, **collaborators)


def _analyze(pipeline, documents=DOCUMENTS):
    return asyncio.run(pipeline.analyze(documents, "p1", user_id="u1", project_start_date=START))


class TestCombineDocuments:
    """Test corpus building helpers."""

    def test_headers_per_document(self):
        """Test that each document gets a numbered header with its classification."""
        corpus = combine_documents([
            Document(filename="a.md", text="Alpha", classification="SOW"),
            Document(filename="b.md", text="Beta"),
        ])
        assert corpus == "=== Document 1: a.md (SOW) ===\nAlpha\n\n=== Document 2: b.md (unclassified) ===\nBeta"

    def test_find_effort_document(self):
        """Test effort document lookup by classification or filename."""
        by_class = Document(filename="x.md", text="", classification="Effort")
        by_name = Document(filename="Team-Effort.xlsx.md", text="")
        assert find_effort_document([DOCUMENTS[0], by_class]) is by_class
        assert find_effort_document([by_name]) is by_name
        assert find_effort_document(DOCUMENTS) is None


class TestImportPipelineFatal:
    """Test the fatal paths of ImportPipeline.analyze."""

    def test_zero_workstreams_is_fatal_and_persisted(self):
        """Test that an empty detection aborts and still writes the run."""
        store = InMemoryImportStore()
        pipeline = _pipeline(store, workstream_detector=FakeDetector(workstreams=[]))

        with pytest.raises(ImportFatalError) as exc_info:
            _analyze(pipeline)

        assert str(exc_info.value) == "No workstreams detected in documents"
        runs = list(store.runs.values())
        assert len(runs) == 1
        assert runs[0].success is False
        assert runs[0].documents_processed == 2
        assert runs[0].errors == ["No workstreams detected in documents"]
        assert exc_info.value.result.run_id == runs[0].id
        assert store.tasks == {}

    def test_detector_exception_is_fatal(self):
        """Test that a detector error aborts with its message."""
        store = InMemoryImportStore()
        pipeline = _pipeline(store, workstream_detector=FakeDetector(error=ValueError("AI returned invalid JSON")))

        with pytest.raises(ImportFatalError) as exc_info:
            _analyze(pipeline)

        assert str(exc_info.value) == "Workstream detection failed: AI returned invalid JSON"
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert len(store.runs) == 1

    def test_too_few_workstreams_is_fatal(self):
        """Test that a detector returning fewer than the minimum aborts the run."""
        store = InMemoryImportStore()
        detector = FakeDetector(workstreams=_workstreams()[:2])
        pipeline = _pipeline(store, workstream_detector=detector)

        with pytest.raises(ImportFatalError) as exc_info:
            _analyze(pipeline)

        assert str(exc_info.value) == "Insufficient workstreams detected: got 2, at least 3 required"
        assert exc_info.value.result.success is False
        assert store.runs[exc_info.value.result.run_id].success is False
        assert store.tasks == {}

    def test_minimum_workstreams_is_configurable(self):
        """Test that min_workstreams lowers the detection floor."""
        config = PipelineConfig(min_workstreams=2, store_mode="memory")
        pipeline = ImportPipeline(
            InMemoryImportStore(),
            workstream_detector=FakeDetector(workstreams=_workstreams()[:2]),
            config=config,
        )
        result = _analyze(pipeline)

        assert result.success is True
        assert len(result.task_ids) == 2

    def test_missing_detector_is_fatal(self):
        """Test that the detector is mandatory."""
        store = InMemoryImportStore()
        pipeline = _pipeline(store, workstream_detector=None)

        with pytest.raises(ImportFatalError, match="Workstream detector not available"):
            _analyze(pipeline)

    def test_no_documents_is_fatal(self):
        """Test that an empty document list aborts before detection."""
        store = InMemoryImportStore()
        detector = FakeDetector()
        pipeline = _pipeline(store, workstream_detector=detector)

        with pytest.raises(ImportFatalError, match="No documents provided for import"):
            _analyze(pipeline, documents=[])

        assert detector.contexts == []
        assert list(store.runs.values())[0].documents_processed == 0


class TestImportPipeline:
    """Test successful and degraded runs of ImportPipeline.analyze."""

    def test_full_run(self):
        """Test that every stage contributes to the result and the run record."""
        store = InMemoryImportStore()
        asyncio.run(store.upsert_project("p1", "Acme Portal", "Customer portal rebuild"))
        detector = FakeDetector()
        result = _analyze(_pipeline(store, workstream_detector=detector))

        assert result.success is True
        assert len(result.task_ids) == 3
        assert len(result.dependencies) == 2
        assert len(result.timeline.phases) == 1
        assert result.checklists_created == 3
        assert result.checklist_items_created == 6
        assert len(store.checklists) == 3
        assert result.errors == []

        context = detector.contexts[0]
        assert context["project_name"] == "Acme Portal"
        assert context["document_names"] == ["sow.md", "requirements.md"]

        run = store.runs[result.run_id]
        assert run.success is True
        assert run.user_id == "u1"
        assert run.tasks_created == 3
        assert run.dependencies_created == 2
        assert run.phases_extracted == 1
        assert run.milestones_extracted == 1

    def test_detection_cost_not_in_total(self):
        """Test that only timeline and checklist costs are summed."""
        result = _analyze(_pipeline(InMemoryImportStore()))

        assert set(result.ai_cost_breakdown) == {"timeline_extraction", "checklist_generation"}
        assert result.ai_cost_breakdown["checklist_generation"] == pytest.approx(0.06)
        assert result.total_cost == pytest.approx(0.07)

    def test_timeline_failure_degrades(self):
        """Test that a failing timeline extractor only adds a warning."""
        result = _analyze(_pipeline(InMemoryImportStore(),
                                    timeline_extractor=FakeTimelineExtractor(error=RuntimeError("timeout"))))

        assert result.success is True
        assert "Timeline extraction failed: timeout" in result.warnings
        assert result.timeline.phases == []
        assert "timeline_extraction" not in result.ai_cost_breakdown

    def test_missing_optional_collaborators(self):
        """Test the skip warnings for absent collaborators."""
        result = _analyze(_pipeline(InMemoryImportStore(), timeline_extractor=None,
                                    resource_parser=None, checklist_generator=None))

        assert result.success is True
        assert "Timeline extractor not available - timeline skipped" in result.warnings
        assert "Resource parser not available - resource assignment skipped" in result.warnings
        assert "Checklist generator not available - checklists skipped" in result.warnings

    def test_disabled_flag_behaves_like_missing_collaborator(self):
        """Test that config flags switch optional stages off."""
        store = InMemoryImportStore()
        config = PipelineConfig(enable_timeline=False, enable_dependency_mapping=False, store_mode="memory")
        pipeline = ImportPipeline(
            store,
            workstream_detector=FakeDetector(),
            timeline_extractor=FakeTimelineExtractor(),
            config=config,
        )
        result = _analyze(pipeline)

        assert "Timeline extractor not available - timeline skipped" in result.warnings
        assert "Dependency mapper service not available or insufficient tasks" in result.warnings
        assert result.dependencies == []

    def test_single_task_skips_dependencies(self):
        """Test that fewer than two created tasks skips dependency mapping."""
        store = PartialTaskStore({"Backend Development", "User Acceptance Testing"})
        result = _analyze(_pipeline(store))

        assert len(result.task_ids) == 1
        assert "Dependency mapper service not available or insufficient tasks" in result.warnings
        assert store.edges == []

    def test_checklist_failure_isolated(self):
        """Test that one failed checklist does not affect the others."""
        store = InMemoryImportStore()
        result = _analyze(_pipeline(store, checklist_generator=FakeChecklistGenerator(failing={"Backend Development"})))

        assert result.success is True
        assert result.checklists_created == 2
        assert "Checklist generation failed for Backend Development: model overloaded" in result.warnings
        related = {c.related_task_id for c in store.checklists}
        assert None not in related

    def test_no_effort_document_warns(self):
        """Test that resource parsing needs an effort document."""
        result = _analyze(_pipeline(InMemoryImportStore()))

        assert "No Effort document found for resource parsing" in result.warnings
        assert result.resource_assignments == []

    def test_resource_assignment_from_effort_document(self):
        """Test that effort lines become assignments without touching tasks."""
        store = InMemoryImportStore()
        asyncio.run(store.add_project_member("p1", ProjectMember(user_id="u-jane", username="jane.smith")))
        effort = Document(
            filename="effort.md",
            text="- Backend Development: Jane Smith (Engineer) - 2 days",
            classification="Effort",
        )

        result = _analyze(_pipeline(store), documents=DOCUMENTS + [effort])

        assert len(result.resource_assignments) == 1
        assignment = result.resource_assignments[0]
        assert assignment.user_id == "u-jane"
        assert assignment.task_title == "Backend Development"
        assert assignment.effort_hours == 16
        assert [r.name for r in result.resources_needing_review] == ["Jane Smith"]
        assert all(t.assignee is None for t in store.tasks.values())

    def test_cycle_is_error_but_run_succeeds(self):
        """Test that a rejected dependency batch keeps the run successful."""
        workstreams = [
            Workstream(id="ws-1", name="Requirements Analysis", dependencies=["ws-2"]),
            Workstream(id="ws-2", name="Backend Development", dependencies=["ws-1"]),
            Workstream(id="ws-3", name="User Acceptance Testing"),
        ]
        store = InMemoryImportStore()
        result = _analyze(_pipeline(store, workstream_detector=FakeDetector(workstreams=workstreams)))

        assert result.success is True
        assert result.dependencies == []
        assert any(e.startswith("Circular dependencies detected") for e in result.errors)
        assert store.edges == []

    def test_zero_tasks_created_fails_without_raising(self):
        """Test that a run creating no tasks is unsuccessful but returned."""
        store = NoTaskStore()
        timeline = FakeTimelineExtractor()
        result = _analyze(_pipeline(store, timeline_extractor=timeline))

        assert result.success is False
        assert "No tasks were created from the detected workstreams" in result.errors
        assert result.timeline.phases == []
        assert store.runs[result.run_id].success is False

    def test_run_record_failure_reported(self):
        """Test that failing to save the run record does not raise."""
        result = _analyze(_pipeline(NoRunStore()))

        assert result.success is True
        assert result.run_id is None
        assert "Failed to save import run: disk full" in result.errors
