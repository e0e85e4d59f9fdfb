"""
Importer Module - Import Pipeline
=================================
Orchestrates one document-to-project-structure import:

    1. combine documents        (always)
    2. detect workstreams       (mandatory, fatal on failure)
    3. create task hierarchy    (mandatory)
    4. extract timeline         (optional)
    5. create dependencies      (optional, batch-atomic)
    6. parse resources          (optional, needs an effort document)
    7. generate checklists      (optional, per workstream)

Optional stages never raise: a missing or failing collaborator becomes a
warning and an empty result. One ImportRun record is written per run,
including failed ones.
"""

import asyncio
import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from config import PipelineConfig
from import_types import (
    Document,
    ImportFatalError,
    ImportResult,
    ImportRun,
    StageOutcome,
    Workstream,
)
from metrics import import_metrics
from .dependencies import create_dependencies
from .hierarchy import create_hierarchy

logger = logging.getLogger(__name__)


def combine_documents(documents: Sequence[Document]) -> str:
    """Concatenate documents into one corpus with a header per document."""
    return "\n\n".join(
        f"=== Document {i + 1}: {doc.filename} ({doc.classification or 'unclassified'}) ===\n{doc.text}"
        for i, doc in enumerate(documents)
    )


def find_effort_document(documents: Sequence[Document]) -> Optional[Document]:
    """First document classified as Effort, or with "effort" in its filename."""
    for doc in documents:
        if (doc.classification or "").lower() == "effort" or "effort" in doc.filename.lower():
            return doc
    return None


class ImportPipeline:
    """
    Runs the import stages against a store and injected collaborators.

    A collaborator that is None, or whose capability flag is off in the
    config, is treated as unavailable.
    """

    def __init__(
        self,
        store,
        workstream_detector=None,
        timeline_extractor=None,
        resource_parser=None,
        checklist_generator=None,
        config: Optional[PipelineConfig] = None,
    ):
        self.config = config or PipelineConfig()
        self.store = store
        self.workstream_detector = workstream_detector
        self.timeline_extractor = timeline_extractor if self.config.enable_timeline else None
        self.resource_parser = resource_parser if self.config.enable_resource_parsing else None
        self.checklist_generator = checklist_generator if self.config.enable_checklists else None

    async def analyze(
        self,
        documents: Sequence[Document],
        project_id: str,
        user_id: Optional[str] = None,
        project_start_date: Optional[date] = None,
    ) -> ImportResult:
        """
        Run the full pipeline.

        Returns:
            ImportResult, including runs that created no tasks

        Raises:
            ImportFatalError: No documents, or workstream detection failed.
                The failed run is already persisted.
        """
        started = time.time()
        result = ImportResult(project_id=project_id, documents_processed=len(documents))

        import_metrics.active_imports.inc()
        try:
            return await self._run(documents, result, user_id, project_start_date or date.today(), started)
        finally:
            import_metrics.active_imports.dec()
            import_metrics.run_duration.observe(time.time() - started)

    async def _run(
        self,
        documents: Sequence[Document],
        result: ImportResult,
        user_id: Optional[str],
        project_start_date: date,
        started: float,
    ) -> ImportResult:
        project_id = result.project_id
        logger.info(f"📥 Import started for project {project_id}: {len(documents)} document(s)")

        # Stage 1: combine
        corpus = combine_documents(documents)
        if not documents or not corpus.strip():
            await self._abort(result, user_id, started, "No documents provided for import")

        project = await self.store.get_project(project_id) or {}
        context: Dict[str, Any] = {
            "project_id": project_id,
            "project_name": project.get("name"),
            "project_description": project.get("description"),
            "document_names": [d.filename for d in documents],
            "project_start_date": project_start_date,
            "user_id": user_id,
        }

        # Stage 2: detect workstreams
        workstreams = await self._detect_workstreams(corpus, context, result, user_id, started)
        result.workstreams = workstreams

        # Stage 3: hierarchy
        logger.info(f"Stage 3/7: creating tasks for {len(workstreams)} workstreams")
        with import_metrics.track_stage("hierarchy") as stage:
            hierarchy = await create_hierarchy(workstreams, project_id, self.store, project_start_date)
            result.errors.extend(hierarchy.errors)
            result.warnings.extend(hierarchy.warnings)
            result.task_ids = [t.id for t in hierarchy.created]

            for category, tasks in (("epic", hierarchy.epics), ("task", hierarchy.tasks),
                                    ("subtask", hierarchy.subtasks), ("standalone", hierarchy.standalone)):
                if tasks:
                    import_metrics.tasks_created_total.labels(category=category).inc(len(tasks))

            if not hierarchy.created:
                stage["outcome"] = StageOutcome.FAILED.value
                result.errors.append("No tasks were created from the detected workstreams")
                logger.error(f"❌ Import for project {project_id} created no tasks; skipping remaining stages")
                return await self._finish(result, user_id, started)

        await self._extract_timeline(corpus, context, result)
        await self._create_dependencies(workstreams, len(hierarchy.created), result)
        await self._assign_resources(documents, hierarchy.created, result)
        await self._generate_checklists(workstreams, corpus, context, result)

        result.success = True
        return await self._finish(result, user_id, started)

    # -- stage 2 -------------------------------------------------------------

    async def _detect_workstreams(
        self,
        corpus: str,
        context: Dict[str, Any],
        result: ImportResult,
        user_id: Optional[str],
        started: float,
    ) -> List[Workstream]:
        logger.info("Stage 2/7: detecting workstreams")
        with import_metrics.track_stage("workstream_detection"):
            if self.workstream_detector is None:
                await self._abort(result, user_id, started, "Workstream detector not available")

            try:
                detection = await self.workstream_detector.detect(corpus, context)
            except Exception as e:
                await self._abort(result, user_id, started, f"Workstream detection failed: {e}", cause=e)

            if not detection.workstreams:
                await self._abort(result, user_id, started, "No workstreams detected in documents")

            if len(detection.workstreams) < self.config.min_workstreams:
                await self._abort(
                    result, user_id, started,
                    f"Insufficient workstreams detected: got {len(detection.workstreams)}, "
                    f"at least {self.config.min_workstreams} required",
                )

            # Detection cost is tracked by the LLM metrics, not the run total
            logger.info(f"✓ Detected {len(detection.workstreams)} workstreams")
            return list(detection.workstreams)

    # -- stage 4 -------------------------------------------------------------

    async def _extract_timeline(self, corpus: str, context: Dict[str, Any], result: ImportResult) -> None:
        logger.info("Stage 4/7: extracting timeline")
        with import_metrics.track_stage("timeline") as stage:
            if self.timeline_extractor is None:
                stage["outcome"] = StageOutcome.SKIPPED.value
                result.warnings.append("Timeline extractor not available - timeline skipped")
                return

            try:
                extraction = await self.timeline_extractor.extract(corpus, context)
            except Exception as e:
                stage["outcome"] = StageOutcome.DEGRADED.value
                result.warnings.append(f"Timeline extraction failed: {e}")
                logger.warning(f"⚠ Timeline extraction failed: {e}")
                return

            result.timeline = extraction.timeline
            result.add_cost("timeline_extraction", extraction.cost)
            logger.info(
                f"✓ Timeline: {len(result.timeline.phases)} phases, {len(result.timeline.milestones)} milestones"
            )

    # -- stage 5 -------------------------------------------------------------

    async def _create_dependencies(self, workstreams: List[Workstream], task_count: int, result: ImportResult) -> None:
        logger.info("Stage 5/7: creating dependencies")
        with import_metrics.track_stage("dependencies") as stage:
            if not self.config.enable_dependency_mapping or task_count < 2:
                stage["outcome"] = StageOutcome.SKIPPED.value
                result.warnings.append("Dependency mapper service not available or insufficient tasks")
                return

            try:
                outcome = await create_dependencies(
                    workstreams, result.project_id, self.store, max_distance=self.config.fuzzy_max_distance
                )
            except Exception as e:
                stage["outcome"] = StageOutcome.DEGRADED.value
                result.warnings.append(f"Dependency mapping failed: {e}")
                logger.warning(f"⚠ Dependency mapping failed: {e}")
                return

            result.dependencies = outcome.dependencies
            result.errors.extend(outcome.errors)
            result.warnings.extend(outcome.warnings)
            import_metrics.dependencies_created_total.inc(len(outcome.dependencies))
            if outcome.cycles:
                stage["outcome"] = StageOutcome.DEGRADED.value
                import_metrics.cycles_rejected_total.inc()

    # -- stage 6 -------------------------------------------------------------

    async def _assign_resources(self, documents: Sequence[Document], tasks, result: ImportResult) -> None:
        logger.info("Stage 6/7: parsing resources")
        with import_metrics.track_stage("resources") as stage:
            if self.resource_parser is None:
                stage["outcome"] = StageOutcome.SKIPPED.value
                result.warnings.append("Resource parser not available - resource assignment skipped")
                return

            effort_doc = find_effort_document(documents)
            if effort_doc is None:
                stage["outcome"] = StageOutcome.SKIPPED.value
                result.warnings.append("No Effort document found for resource parsing")
                return

            try:
                parsed = await self.resource_parser.parse_and_assign(
                    effort_doc.text, result.project_id, tasks, self.store
                )
            except Exception as e:
                stage["outcome"] = StageOutcome.DEGRADED.value
                result.warnings.append(f"Resource parsing failed: {e}")
                logger.warning(f"⚠ Resource parsing failed: {e}")
                return

            result.resource_assignments = parsed.assignments
            result.resources_needing_review = parsed.needs_review
            result.warnings.extend(parsed.warnings)
            logger.info(f"✓ {len(parsed.assignments)} resource assignments from {effort_doc.filename}")

    # -- stage 7 -------------------------------------------------------------

    async def _generate_checklists(
        self,
        workstreams: List[Workstream],
        corpus: str,
        context: Dict[str, Any],
        result: ImportResult,
    ) -> None:
        logger.info(f"Stage 7/7: generating checklists for {len(workstreams)} workstreams")
        with import_metrics.track_stage("checklists") as stage:
            if self.checklist_generator is None:
                stage["outcome"] = StageOutcome.SKIPPED.value
                result.warnings.append("Checklist generator not available - checklists skipped")
                return

            semaphore = asyncio.Semaphore(self.config.max_concurrent_checklists)

            async def generate(workstream: Workstream):
                async with semaphore:
                    return await self.checklist_generator.generate(workstream, corpus, context)

            outcomes = await asyncio.gather(*(generate(ws) for ws in workstreams), return_exceptions=True)

            # Aggregate in one place once every generation has finished
            for workstream, outcome in zip(workstreams, outcomes):
                if isinstance(outcome, Exception):
                    stage["outcome"] = StageOutcome.DEGRADED.value
                    result.warnings.append(f"Checklist generation failed for {workstream.name}: {outcome}")
                    logger.warning(f"⚠ Checklist generation failed for {workstream.name}: {outcome}")
                    continue

                result.add_cost("checklist_generation", outcome.cost)
                for checklist in outcome.checklists:
                    try:
                        await self.store.insert_checklist(checklist)
                    except Exception as e:
                        stage["outcome"] = StageOutcome.DEGRADED.value
                        result.warnings.append(f"Failed to save checklist for {workstream.name}: {e}")
                        logger.warning(f"⚠ Failed to save checklist for {workstream.name}: {e}")
                        continue
                    result.checklists_created += 1
                    result.checklist_items_created += checklist.item_count

            logger.info(
                f"✓ {result.checklists_created} checklists with {result.checklist_items_created} items"
            )

    # -- run record ----------------------------------------------------------

    def _build_run(self, result: ImportResult, user_id: Optional[str]) -> ImportRun:
        return ImportRun(
            project_id=result.project_id,
            user_id=user_id,
            documents_processed=result.documents_processed,
            workstreams_detected=len(result.workstreams),
            tasks_created=len(result.task_ids),
            phases_extracted=len(result.timeline.phases),
            milestones_extracted=len(result.timeline.milestones),
            dependencies_created=len(result.dependencies),
            resource_assignments=len(result.resource_assignments),
            checklists_created=result.checklists_created,
            checklist_items_created=result.checklist_items_created,
            ai_cost_breakdown=dict(result.ai_cost_breakdown),
            total_ai_cost_usd=result.total_cost,
            success=result.success,
            errors=list(result.errors),
            warnings=list(result.warnings),
            duration_ms=result.duration_ms,
        )

    async def _persist_run(self, result: ImportResult, user_id: Optional[str], started: float) -> None:
        result.duration_ms = int((time.time() - started) * 1000)
        try:
            result.run_id = await self.store.insert_run(self._build_run(result, user_id))
        except Exception as e:
            # Reported in the returned result; the stored record is what failed
            result.errors.append(f"Failed to save import run: {e}")
            logger.error(f"❌ Failed to save import run for project {result.project_id}: {e}")

    async def _finish(self, result: ImportResult, user_id: Optional[str], started: float) -> ImportResult:
        await self._persist_run(result, user_id, started)
        import_metrics.runs_total.labels(result="success" if result.success else "failed").inc()
        logger.info(
            f"{'✅' if result.success else '❌'} Import finished for project {result.project_id}: "
            f"{len(result.task_ids)} tasks, {len(result.dependencies)} dependencies, "
            f"{result.checklists_created} checklists, {len(result.errors)} errors, "
            f"{len(result.warnings)} warnings, ${result.total_cost:.4f} in {result.duration_ms}ms"
        )
        return result

    async def _abort(
        self,
        result: ImportResult,
        user_id: Optional[str],
        started: float,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Persist the failed run, then raise ImportFatalError."""
        result.success = False
        result.errors.append(message)
        logger.error(f"❌ Import aborted for project {result.project_id}: {message}")
        await self._persist_run(result, user_id, started)
        import_metrics.runs_total.labels(result="fatal").inc()
        raise ImportFatalError(message, result) from cause
