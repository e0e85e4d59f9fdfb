"""
Services Package
================
AI and parsing collaborators used by the import pipeline.
"""

from typing import Optional

from config import PipelineConfig
from importer import ImportPipeline

from .workstream_detector import WorkstreamDetector, WorkstreamDetectionError, parse_workstream_response
from .timeline_extractor import TimelineExtractor, parse_timeframe, parse_milestone_date
from .resource_parser import ResourceParser, parse_resources
from .checklist_generator import ChecklistGenerator


def build_pipeline(store, config: Optional[PipelineConfig] = None) -> ImportPipeline:
    """Wire the default collaborators into an ImportPipeline."""
    config = config or PipelineConfig()
    return ImportPipeline(
        store,
        workstream_detector=WorkstreamDetector(config),
        timeline_extractor=TimelineExtractor(config) if config.enable_timeline else None,
        resource_parser=ResourceParser(max_distance=config.fuzzy_max_distance) if config.enable_resource_parsing else None,
        checklist_generator=ChecklistGenerator(config) if config.enable_checklists else None,
        config=config,
    )


__all__ = [
    "build_pipeline",
    "WorkstreamDetector",
    "WorkstreamDetectionError",
    "parse_workstream_response",
    "TimelineExtractor",
    "parse_timeframe",
    "parse_milestone_date",
    "ResourceParser",
    "parse_resources",
    "ChecklistGenerator",
]
