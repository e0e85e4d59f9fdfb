"""
Document Import — Configuration
===============================
Version 1.0 — October 2026

Configuration classes for the document import pipeline.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class ModelConfig:
    """LLM model configuration."""
    provider: str  # "anthropic", "openai", "google", "openrouter", "local"
    model_name: str
    temperature: float = 0.5
    max_tokens: Optional[int] = None


@dataclass
class PipelineConfig:
    """Main import pipeline configuration."""

    # Model configurations for the AI collaborators
    detector_model: ModelConfig = field(default_factory=lambda: ModelConfig(
        provider="openai",
        model_name="gpt-4o",
        temperature=0.5,
        max_tokens=3000
    ))

    timeline_model: ModelConfig = field(default_factory=lambda: ModelConfig(
        provider="openai",
        model_name="gpt-4o",
        temperature=0.3,
        max_tokens=2000
    ))

    checklist_model: ModelConfig = field(default_factory=lambda: ModelConfig(
        provider="openai",
        model_name="gpt-4o",
        temperature=0.4,
        max_tokens=3000
    ))

    # Capability flags for the optional stages.
    # A disabled stage behaves exactly like a missing collaborator.
    enable_timeline: bool = True
    enable_dependency_mapping: bool = True
    enable_resource_parsing: bool = True
    enable_checklists: bool = True

    # Workstream detection limits
    min_workstreams: int = 3
    max_workstreams: int = 10
    max_corpus_chars: int = 30000

    # Matching
    fuzzy_max_distance: int = 3

    # Limit parallel checklist LLM calls for rate limits
    max_concurrent_checklists: int = 5

    # Storage
    store_mode: str = "sqlite"  # "sqlite", "postgres", or "memory"
    sqlite_path: Optional[str] = None  # Defaults to <repo>/imports.db
    postgres_uri: Optional[str] = None  # Falls back to POSTGRES_URI env var

    def get_sqlite_path(self) -> Path:
        """Resolve the SQLite database file."""
        if self.sqlite_path:
            return Path(self.sqlite_path)
        return Path(__file__).parent.parent / "imports.db"

    def get_postgres_uri(self) -> str:
        uri = self.postgres_uri or os.getenv("POSTGRES_URI")
        if not uri:
            raise ValueError("PostgreSQL mode requires POSTGRES_URI in config or environment")
        return uri
