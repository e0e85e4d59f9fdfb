"""
Document Import — Entry Point
=============================
Version 1.0 — October 2026

Command-line entry point: reads document files, runs the import pipeline
against the configured store and prints a summary.

Example:
    python src/main.py sow.md effort.md --project-id acme-portal \\
        --classification effort.md=Effort --member u1:jane.smith
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path

# Add src to path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

# Disable LangSmith tracing by default to prevent warnings
if "LANGCHAIN_TRACING_V2" not in os.environ:
    os.environ["LANGCHAIN_TRACING_V2"] = "false"

from config import ModelConfig, PipelineConfig
from import_types import Document, ImportFatalError, ProjectMember, import_result_to_dict
from run_persistence import create_store
from services import build_pipeline

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("main")

# Suppress noisy LangChain callback warnings about serialization
logging.getLogger("langchain_core.callbacks.manager").setLevel(logging.ERROR)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import project documents into tasks, dependencies and checklists")
    parser.add_argument("files", nargs="+", help="Text or markdown documents to import")
    parser.add_argument("--project-id", required=True, help="Project to import into")
    parser.add_argument("--project-name", help="Create or rename the project")
    parser.add_argument("--user-id", help="User recorded on the import run")
    parser.add_argument("--start-date", type=date.fromisoformat, help="Project start date (YYYY-MM-DD, default: today)")
    parser.add_argument("--classification", action="append", default=[], metavar="FILE=CLASS",
                        help="Document classification, e.g. effort.md=Effort (repeatable)")
    parser.add_argument("--member", action="append", default=[], metavar="USER_ID:USERNAME",
                        help="Project member available for resource assignment (repeatable)")
    parser.add_argument("--provider", type=str,
                        choices=["openai", "anthropic", "google", "openrouter", "local"],
                        help="LLM provider for every AI stage (default: config.py)")
    parser.add_argument("--model", type=str, help="Model name (e.g., gpt-4o, claude-sonnet-4-20250514)")
    parser.add_argument("--store", choices=["sqlite", "postgres", "memory"], default="sqlite",
                        help="Where tasks and run records are written (default: sqlite)")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--no-timeline", action="store_true", help="Skip timeline extraction")
    parser.add_argument("--no-dependencies", action="store_true", help="Skip dependency mapping")
    parser.add_argument("--no-resources", action="store_true", help="Skip resource parsing")
    parser.add_argument("--no-checklists", action="store_true", help="Skip checklist generation")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    return parser


def build_config(args) -> PipelineConfig:
    config = PipelineConfig(
        enable_timeline=not args.no_timeline,
        enable_dependency_mapping=not args.no_dependencies,
        enable_resource_parsing=not args.no_resources,
        enable_checklists=not args.no_checklists,
        store_mode=args.store,
        sqlite_path=args.db,
    )

    # Only override models if the user asked for it
    if args.provider or args.model:
        for field_name in ("detector_model", "timeline_model", "checklist_model"):
            current: ModelConfig = getattr(config, field_name)
            setattr(config, field_name, ModelConfig(
                provider=args.provider or current.provider,
                model_name=args.model or current.model_name,
                temperature=current.temperature,
                max_tokens=current.max_tokens,
            ))
    return config


def load_documents(files, classifications) -> list:
    labels = {}
    for entry in classifications:
        name, _, label = entry.partition("=")
        labels[Path(name).name] = label or None

    documents = []
    for file in files:
        path = Path(file)
        documents.append(Document(
            filename=path.name,
            text=path.read_text(encoding="utf-8"),
            classification=labels.get(path.name),
        ))
    return documents


async def main():
    """Main entry point (async version)."""
    args = build_parser().parse_args()

    from dotenv import load_dotenv
    load_dotenv()

    config = build_config(args)
    documents = load_documents(args.files, args.classification)

    print(f"\n{'='*60}")
    print("DOCUMENT IMPORT")
    print(f"{'='*60}")
    print(f"Project: {args.project_id}")
    print(f"Documents: {', '.join(d.filename for d in documents)}")
    print(f"Detector: {config.detector_model.provider}/{config.detector_model.model_name}")
    print(f"Store: {config.store_mode}")
    print(f"{'='*60}\n")

    try:
        store = create_store(config)
        await store.init()

        if args.project_name:
            await store.upsert_project(args.project_id, args.project_name)
        for entry in args.member:
            user_id, _, username = entry.partition(":")
            await store.add_project_member(args.project_id, ProjectMember(user_id=user_id, username=username or user_id))

        pipeline = build_pipeline(store, config)
        result = await pipeline.analyze(documents, args.project_id, user_id=args.user_id,
                                        project_start_date=args.start_date)

    except ImportFatalError as e:
        logger.error(f"💥 IMPORT ABORTED: {e}")
        print(f"Run record: {e.result.run_id}")
        return 2
    except Exception as e:
        logger.error(f"💥 FATAL ERROR: {e}")
        import traceback
        traceback.print_exc()
        return 1

    if args.json:
        print(json.dumps(import_result_to_dict(result), indent=2))
        return 0 if result.success else 1

    print(f"\n{'='*60}")
    print("IMPORT COMPLETE" if result.success else "IMPORT FAILED")
    print(f"{'='*60}")
    print(f"Workstreams: {len(result.workstreams)}")
    for ws in result.workstreams:
        status_icon = "[OK]" if ws.task_id else "[X]"
        level = "?" if ws.hierarchy_level is None else ws.hierarchy_level
        print(f"  {status_icon} L{level} {ws.name}")
    print(f"Tasks created: {len(result.task_ids)}")
    print(f"Phases / milestones: {len(result.timeline.phases)} / {len(result.timeline.milestones)}")
    print(f"Dependencies: {len(result.dependencies)}")
    print(f"Resource assignments: {len(result.resource_assignments)} "
          f"({len(result.resources_needing_review)} need review)")
    print(f"Checklists: {result.checklists_created} ({result.checklist_items_created} items)")
    print(f"AI cost: ${result.total_cost:.4f}")
    for warning in result.warnings:
        print(f"  ⚠ {warning}")
    for error in result.errors:
        print(f"  ❌ {error}")
    print(f"Run record: {result.run_id} ({result.duration_ms}ms)")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
