"""
Run Persistence Module
======================
Storage for import pipeline records - supports SQLite, PostgreSQL and memory.
Backend is selected via config.store_mode.

Every store exposes the same async interface:
- projects and members: upsert_project, get_project, add_project_member, list_project_members
- tasks: insert_task, list_tasks
- dependency edges: insert_edge_if_absent, list_edges
- checklists and resource assignments: insert_checklist, insert_assignment
- import runs (append-only): insert_run, load_run, list_runs
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite
import psycopg
from psycopg.rows import dict_row

from config import PipelineConfig
from import_types import (
    Checklist,
    DependencyEdge,
    ImportRun,
    ProjectMember,
    ResourceAssignment,
    Task,
    _dict_to_import_run,
    _dict_to_task,
    import_run_to_dict,
    task_to_dict,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _checklist_sections_json(checklist: Checklist) -> str:
    return json.dumps([
        {
            "name": s.name,
            "order": s.order,
            "items": [{"text": i.text, "required": i.required} for i in s.items],
        }
        for s in checklist.sections
    ])


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemoryImportStore:
    """Dict-backed store for tests, the CLI dry run and store_mode="memory"."""

    def __init__(self):
        self.projects: Dict[str, Dict[str, Any]] = {}
        self.members: Dict[str, List[ProjectMember]] = {}
        self.tasks: Dict[str, Task] = {}
        self.edges: List[DependencyEdge] = []
        self.checklists: List[Checklist] = []
        self.assignments: List[ResourceAssignment] = []
        self.runs: Dict[str, ImportRun] = {}

    async def init(self) -> None:
        return None

    async def upsert_project(self, project_id: str, name: str, description: Optional[str] = None) -> None:
        self.projects[project_id] = {"id": project_id, "name": name, "description": description}

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self.projects.get(project_id)

    async def add_project_member(self, project_id: str, member: ProjectMember) -> None:
        self.members.setdefault(project_id, []).append(member)

    async def list_project_members(self, project_id: str) -> List[ProjectMember]:
        return list(self.members.get(project_id, []))

    async def insert_task(self, task: Task) -> str:
        task_id = _new_id()
        self.tasks[task_id] = replace(task, id=task_id, depends_on=list(task.depends_on))
        return task_id

    async def list_tasks(self, project_id: str) -> List[Task]:
        return [t for t in self.tasks.values() if t.project_id == project_id]

    async def insert_edge_if_absent(self, project_id: str, edge: DependencyEdge) -> bool:
        for existing in self.edges:
            if (existing.source_task_id == edge.source_task_id
                    and existing.target_task_id == edge.target_task_id
                    and existing.relationship_type == edge.relationship_type):
                return False
        self.edges.append(edge)
        return True

    async def list_edges(self, project_id: str) -> List[DependencyEdge]:
        project_tasks = {t.id for t in self.tasks.values() if t.project_id == project_id}
        return [e for e in self.edges if e.source_task_id in project_tasks]

    async def insert_checklist(self, checklist: Checklist) -> str:
        checklist.id = _new_id()
        self.checklists.append(checklist)
        return checklist.id

    async def insert_assignment(self, assignment: ResourceAssignment) -> str:
        assignment.id = _new_id()
        self.assignments.append(assignment)
        return assignment.id

    async def insert_run(self, run: ImportRun) -> str:
        run_id = _new_id()
        self.runs[run_id] = replace(run, id=run_id)
        return run_id

    async def load_run(self, run_id: str) -> Optional[ImportRun]:
        return self.runs.get(run_id)

    async def list_runs(self, project_id: Optional[str] = None) -> List[ImportRun]:
        runs = [r for r in self.runs.values() if project_id is None or r.project_id == project_id]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)


# =============================================================================
# SQL STORE (SQLite / PostgreSQL)
# =============================================================================

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_members (
        project_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        username TEXT NOT NULL,
        full_name TEXT,
        PRIMARY KEY (project_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        parent_task_id TEXT,
        hierarchy_level INTEGER NOT NULL DEFAULT 0,
        is_epic INTEGER NOT NULL DEFAULT 0,
        start_date TEXT,
        due_date TEXT,
        depends_on_json TEXT,
        assignee TEXT,
        effort_estimate_hours REAL,
        estimate_confidence REAL,
        status TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_dependencies (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        source_task_id TEXT NOT NULL,
        target_task_id TEXT NOT NULL,
        relationship_type TEXT NOT NULL,
        created_at TEXT,
        UNIQUE (source_task_id, target_task_id, relationship_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checklists (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        related_task_id TEXT,
        title TEXT NOT NULL,
        description TEXT,
        generation_source TEXT,
        sections_json TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS resource_assignments (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        task_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        user_name TEXT,
        effort_hours REAL,
        match_confidence REAL,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS import_runs (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        success INTEGER NOT NULL,
        created_at TEXT,
        run_json TEXT NOT NULL
    )
    """,
]


class SqlImportStore:
    """
    SQL-backed store. SQL is written with `?` placeholders and rewritten
    to `%s` for PostgreSQL.
    """

    def __init__(self, db_type: str, conn_info: str):
        if db_type not in ("sqlite", "postgres"):
            raise ValueError(f"Unknown store backend: {db_type}")
        self.db_type = db_type
        self.conn_info = conn_info

    @asynccontextmanager
    async def _connect(self):
        if self.db_type == "postgres":
            async with await psycopg.AsyncConnection.connect(
                self.conn_info, autocommit=True, row_factory=dict_row
            ) as conn:
                yield conn
        else:
            # WAL mode for better concurrency
            async with aiosqlite.connect(self.conn_info) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA busy_timeout=5000")
                yield db
                await db.commit()

    def _sql(self, sql: str) -> str:
        return sql.replace("?", "%s") if self.db_type == "postgres" else sql

    async def _execute(self, sql: str, params: Tuple = ()) -> int:
        async with self._connect() as conn:
            cursor = await conn.execute(self._sql(sql), params)
            return cursor.rowcount

    async def _fetchall(self, sql: str, params: Tuple = ()) -> List[Any]:
        async with self._connect() as conn:
            cursor = await conn.execute(self._sql(sql), params)
            return await cursor.fetchall()

    async def init(self) -> None:
        """Create tables if they don't exist."""
        async with self._connect() as conn:
            for statement in _SCHEMA:
                await conn.execute(statement)
        logger.info(f"✅ Import tables initialized ({self.db_type})")

    # -- projects ------------------------------------------------------------

    async def upsert_project(self, project_id: str, name: str, description: Optional[str] = None) -> None:
        await self._execute(
            """
            INSERT INTO projects (id, name, description) VALUES (?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET name = excluded.name, description = excluded.description
            """,
            (project_id, name, description),
        )

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetchall("SELECT id, name, description FROM projects WHERE id = ?", (project_id,))
        if not rows:
            return None
        row = rows[0]
        return {"id": row["id"], "name": row["name"], "description": row["description"]}

    async def add_project_member(self, project_id: str, member: ProjectMember) -> None:
        await self._execute(
            """
            INSERT INTO project_members (project_id, user_id, username, full_name) VALUES (?, ?, ?, ?)
            ON CONFLICT (project_id, user_id) DO NOTHING
            """,
            (project_id, member.user_id, member.username, member.full_name),
        )

    async def list_project_members(self, project_id: str) -> List[ProjectMember]:
        rows = await self._fetchall(
            "SELECT user_id, username, full_name FROM project_members WHERE project_id = ? ORDER BY username",
            (project_id,),
        )
        return [ProjectMember(user_id=r["user_id"], username=r["username"], full_name=r["full_name"]) for r in rows]

    # -- tasks ---------------------------------------------------------------

    async def insert_task(self, task: Task) -> str:
        task_id = _new_id()
        data = task_to_dict(task)
        await self._execute(
            """
            INSERT INTO tasks
            (id, project_id, title, description, parent_task_id, hierarchy_level, is_epic,
             start_date, due_date, depends_on_json, assignee, effort_estimate_hours,
             estimate_confidence, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task_id, data["project_id"], data["title"], data["description"], data["parent_task_id"],
                data["hierarchy_level"], 1 if data["is_epic"] else 0, data["start_date"], data["due_date"],
                json.dumps(data["depends_on"]), data["assignee"], data["effort_estimate_hours"],
                data["estimate_confidence"], data["status"], data["created_at"],
            ),
        )
        return task_id

    async def list_tasks(self, project_id: str) -> List[Task]:
        rows = await self._fetchall(
            """
            SELECT id, project_id, title, description, parent_task_id, hierarchy_level, is_epic,
                   start_date, due_date, depends_on_json, assignee, effort_estimate_hours,
                   estimate_confidence, status, created_at
            FROM tasks WHERE project_id = ? ORDER BY created_at
            """,
            (project_id,),
        )
        tasks = []
        for row in rows:
            data = {key: row[key] for key in row.keys()}
            data["depends_on"] = json.loads(data.pop("depends_on_json") or "[]")
            tasks.append(_dict_to_task(data))
        return tasks

    # -- dependency edges ----------------------------------------------------

    async def insert_edge_if_absent(self, project_id: str, edge: DependencyEdge) -> bool:
        """Insert an edge; an existing identical edge is a no-op returning False."""
        rowcount = await self._execute(
            """
            INSERT INTO task_dependencies
            (id, project_id, source_task_id, target_task_id, relationship_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (source_task_id, target_task_id, relationship_type) DO NOTHING
            """,
            (_new_id(), project_id, edge.source_task_id, edge.target_task_id,
             edge.relationship_type, datetime.now().isoformat()),
        )
        return rowcount == 1

    async def list_edges(self, project_id: str) -> List[DependencyEdge]:
        rows = await self._fetchall(
            """
            SELECT d.source_task_id, s.title AS source_title,
                   d.target_task_id, t.title AS target_title, d.relationship_type
            FROM task_dependencies d
            LEFT JOIN tasks s ON s.id = d.source_task_id
            LEFT JOIN tasks t ON t.id = d.target_task_id
            WHERE d.project_id = ?
            ORDER BY d.created_at
            """,
            (project_id,),
        )
        return [
            DependencyEdge(
                source_task_id=r["source_task_id"],
                target_task_id=r["target_task_id"],
                source_label=r["source_title"] or "",
                target_label=r["target_title"] or "",
                relationship_type=r["relationship_type"],
            )
            for r in rows
        ]

    # -- checklists and assignments ------------------------------------------

    async def insert_checklist(self, checklist: Checklist) -> str:
        checklist_id = _new_id()
        await self._execute(
            """
            INSERT INTO checklists
            (id, project_id, related_task_id, title, description, generation_source, sections_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (checklist_id, checklist.project_id, checklist.related_task_id, checklist.title,
             checklist.description, checklist.generation_source, _checklist_sections_json(checklist),
             datetime.now().isoformat()),
        )
        checklist.id = checklist_id
        return checklist_id

    async def insert_assignment(self, assignment: ResourceAssignment) -> str:
        assignment_id = _new_id()
        await self._execute(
            """
            INSERT INTO resource_assignments
            (id, project_id, task_id, user_id, user_name, effort_hours, match_confidence, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (assignment_id, assignment.project_id, assignment.task_id, assignment.user_id,
             assignment.user_name, assignment.effort_hours, assignment.match_confidence,
             datetime.now().isoformat()),
        )
        assignment.id = assignment_id
        return assignment_id

    # -- import runs -----------------------------------------------------------

    async def insert_run(self, run: ImportRun) -> str:
        run_id = _new_id()
        data = import_run_to_dict(replace(run, id=run_id))
        await self._execute(
            "INSERT INTO import_runs (id, project_id, success, created_at, run_json) VALUES (?, ?, ?, ?, ?)",
            (run_id, run.project_id, 1 if run.success else 0, data["created_at"], json.dumps(data)),
        )
        logger.debug(f"💾 Saved import run: {run_id} (success: {run.success})")
        return run_id

    async def load_run(self, run_id: str) -> Optional[ImportRun]:
        rows = await self._fetchall("SELECT run_json FROM import_runs WHERE id = ?", (run_id,))
        if not rows:
            return None
        return _dict_to_import_run(json.loads(rows[0]["run_json"]))

    async def list_runs(self, project_id: Optional[str] = None) -> List[ImportRun]:
        if project_id is None:
            rows = await self._fetchall("SELECT run_json FROM import_runs ORDER BY created_at DESC")
        else:
            rows = await self._fetchall(
                "SELECT run_json FROM import_runs WHERE project_id = ? ORDER BY created_at DESC",
                (project_id,),
            )
        return [_dict_to_import_run(json.loads(r["run_json"])) for r in rows]


def create_store(config: Optional[PipelineConfig] = None):
    """Build the store selected by config.store_mode."""
    config = config or PipelineConfig()
    mode = config.store_mode.lower()

    if mode == "memory":
        return InMemoryImportStore()
    if mode == "sqlite":
        return SqlImportStore("sqlite", str(config.get_sqlite_path()))
    if mode == "postgres":
        return SqlImportStore("postgres", config.get_postgres_uri())
    raise ValueError(f"Unknown store_mode: {config.store_mode}")
