"""
Services Module - Workstream Detection
======================================
Asks an LLM to split the combined document corpus into 3-10 distinct
workstreams and validates what comes back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from langchain_core.prompts import ChatPromptTemplate

from config import PipelineConfig
from import_types import Complexity, Workstream
from llm_client import ainvoke_llm, extract_json, get_llm, response_text, token_usage
from metrics import estimate_llm_cost, llm_metrics

logger = logging.getLogger(__name__)


class WorkstreamDetectionError(Exception):
    """The detector's reply was unusable (bad JSON, bad shape, too few workstreams)."""


# =============================================================================
# PYDANTIC SCHEMAS
# =============================================================================

class WorkstreamSchema(BaseModel):
    """One workstream as returned by the LLM."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    document_sections: Optional[List[str]] = Field(default=None, alias="documentSections")
    key_requirements: Optional[List[str]] = Field(default=None, alias="keyRequirements")
    estimated_complexity: Optional[str] = Field(default=None, alias="estimatedComplexity")
    dependencies: Optional[List[str]] = None
    suggested_phase: Optional[str] = Field(default=None, alias="suggestedPhase")
    hierarchy_level: Optional[int] = Field(default=None, alias="hierarchyLevel")
    parent: Optional[str] = None
    is_epic: Optional[bool] = Field(default=None, alias="isEpic")
    effort_hours: Optional[float] = Field(default=None, alias="effortHours")


class DetectionSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_type: Optional[str] = Field(default=None, alias="documentType")
    overall_scope: Optional[str] = Field(default=None, alias="overallScope")


class DetectionResponse(BaseModel):
    """Full LLM reply for workstream detection."""
    workstreams: List[WorkstreamSchema]
    summary: Optional[DetectionSummary] = None


@dataclass
class DetectionResult:
    workstreams: List[Workstream]
    summary: Dict[str, Any] = field(default_factory=dict)
    document_length: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def tokens_used(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# =============================================================================
# PROMPT
# =============================================================================

SYSTEM_PROMPT = """You are an expert project analyst specializing in document analysis and work breakdown structure.
You identify distinct, non-overlapping work areas in project documents.

OUTPUT FORMAT (JSON):
{{
  "workstreams": [
    {{
      "id": "workstream-1",
      "name": "Clear descriptive name (e.g., 'Infrastructure Assessment and Planning')",
      "description": "2-3 sentence description of this work area and its scope",
      "documentSections": ["Section 2.1: Current State Analysis"],
      "keyRequirements": ["Specific requirement or deliverable 1", "..."],
      "estimatedComplexity": "low | medium | high",
      "dependencies": ["workstream-2"],
      "suggestedPhase": "Planning | Implementation | Testing | Deployment | Post-Deployment",
      "hierarchyLevel": 0,
      "parent": null,
      "isEpic": true,
      "effortHours": null
    }}
  ],
  "summary": {{
    "documentType": "SOW | Requirements Document | Technical Specification | Project Plan | Other",
    "overallScope": "2-3 sentence summary of the overall document scope and purpose"
  }}
}}

CRITICAL RULES:
- Return ONLY valid JSON (no markdown, no explanations)
- Each workstream MUST be distinct and substantial, with at least 3 keyRequirements
- Top-level workstreams have hierarchyLevel 0; nested ones name their parent workstream in "parent"
- Dependencies must reference valid workstream IDs
- Minimum {min_workstreams} workstreams, maximum {max_workstreams} workstreams"""

USER_PROMPT = """Analyze these documents and identify distinct work areas, phases, or workstreams.

PROJECT CONTEXT:
- Project: {project_name}
- Documents: {document_names}
- Description: {project_description}

DOCUMENT CONTENT:
{corpus}

GUIDELINES:
1. Look for natural divisions: phases, components, functional areas, deliverables, stages
2. Each workstream should be substantial enough for 5-15 actionable tasks
3. Avoid excessive granularity and overlapping workstreams
4. Use clear, descriptive names, not "Section 1" or "Phase 1"
5. Identify logical dependencies (which workstreams should be completed before others)

Analyze the documents now and return the JSON."""


def truncate_corpus(corpus: str, max_chars: int) -> str:
    if len(corpus) <= max_chars:
        return corpus
    return corpus[:max_chars] + "\n\n[Document truncated for analysis...]"


def _coerce_complexity(value: Optional[str]) -> Complexity:
    try:
        return Complexity((value or "").lower())
    except ValueError:
        return Complexity.MEDIUM


def parse_workstream_response(
    raw_response: str,
    min_workstreams: int = 3,
    max_workstreams: int = 10,
) -> Tuple[List[Workstream], Dict[str, Any]]:
    """
    Parse and validate the detector's reply.

    Workstreams without a name or description are skipped. Fewer than
    `min_workstreams` usable entries raises; more than `max_workstreams`
    are truncated.

    Raises:
        WorkstreamDetectionError: On malformed JSON or schema, or too few workstreams
    """
    try:
        parsed = DetectionResponse.model_validate(extract_json(raw_response))
    except ValueError as e:
        # pydantic's ValidationError is a ValueError too
        logger.error(f"Raw response preview: {raw_response[:500]}")
        if isinstance(e, ValidationError):
            raise WorkstreamDetectionError(f"Invalid workstream structure from AI: {e}") from e
        raise WorkstreamDetectionError(str(e)) from e

    workstreams: List[Workstream] = []
    for index, ws in enumerate(parsed.workstreams):
        if not (ws.name and ws.name.strip()) or not (ws.description and ws.description.strip()):
            logger.warning("⚠ Skipping workstream without name or description")
            continue
        workstreams.append(Workstream(
            id=ws.id or f"workstream-{index + 1}",
            name=ws.name.strip(),
            description=ws.description.strip(),
            hierarchy_level=ws.hierarchy_level,
            parent_ref=ws.parent or None,
            dependencies=list(ws.dependencies or []),
            estimated_complexity=_coerce_complexity(ws.estimated_complexity),
            key_requirements=list(ws.key_requirements or []),
            document_sections=list(ws.document_sections or []),
            suggested_phase=ws.suggested_phase or "Implementation",
            is_epic=ws.is_epic,
            effort_hours=ws.effort_hours,
        ))

    if not workstreams:
        raise WorkstreamDetectionError("No valid workstreams generated by AI")

    if len(workstreams) < min_workstreams:
        raise WorkstreamDetectionError(
            f"Insufficient workstreams detected: AI generated only {len(workstreams)} workstream(s), "
            f"but at least {min_workstreams} distinct workstreams are required"
        )

    if len(workstreams) > max_workstreams:
        logger.warning(f"AI generated {len(workstreams)} workstreams, limiting to {max_workstreams}")
        workstreams = workstreams[:max_workstreams]

    summary = {
        "total_workstreams": len(workstreams),
        "document_type": (parsed.summary.document_type if parsed.summary else None) or "Unknown",
        "overall_scope": (parsed.summary.overall_scope if parsed.summary else None) or "Document analysis completed",
    }
    return workstreams, summary


class WorkstreamDetector:
    """
    LLM-backed workstream detector.

    Token usage is reported in the result; its cost is tracked by the
    LLM metrics only, not by the import run.
    """

    def __init__(self, config: Optional[PipelineConfig] = None, llm=None):
        self.config = config or PipelineConfig()
        self.llm = llm or get_llm(self.config.detector_model)
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", SYSTEM_PROMPT),
            ("user", USER_PROMPT),
        ])

    async def detect(self, corpus: str, context: Dict[str, Any]) -> DetectionResult:
        logger.info("🔍 Analyzing documents for workstreams...")

        messages = self.prompt.format_messages(
            min_workstreams=self.config.min_workstreams,
            max_workstreams=self.config.max_workstreams,
            project_name=context.get("project_name") or "Unknown",
            document_names=", ".join(context.get("document_names") or []) or "Unknown",
            project_description=context.get("project_description") or "Not provided",
            corpus=truncate_corpus(corpus, self.config.max_corpus_chars),
        )

        model = self.config.detector_model
        with llm_metrics.track_request(model.model_name, model.provider) as request:
            response = await ainvoke_llm(self.llm, messages)
            prompt_tokens, completion_tokens = token_usage(response)
            request["prompt_tokens"] = prompt_tokens
            request["completion_tokens"] = completion_tokens
            request["cost"] = estimate_llm_cost(model.model_name, prompt_tokens, completion_tokens)

        raw = response_text(response)
        logger.debug(f"Raw AI response length: {len(raw)}")

        workstreams, summary = parse_workstream_response(
            raw,
            min_workstreams=self.config.min_workstreams,
            max_workstreams=self.config.max_workstreams,
        )
        logger.info(f"✅ Identified {len(workstreams)} workstreams")

        return DetectionResult(
            workstreams=workstreams,
            summary=summary,
            document_length=len(corpus),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
