"""
Services Module - Checklist Generation
======================================
Generates an actionable checklist for one workstream.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from langchain_core.prompts import ChatPromptTemplate

from config import PipelineConfig
from import_types import Checklist, ChecklistItem, ChecklistSection, Workstream
from llm_client import ainvoke_llm, extract_json, get_llm, response_text, token_usage
from metrics import estimate_llm_cost, llm_metrics

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 15000


class ChecklistItemSchema(BaseModel):
    text: str
    notes: Optional[str] = None
    priority: Optional[str] = None


class ChecklistSectionSchema(BaseModel):
    title: str = "General"
    items: List[ChecklistItemSchema] = Field(default_factory=list)


class ChecklistResponse(BaseModel):
    """LLM reply for checklist generation."""
    title: Optional[str] = None
    description: str = ""
    sections: List[ChecklistSectionSchema]


@dataclass
class ChecklistGeneration:
    checklists: List[Checklist] = field(default_factory=list)
    cost: float = 0.0


SYSTEM_PROMPT = """You are a project management expert creating focused, actionable checklists for specific work areas.
Each checklist item should be clear, measurable, and achievable.

OUTPUT FORMAT (JSON):
{{
  "title": "<workstream name> Checklist",
  "description": "Brief 1-2 sentence description of this checklist's purpose",
  "sections": [
    {{
      "title": "Section name (e.g., 'Planning', 'Execution', 'Validation')",
      "items": [
        {{"text": "Specific actionable task", "notes": "Context or document reference", "priority": "high | medium | low"}}
      ]
    }}
  ]
}}

CRITICAL RULES:
- Return ONLY valid JSON
- At least 2 sections, each with at least 2 items, 5-15 items in total
- Start each item with an action verb"""

USER_PROMPT = """Generate a focused, actionable checklist for this specific work area.

WORKSTREAM DETAILS:
Name: {name}
Description: {description}
Phase: {phase}
Complexity: {complexity}
Key Requirements:
{requirements}
Document Sections Referenced:
{sections}

FULL DOCUMENT (for context):
{corpus}"""


def build_checklist(
    response: ChecklistResponse,
    workstream: Workstream,
    project_id: str,
) -> Checklist:
    """
    Convert the LLM reply into a Checklist, dropping empty sections.

    Raises:
        ValueError: If no section has any items
    """
    sections = []
    for order, section in enumerate(s for s in response.sections if s.items):
        sections.append(ChecklistSection(
            name=section.title,
            order=order,
            items=[
                ChecklistItem(text=item.text, required=(item.priority or "").lower() == "high")
                for item in section.items
            ],
        ))

    if not sections:
        raise ValueError("Generated checklist has no valid sections with items")

    return Checklist(
        project_id=project_id,
        title=response.title or f"{workstream.name} Checklist",
        description=response.description,
        related_task_id=workstream.task_id,
        sections=sections,
    )


class ChecklistGenerator:
    def __init__(self, config: Optional[PipelineConfig] = None, llm=None):
        self.config = config or PipelineConfig()
        self.llm = llm or get_llm(self.config.checklist_model)
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", SYSTEM_PROMPT),
            ("user", USER_PROMPT),
        ])

    async def generate(self, workstream: Workstream, corpus: str, context: Dict[str, Any]) -> ChecklistGeneration:
        logger.info(f"  → Generating checklist for: {workstream.name}")

        messages = self.prompt.format_messages(
            name=workstream.name,
            description=workstream.description,
            phase=workstream.suggested_phase,
            complexity=workstream.estimated_complexity.value,
            requirements="\n".join(f"{i + 1}. {r}" for i, r in enumerate(workstream.key_requirements)) or "None listed",
            sections="\n".join(workstream.document_sections) or "None listed",
            corpus=corpus[:CONTEXT_CHARS],
        )

        model = self.config.checklist_model
        with llm_metrics.track_request(model.model_name, model.provider) as request:
            response = await ainvoke_llm(self.llm, messages)
            prompt_tokens, completion_tokens = token_usage(response)
            cost = estimate_llm_cost(model.model_name, prompt_tokens, completion_tokens)
            request["prompt_tokens"] = prompt_tokens
            request["completion_tokens"] = completion_tokens
            request["cost"] = cost

        parsed = ChecklistResponse.model_validate(extract_json(response_text(response)))
        checklist = build_checklist(parsed, workstream, context["project_id"])
        logger.info(f"    ✓ {len(checklist.sections)} sections, {checklist.item_count} items")

        return ChecklistGeneration(checklists=[checklist], cost=cost)
