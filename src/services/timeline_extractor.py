"""
Services Module - Timeline Extraction
=====================================
Extracts project phases and milestones from the document corpus.

The LLM path is tried first; when it fails, a line-oriented heuristic
parser handles documents written as

    Phase 1: Discovery (Week 1-2)
    Milestones:
    - Requirements sign-off (End of Discovery)

Relative timeframes ("Week 3-4", "Month 2", "Q1 2026") are anchored to
the project start date.
"""

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field
from langchain_core.prompts import ChatPromptTemplate

from config import PipelineConfig
from import_types import Milestone, Phase, Timeline
from llm_client import ainvoke_llm, extract_json, get_llm, response_text, token_usage
from metrics import estimate_llm_cost, llm_metrics

logger = logging.getLogger(__name__)

DateRange = Tuple[Optional[date], Optional[date]]

_MONTHS = {name.lower(): i for i, name in enumerate(calendar.month_abbr) if name}

_ISO_RANGE = re.compile(r"(\d{4}-\d{2}-\d{2})(?:\s*(?:-|to|–)\s*(\d{4}-\d{2}-\d{2}))?")
_NAMED_RANGE = re.compile(
    r"([a-z]{3})[a-z]*\.?\s+(\d{1,2})\b(?:\s*-\s*(?:([a-z]{3})[a-z]*\.?\s+)?(\d{1,2}))?,?\s*(\d{4})?",
    re.IGNORECASE,
)
_WEEK = re.compile(r"week\s+(\d+)(?:\s*-\s*(\d+))?", re.IGNORECASE)
_MONTH = re.compile(r"month\s+(\d+)(?:\s*-\s*(\d+))?", re.IGNORECASE)
_QUARTER = re.compile(r"q([1-4])(?:\s+(\d{4}))?", re.IGNORECASE)
_END_OF = re.compile(r"end\s+of\s+(?:phase\s+)?(.+)", re.IGNORECASE)

_PHASE_LINE = re.compile(r"^(?:phase|stage|sprint)\s+(\d+|[IVX]+)?:?\s+([^(]+?)(?:\s*\(([^)]+)\))?$", re.IGNORECASE)
_MILESTONE_HEADER = re.compile(r"^milestones?:?\s*$", re.IGNORECASE)
_MILESTONE_LINE = re.compile(r"^[-•*]?\s*(.+?)\s*\(([^)]+)\)\s*$")
_SECTION_BREAK = re.compile(r"^(?:phase|stage|task|key\s+task)s?:?", re.IGNORECASE)


# =============================================================================
# DATE PARSING
# =============================================================================

def _shift_months(anchor: date, months: int) -> date:
    """First day of the month `months` after anchor's month."""
    index = anchor.month - 1 + months
    return date(anchor.year + index // 12, index % 12 + 1, 1)


def _month_end(first_of_month: date) -> date:
    last_day = calendar.monthrange(first_of_month.year, first_of_month.month)[1]
    return first_of_month.replace(day=last_day)


def _named_date(month_name: str, day: str, year: int) -> Optional[date]:
    month = _MONTHS.get(month_name.lower()[:3])
    if month is None:
        return None
    try:
        return date(year, month, int(day))
    except ValueError:
        return None


def parse_timeframe(timeframe: Optional[str], base_date: date) -> DateRange:
    """
    Convert a timeframe string into a (start, end) date pair.

    Supports ISO dates and ranges, "Jan 5 - Jan 30, 2026", "Week a[-b]",
    "Month a[-b]" and "Q<n> [year]". Unrecognised text gives (None, None).
    """
    if not timeframe:
        return None, None

    iso = _ISO_RANGE.search(timeframe)
    if iso:
        start = date.fromisoformat(iso.group(1))
        end = date.fromisoformat(iso.group(2)) if iso.group(2) else start
        return start, end

    for named in _NAMED_RANGE.finditer(timeframe):
        if named.group(1).lower() not in _MONTHS:
            continue
        year = int(named.group(5)) if named.group(5) else base_date.year
        start = _named_date(named.group(1), named.group(2), year)
        if named.group(4):
            end = _named_date(named.group(3) or named.group(1), named.group(4), year)
        else:
            end = start
        if start is not None:
            return start, end

    week = _WEEK.search(timeframe)
    if week:
        first = int(week.group(1))
        last = int(week.group(2)) if week.group(2) else first
        return (
            base_date + timedelta(days=(first - 1) * 7),
            base_date + timedelta(days=last * 7 - 1),
        )

    month = _MONTH.search(timeframe)
    if month:
        first = int(month.group(1))
        last = int(month.group(2)) if month.group(2) else first
        return _shift_months(base_date, first - 1), _month_end(_shift_months(base_date, last - 1))

    quarter = _QUARTER.search(timeframe)
    if quarter:
        q = int(quarter.group(1))
        year = int(quarter.group(2)) if quarter.group(2) else base_date.year
        start = date(year, (q - 1) * 3 + 1, 1)
        return start, _month_end(date(year, q * 3, 1))

    return None, None


def parse_milestone_date(
    timeframe: Optional[str],
    base_date: date,
    phases: Sequence[Phase] = (),
) -> Optional[date]:
    """Due date for a milestone; "End of <phase>" resolves against known phases."""
    if not timeframe:
        return None

    end_of = _END_OF.search(timeframe)
    if end_of:
        wanted = end_of.group(1).strip().lower()
        for phase in phases:
            name = phase.name.lower()
            if (wanted in name or name in wanted) and phase.end_date:
                return phase.end_date

    start, end = parse_timeframe(timeframe, base_date)
    return end or start


# =============================================================================
# HEURISTIC EXTRACTION
# =============================================================================

def extract_timeline_heuristic(text: str, project_start_date: date) -> Timeline:
    timeline = Timeline()
    lines = [line.strip() for line in text.split("\n") if line.strip()]

    for index, line in enumerate(lines):
        match = _PHASE_LINE.match(line)
        if not match:
            continue
        timeframe = match.group(3)
        start, end = parse_timeframe(timeframe, project_start_date)

        description = ""
        deliverables = []
        for next_line in lines[index + 1:index + 5]:
            if re.match(r"^(?:phase|stage|milestone|task)", next_line, re.IGNORECASE):
                break
            if next_line.startswith(("-", "•")):
                item = re.sub(r"^[-•]\s*", "", next_line)
                if "deliverable" in item.lower():
                    deliverables.append(re.sub(r"deliverable:?\s*", "", item, flags=re.IGNORECASE).strip())
            elif not description and not re.match(r"^[A-Z\s]+:$", next_line):
                description = next_line

        timeline.phases.append(Phase(
            name=match.group(2).strip(),
            description=description,
            timeframe=timeframe or "TBD",
            start_date=start,
            end_date=end,
            deliverables=deliverables,
        ))

    in_milestones = False
    for line in lines:
        if _MILESTONE_HEADER.match(line):
            in_milestones = True
            continue
        if not in_milestones:
            continue
        if _SECTION_BREAK.match(line):
            in_milestones = False
            continue
        match = _MILESTONE_LINE.match(line)
        if match:
            timeframe = match.group(2).strip()
            timeline.milestones.append(Milestone(
                name=match.group(1).strip(),
                timeframe=timeframe,
                due_date=parse_milestone_date(timeframe, project_start_date, timeline.phases),
            ))

    return timeline


# =============================================================================
# LLM EXTRACTION
# =============================================================================

class PhaseSchema(BaseModel):
    name: str
    description: str = ""
    timeframe: Optional[str] = None
    deliverables: List[str] = Field(default_factory=list)


class MilestoneSchema(BaseModel):
    name: str
    description: str = ""
    timeframe: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)


class TimelineResponse(BaseModel):
    """LLM reply for timeline extraction."""
    phases: List[PhaseSchema] = Field(default_factory=list)
    milestones: List[MilestoneSchema] = Field(default_factory=list)


SYSTEM_PROMPT = """You are a project timeline extraction expert. Analyze the provided document and extract:
1. Phases: major project phases with timeframes and deliverables
2. Milestones: key checkpoints with due dates

Return ONLY valid JSON with this exact structure:
{{
  "phases": [
    {{"name": "Phase name", "description": "Brief description",
      "timeframe": "Week 1-4 | Month 2-3 | Q1 2026 | Jan 1 - Jan 31, 2026",
      "deliverables": ["deliverable 1"]}}
  ],
  "milestones": [
    {{"name": "Milestone name", "description": "What is delivered",
      "timeframe": "Week 4 | End of Phase 1 | 2026-01-31", "dependencies": ["Phase 1"]}}
  ]
}}

Extract timeframes as they appear in the document. If no timeline info is found, return empty arrays."""


def build_timeline(response: TimelineResponse, project_start_date: date) -> Timeline:
    """Anchor the LLM's relative timeframes to the project start date."""
    timeline = Timeline()
    for p in response.phases:
        start, end = parse_timeframe(p.timeframe, project_start_date)
        timeline.phases.append(Phase(
            name=p.name,
            description=p.description,
            timeframe=p.timeframe,
            start_date=start,
            end_date=end,
            deliverables=list(p.deliverables),
        ))
    for m in response.milestones:
        timeline.milestones.append(Milestone(
            name=m.name,
            description=m.description,
            timeframe=m.timeframe,
            due_date=parse_milestone_date(m.timeframe, project_start_date, timeline.phases),
            dependencies=list(m.dependencies),
        ))
    return timeline


@dataclass
class TimelineExtraction:
    timeline: Timeline = field(default_factory=Timeline)
    method: str = "heuristic"  # "ai" or "heuristic"
    cost: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0


class TimelineExtractor:
    """LLM timeline extraction with a heuristic fallback."""

    def __init__(self, config: Optional[PipelineConfig] = None, llm=None, use_ai: bool = True):
        self.config = config or PipelineConfig()
        self.use_ai = use_ai
        self.llm = llm if llm is not None else (get_llm(self.config.timeline_model) if use_ai else None)
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", SYSTEM_PROMPT),
            ("user", "Extract the project timeline from this document:\n\n{corpus}"),
        ])

    async def extract(self, corpus: str, context: Dict[str, Any]) -> TimelineExtraction:
        start_date = context.get("project_start_date") or date.today()

        if self.use_ai:
            try:
                return await self._extract_with_ai(corpus, start_date)
            except Exception as e:
                logger.warning(f"⚠ AI timeline extraction failed, falling back to heuristics: {e}")

        timeline = extract_timeline_heuristic(corpus, start_date)
        logger.info(f"Heuristic timeline: {len(timeline.phases)} phases, {len(timeline.milestones)} milestones")
        return TimelineExtraction(timeline=timeline, method="heuristic")

    async def _extract_with_ai(self, corpus: str, start_date: date) -> TimelineExtraction:
        messages = self.prompt.format_messages(corpus=corpus[:self.config.max_corpus_chars])
        model = self.config.timeline_model

        with llm_metrics.track_request(model.model_name, model.provider) as request:
            response = await ainvoke_llm(self.llm, messages)
            prompt_tokens, completion_tokens = token_usage(response)
            cost = estimate_llm_cost(model.model_name, prompt_tokens, completion_tokens)
            request["prompt_tokens"] = prompt_tokens
            request["completion_tokens"] = completion_tokens
            request["cost"] = cost

        parsed = TimelineResponse.model_validate(extract_json(response_text(response)))
        timeline = build_timeline(parsed, start_date)
        logger.info(f"✓ AI timeline: {len(timeline.phases)} phases, {len(timeline.milestones)} milestones")

        return TimelineExtraction(
            timeline=timeline,
            method="ai",
            cost=cost,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
