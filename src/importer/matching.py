"""
Importer Module - Name Matching
===============================
Resolves free-text workstream names to existing task records.
"""

import logging
from typing import Callable, Dict, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DISTANCE = 3


def normalize_name(name: str) -> str:
    return name.lower().strip()


def levenshtein_distance(a: str, b: str) -> int:
    """
    Minimum number of single-character insertions, deletions or
    substitutions needed to turn `a` into `b`.
    """
    rows, cols = len(a) + 1, len(b) + 1
    dp = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        dp[i][0] = i
    for j in range(cols):
        dp[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if a[i - 1] == b[j - 1]:
                dp[i][j] = dp[i - 1][j - 1]
            else:
                dp[i][j] = min(
                    dp[i - 1][j] + 1,      # deletion
                    dp[i][j - 1] + 1,      # insertion
                    dp[i - 1][j - 1] + 1,  # substitution
                )

    return dp[rows - 1][cols - 1]


def _title_of(candidate) -> str:
    title = candidate.get("title") if isinstance(candidate, dict) else getattr(candidate, "title", None)
    return title or ""


def find_matching_task(
    search_name: Optional[str],
    candidates: Sequence[T],
    max_distance: int = DEFAULT_MAX_DISTANCE,
    key: Callable[[T], str] = _title_of,
) -> Optional[T]:
    """
    Find the candidate whose title best matches `search_name`.

    Strategies, first hit wins:
    1. Exact match (case-insensitive, trimmed)
    2. Search name contained in a title (first in list order)
    3. Smallest Levenshtein distance, accepted only if <= max_distance;
       ties keep the earlier candidate

    Args:
        search_name: Free-text name to resolve
        candidates: Task records (objects or dicts with a title)
        max_distance: Largest edit distance accepted by the fuzzy step
        key: Extracts the comparable title from a candidate

    Returns:
        The matching candidate, or None
    """
    if not search_name or not candidates:
        return None

    normalized = normalize_name(search_name)
    if not normalized:
        return None

    titles = [normalize_name(key(c)) for c in candidates]

    for candidate, title in zip(candidates, titles):
        if title == normalized:
            return candidate

    for candidate, title in zip(candidates, titles):
        if normalized in title:
            return candidate

    best_match = None
    best_distance = max_distance + 1
    for candidate, title in zip(candidates, titles):
        distance = levenshtein_distance(normalized, title)
        if distance < best_distance:
            best_distance = distance
            best_match = candidate

    return best_match


# =============================================================================
# REFERENCE RESOLVERS
# =============================================================================
# Each resolver maps a parent reference to a created task id using the
# builder's name map, returning None when it cannot.

Resolver = Callable[[str, Dict[str, str]], Optional[str]]


def lookup_direct(reference: str, name_map: Dict[str, str]) -> Optional[str]:
    return name_map.get(reference)


def lookup_exact_scan(reference: str, name_map: Dict[str, str]) -> Optional[str]:
    for name, task_id in name_map.items():
        if name == reference:
            return task_id
    return None


def lookup_case_insensitive(reference: str, name_map: Dict[str, str]) -> Optional[str]:
    wanted = normalize_name(reference)
    for name, task_id in name_map.items():
        if normalize_name(name) == wanted:
            return task_id
    return None


DEFAULT_PARENT_RESOLVERS = (lookup_direct, lookup_exact_scan, lookup_case_insensitive)


def resolve_reference(
    reference: Optional[str],
    name_map: Dict[str, str],
    resolvers: Sequence[Resolver] = DEFAULT_PARENT_RESOLVERS,
) -> Optional[str]:
    """Apply resolvers in order until one returns a task id."""
    if not reference:
        return None
    for resolver in resolvers:
        task_id = resolver(reference, name_map)
        if task_id is not None:
            return task_id
    return None
