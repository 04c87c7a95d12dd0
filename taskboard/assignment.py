"""
Assignee resolution for auto-assigned tasks.

Two phases:
  1. Ask the suggestion service (LLM) for a name and match it against the
     candidate pool. The reply is untrusted text; only an exact pool member
     can come out of this phase.
  2. Otherwise pick the candidate with the fewest IN_PROGRESS tasks in the
     project, earliest candidate winning ties.

Phase 2 needs nothing but the store, so resolution stays deterministic when
the suggestion service is down or stubbed out.
"""
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .schema import Candidate

logger = logging.getLogger(__name__)

# Placeholder answers some models give instead of a name
NON_ANSWERS = {"none", "unknown", "n/a", "manual assignment needed"}

COMPLEXITY_LEVELS = ("LOW", "MEDIUM", "HIGH")

# Used for every field the reply leaves out or gets wrong
DEFAULT_ANALYSIS = {
    "estimatedHours": 4,
    "complexity": "MEDIUM",
    "tags": [],
    "reasoning": "AI analysis unavailable",
}


class Suggester(Protocol):
    def suggest(self, title: str, description: str,
                candidates: Sequence[Candidate]) -> str: ...


WorkloadQuery = Callable[[Optional[str], List[str]], Dict[str, int]]


def _parse_reply(response: str) -> Tuple[Any, str]:
    """JSON payload of a reply (None if there is none) and the cleaned text."""
    response = (response or "").strip()
    if response.startswith("```"):
        response = re.sub(r'^```(?:json)?\s*', '', response)
        response = re.sub(r'\s*```$', '', response)

    try:
        return json.loads(response), response
    except json.JSONDecodeError:
        # Try to extract a JSON object from surrounding prose
        match = re.search(r'\{[^{}]*\}', response, re.DOTALL)
        if match:
            try:
                return json.loads(match.group()), response
            except json.JSONDecodeError:
                pass
    return None, response


def extract_suggested_name(response: str) -> str:
    """Pull the suggested person's name out of a free-text reply."""
    data, response = _parse_reply(response)

    if isinstance(data, dict):
        name = data.get("suggestedAssignee") or data.get("assignee") or ""
        name = name if isinstance(name, str) else ""
    elif isinstance(data, str):
        name = data
    elif data is None and "{" not in response:
        # Plain-text reply: first line is the name
        name = response.splitlines()[0] if response else ""
    else:
        name = ""

    name = name.strip().strip('"').strip()
    if name.lower() in NON_ANSWERS:
        return ""
    return name


def parse_analysis(response: str) -> Dict[str, Any]:
    """Estimate, complexity, tags and reasoning from a reply, with defaults."""
    data, _ = _parse_reply(response)
    if not isinstance(data, dict):
        data = {}
    analysis = dict(DEFAULT_ANALYSIS, tags=[])

    hours = data.get("estimatedHours")
    if isinstance(hours, (int, float)) and not isinstance(hours, bool) and hours > 0:
        analysis["estimatedHours"] = hours

    complexity = str(data.get("complexity") or "").upper()
    if complexity in COMPLEXITY_LEVELS:
        analysis["complexity"] = complexity

    tags = data.get("tags")
    if isinstance(tags, list):
        analysis["tags"] = [str(t) for t in tags if isinstance(t, (str, int))][:10]

    reasoning = data.get("reasoning")
    if isinstance(reasoning, str) and reasoning.strip():
        analysis["reasoning"] = reasoning.strip()
    return analysis


def match_candidate(name: str, candidates: Sequence[Candidate]) -> Optional[Candidate]:
    """First candidate whose full name contains name, case-insensitively."""
    needle = (name or "").strip().lower()
    if not needle:
        return None
    for candidate in candidates:
        if needle in f"{candidate.first_name} {candidate.last_name}".lower():
            return candidate
    return None


def least_loaded(candidates: Sequence[Candidate], counts: Dict[str, int]) -> Optional[Candidate]:
    """Candidate with the strictly lowest count; earliest wins ties."""
    best = None
    best_count = None
    for candidate in candidates:
        count = counts.get(candidate.id, 0)
        if best is None or count < best_count:
            best, best_count = candidate, count
    return best


class AssignmentResolver:
    """Turns an assignment request into a single candidate id."""

    def __init__(self, suggester: Suggester, workload: WorkloadQuery):
        self.suggester = suggester
        self.workload = workload

    def resolve(
        self,
        title: str,
        description: str,
        candidates: Sequence[Candidate],
        explicit_assignee_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Resolve an assignee id, or None when the pool is empty.

        Only called when auto-assignment was requested, so a resolved
        candidate replaces any explicit assignee. The explicit id is returned
        as is when the pool is empty.
        """
        if not candidates:
            return explicit_assignee_id or None

        pick, source, _ = self._pick(title, description, candidates, project_id)
        if source == "suggestion":
            logger.info(f"Assigned '{title}' to {pick.full_name} (suggested)")
        else:
            logger.info(
                f"Assigned '{title}' to {pick.full_name} "
                f"(workload fallback, {pick.in_progress_count} in progress)"
            )
        return pick.id

    def preview(
        self,
        title: str,
        description: str,
        candidates: Sequence[Candidate],
        project_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Who auto-assignment would pick, plus the reply's estimate fields.

        Nothing is written. "source" is "suggestion", "workload", or None
        for an empty pool.
        """
        if not candidates:
            return {"assigneeId": None, "suggestedAssignee": None, "source": None,
                    **DEFAULT_ANALYSIS, "tags": []}

        pick, source, reply = self._pick(title, description, candidates, project_id)
        return {
            "assigneeId": pick.id,
            "suggestedAssignee": pick.full_name,
            "source": source,
            **parse_analysis(reply),
        }

    def _pick(
        self,
        title: str,
        description: str,
        candidates: Sequence[Candidate],
        project_id: Optional[str],
    ) -> Tuple[Candidate, str, str]:
        reply = self._reply(title, description, candidates)
        suggested = extract_suggested_name(reply)
        if suggested:
            match = match_candidate(suggested, candidates)
            if match:
                return match, "suggestion", reply
            logger.info(f"Suggested assignee '{suggested}' matches no candidate")

        counts = {c.id: 0 for c in candidates}
        counts.update(self._workload(project_id, [c.id for c in candidates]))
        for c in candidates:
            c.in_progress_count = counts.get(c.id, 0)
        return least_loaded(candidates, counts), "workload", reply

    def _reply(self, title: str, description: str,
               candidates: Sequence[Candidate]) -> str:
        try:
            reply = self.suggester.suggest(title, description or "", candidates)
        except Exception as e:
            logger.warning(f"Assignee suggestion unavailable: {e}")
            return ""
        return reply if isinstance(reply, str) else ""

    def _workload(self, project_id: Optional[str], ids: List[str]) -> Dict[str, int]:
        wanted = set(ids)
        result = self.workload(project_id, ids) or {}
        return {k: int(v) for k, v in result.items() if k in wanted}
