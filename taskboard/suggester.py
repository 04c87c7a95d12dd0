"""
LLM-backed assignee suggestions.

Sends the task and the candidate list to an OpenAI-compatible chat
completions endpoint and returns the model's reply as free text. The reply is
advice only: turning it into a real user id is the assignment resolver's job.

Every failure (no API key, network error, timeout, non-2xx, unexpected body)
is raised as SuggestionUnavailable.
"""
import logging
from typing import List, Optional, Sequence

import requests

from .errors import SuggestionUnavailable
from .schema import Candidate

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-3.5-turbo"

# Prompt for the assignment suggestion
SUGGESTION_PROMPT = """Analyze this software development task and suggest who on the team should take it.

Task: {title}
Description: {description}

Team Members:
{members}

Based on the task content, team member roles, and track record, respond with ONLY a JSON object:
{{
  "suggestedAssignee": "first and last name of one team member",
  "estimatedHours": number,
  "complexity": "LOW|MEDIUM|HIGH",
  "tags": ["skill1", "skill2"],
  "reasoning": "one short sentence"
}}"""


def format_candidates(candidates: Sequence[Candidate]) -> str:
    lines: List[str] = []
    for c in candidates:
        lines.append(
            f"- {c.full_name} ({c.role}): Previous tasks completed: {c.completed_count}"
        )
    return "\n".join(lines)


def build_suggestion_prompt(title: str, description: str,
                            candidates: Sequence[Candidate]) -> str:
    """Build the user prompt for an assignment suggestion."""
    return SUGGESTION_PROMPT.format(
        title=title,
        description=(description or "")[:1000],
        members=format_candidates(candidates),
    )


class LLMSuggester:
    """Suggestion collaborator talking to a chat completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str = DEFAULT_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def suggest(self, title: str, description: str,
                candidates: Sequence[Candidate]) -> str:
        """Return the model's free-text reply. Raises SuggestionUnavailable."""
        if not self.api_key:
            raise SuggestionUnavailable("Suggestion service not configured")

        body = {
            "model": self.model,
            "messages": [
                {"role": "user",
                 "content": build_suggestion_prompt(title, description, candidates)},
            ],
            "temperature": 0.3,
        }
        try:
            r = self.session.post(
                self.url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            content = r.json()["choices"][0]["message"]["content"]
        except requests.Timeout as e:
            raise SuggestionUnavailable(f"Suggestion request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise SuggestionUnavailable(f"Suggestion request failed: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SuggestionUnavailable("Malformed suggestion response") from e

        if not isinstance(content, str):
            raise SuggestionUnavailable("Malformed suggestion response")
        logger.debug(f"Suggestion reply for '{title}': {content[:200]}")
        return content
