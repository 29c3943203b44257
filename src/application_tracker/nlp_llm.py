"""Email classification and job title matching backed by an LLM.

Both prompts ask the model to answer in ``<tag>value</tag>`` spans; replies are
read with :func:`extract_tag`, which tolerates any prose around the tags.
"""

from typing import List, Optional, Sequence

from loguru import logger

from .llm_client import LLMClient
from .models import (
    NOT_AVAILABLE,
    ApplicationStatus,
    ClassificationEvent,
    JobApplicationUpdate,
    OtherEmail,
)
from .prompts import EMAIL_ANALYSIS_PROMPT, JOB_TITLE_SIMILARITY_PROMPT, fill_prompt

UPDATE_CATEGORY = "JobApplicationUpdate"

DEFAULT_CLASSIFY_MODEL = "gpt-4o-mini"
DEFAULT_SIMILARITY_MODEL = "claude-3-5-sonnet-20241022"


class MalformedResponseError(ValueError):
    """The model answered, but not in a form we can act on."""


def extract_tag(text: str, name: str) -> Optional[str]:
    """Return the trimmed text inside the first <name>...</name> pair, or None."""
    if not text:
        return None
    open_tag, close_tag = f"<{name}>", f"</{name}>"
    start = text.find(open_tag)
    if start == -1:
        return None
    start += len(open_tag)
    end = text.find(close_tag, start)
    if end == -1:
        return None
    return text[start:end].strip()


def _or_na(value: Optional[str]) -> str:
    return value if value else NOT_AVAILABLE


def parse_classification(response: str) -> ClassificationEvent:
    category = extract_tag(response, "category") or ""
    if UPDATE_CATEGORY not in category:
        return OtherEmail(category=category)

    raw_status = (extract_tag(response, "application_status") or "").lower()
    try:
        status = ApplicationStatus(raw_status)
    except ValueError:
        raise MalformedResponseError(f"Unknown application status {raw_status!r}") from None

    job_id = extract_tag(response, "job_id")
    return JobApplicationUpdate(
        category=category,
        application_status=status,
        job_id=job_id if job_id and job_id != NOT_AVAILABLE else NOT_AVAILABLE,
        applicant_name=_or_na(extract_tag(response, "applicant_name")),
        applicant_phone=_or_na(extract_tag(response, "applicant_phone")),
        applicant_email=_or_na(extract_tag(response, "applicant_email")),
        company_name=extract_tag(response, "company_name") or "",
        role=extract_tag(response, "role") or "",
        location=_or_na(extract_tag(response, "location")),
        is_internship=(extract_tag(response, "is_internship") or "").lower() == "true",
    )


def parse_ranked_list(response: str) -> List[str]:
    raw = extract_tag(response, "ranked_list")
    if not raw:
        return []
    return [t.strip().lower() for t in raw.split(",") if t.strip()]


class EmailAnalyzer:
    def __init__(self, llm: LLMClient, model: str = DEFAULT_CLASSIFY_MODEL):
        self.llm = llm
        self.model = model

    def classify(self, subject: str, sender: str, text: str) -> ClassificationEvent:
        prompt = fill_prompt(EMAIL_ANALYSIS_PROMPT, {"SUBJECT": subject, "SENDER": sender, "TEXT": text})
        response = self.llm.complete([{"role": "user", "content": prompt}], self.model, terse=True)
        logger.debug("[Analyzer] raw response: {}", response)
        event = parse_classification(response)
        logger.info("[Analyzer] '{}' from {} -> {}", subject, sender, event.category or "<none>")
        return event


class TitleMatcher:
    def __init__(self, llm: LLMClient, model: str = DEFAULT_SIMILARITY_MODEL):
        self.llm = llm
        self.model = model

    def rank_similar(self, candidate_titles: Sequence[str], target: str) -> List[str]:
        """Titles from candidate_titles related to target, most similar first (lowercased)."""
        prompt = fill_prompt(JOB_TITLE_SIMILARITY_PROMPT, {
            "JOB_TITLES_LIST": ", ".join(candidate_titles),
            "TARGET_JOB_TITLE": target or "n/a",
        })
        response = self.llm.complete([{"role": "user", "content": prompt}], self.model)
        ranked = parse_ranked_list(response)
        logger.info("[Matcher] '{}' ~ {}", target, ranked)
        return ranked
