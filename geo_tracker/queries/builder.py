"""
Query list construction for analysis runs.

Turns free text (typed, loaded from a file, or produced by the backend's
query generator) into the ordered Query records a run is submitted with.

Functions:
    parse_queries: One query per non-blank line, ids assigned by position
    load_queries_file: parse_queries over a UTF-8 text file
    generate_queries_with_fallback: AI generation, falling back to samples
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from geo_tracker.config.constants import CUSTOM_QUERY_CATEGORY, MARKET_NAMES
from geo_tracker.config.schema import Query
from geo_tracker.exceptions import TransportError

from .samples import get_sample_queries_for_industry

logger = logging.getLogger(__name__)

TEMPLATE_NOTE = "Note: Using template queries. Check API keys for AI generation."


def parse_queries(text: str) -> list[Query]:
    """
    Parse free text into an ordered list of queries.

    Each line is trimmed, blank lines are dropped, and the survivors get
    prompt ids "q_1", "q_2", ... in order with category "custom". Re-parsing
    edited text produces a brand new list; no identity is carried over.

    Args:
        text: Free text with one question per line

    Returns:
        Ordered list of Query records (empty for empty or blank input)

    Example:
        >>> [q.prompt_id for q in parse_queries("a\\n\\nb\\n  c  \\n")]
        ['q_1', 'q_2', 'q_3']
    """
    lines = (line.strip() for line in (text or "").split("\n"))
    questions = [line for line in lines if line]
    return [
        Query(
            question=question,
            category=CUSTOM_QUERY_CATEGORY,
            prompt_id=f"q_{index}",
        )
        for index, question in enumerate(questions, start=1)
    ]


def count_queries(text: str) -> int:
    """Return how many queries parse_queries would produce for text."""
    return sum(1 for line in (text or "").split("\n") if line.strip())


def load_queries_file(path: str | Path) -> list[Query]:
    """
    Read a text file and parse it with parse_queries.

    Raises:
        FileNotFoundError: If path does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Queries file not found: {path}")
    return parse_queries(path.read_text(encoding="utf-8"))


@dataclass
class QueryDraft:
    """
    Questions proposed for a run, before the user confirms them.

    Attributes:
        questions: Question texts in display order
        generated_by: "ai", "fallback" (backend templates) or "samples" (local)
        note: Message worth showing next to the draft, if any
    """

    questions: list[str]
    generated_by: str
    note: str | None = None

    def to_text(self) -> str:
        """Join the questions into editable text, one per line."""
        return "\n".join(self.questions)


def sample_draft(industry: str, language: str, count: int) -> QueryDraft:
    """Build a draft from the static sample queries."""
    return QueryDraft(
        questions=get_sample_queries_for_industry(industry, language)[:count],
        generated_by="samples",
    )


async def generate_queries_with_fallback(
    client,
    brand_name: str,
    industry: str,
    description: str = "",
    language: str = "en",
    count: int = 15,
    market: str = "DE",
) -> QueryDraft:
    """
    Ask the backend to generate queries, falling back to local samples.

    The market code is expanded to a country name before it is sent. When the
    backend itself answers with its template fallback, the draft carries a
    note saying so. Transport failures, malformed bodies and empty answers
    never propagate: they produce a sample draft whose note holds the failure message.

    Args:
        client: GeoTrackerClient (or anything with the same generate_queries)
        brand_name: Brand the questions should be relevant to
        industry: Industry context
        description: Business context
        language: Locale code for the generated questions
        count: Number of questions requested
        market: Region code (e.g. "DE")

    Returns:
        QueryDraft with the proposed questions
    """
    target_market = MARKET_NAMES.get(market, market)

    try:
        generated = await client.generate_queries(
            company_name=brand_name,
            industry=industry,
            description=description,
            language=language,
            count=count,
            target_market=target_market,
        )
        if not generated.queries:
            raise TransportError("No queries returned from API")
    except TransportError as e:
        logger.warning(f"Query generation failed, using sample queries: {e}")
        draft = sample_draft(industry, language, count)
        draft.note = str(e)
        return draft

    draft = QueryDraft(
        questions=[q.question for q in generated.queries],
        generated_by=generated.generated_by or "ai",
    )
    if draft.generated_by == "fallback":
        draft.note = TEMPLATE_NOTE
    logger.info(
        f"Generated {len(draft.questions)} queries for {brand_name} "
        f"(generated_by={draft.generated_by})"
    )
    return draft
