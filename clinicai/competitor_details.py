"""
Competitor Detail Extractor - enriches competitor names with rank, URL and strengths.
Any failure degrades to a plain ranked list; this stage never fails the run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Optional

from clinicai.config import PipelineConfig
from clinicai.errors import ParseError
from clinicai.provider_clients import ProviderClient
from clinicai.response_parser import load_json_object
from clinicai.retry import with_retry
from clinicai.visibility_models import CompetitorDetail, RequestLog, ResponseBody

logger = logging.getLogger(__name__)

COMPETITOR_SYSTEM_PROMPT = (
    "You are a helpful assistant that extracts structured data from medical "
    "clinic recommendations. Always return valid JSON."
)


@dataclass
class CompetitorOutcome:
    details: List[CompetitorDetail]
    log: Optional[RequestLog] = None
    used_fallback: bool = False


def build_competitor_prompt(response_text: str, competitors: List[str]) -> str:
    return f"""Analyze the following AI response about medical clinic recommendations. Extract detailed information about each competitor mentioned.

AI Response:
{response_text}

Competitors to analyze: {', '.join(competitors)}

For each competitor, extract:
1. Their rank/position in the list (1st, 2nd, 3rd, etc.)
2. Their name (exact as mentioned)
3. URL/domain if mentioned (or null)
4. Strengths/advantages mentioned (e.g., "Good reviews", "Modern facilities", "Experienced staff")

Return JSON in this format:
{{
  "competitors": [
    {{
      "rank": number,
      "name": string,
      "url": string | null,
      "strengths": string | null
    }}
  ]
}}

Return valid JSON only, no markdown formatting."""


def default_competitor_details(competitors: List[str]) -> List[CompetitorDetail]:
    """Competitors in their given order with sequential ranks from 1."""
    return [CompetitorDetail(rank=i + 1, name=name) for i, name in enumerate(competitors)]


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def details_from_json(data: Dict[str, Any]) -> List[CompetitorDetail]:
    """Build CompetitorDetail entries from extraction JSON, sorted by rank."""
    items = data.get("competitors")
    if not isinstance(items, list):
        raise ParseError("Extraction JSON has no competitors array")

    details: List[CompetitorDetail] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        name = _optional_text(item.get("name"))
        if not name:
            continue
        rank = item.get("rank")
        if isinstance(rank, float) and rank.is_integer():
            rank = int(rank)
        if isinstance(rank, bool) or not isinstance(rank, int) or rank < 1:
            rank = index + 1
        details.append(CompetitorDetail(
            rank=rank,
            name=name,
            url=_optional_text(item.get("url")),
            strengths=_optional_text(item.get("strengths")),
        ))

    details.sort(key=lambda d: d.rank)
    return details


async def extract_competitor_details(
    response_text: Optional[str],
    competitors: List[str],
    parser_client: ProviderClient,
    config: PipelineConfig,
    cancel_event: Optional[asyncio.Event] = None,
) -> CompetitorOutcome:
    """
    Ask the parser model for per-competitor details.

    Returns the default enrichment when there is no text to analyze or when
    the call or its JSON fails.
    """
    if not competitors:
        return CompetitorOutcome(details=[])
    if not response_text:
        return CompetitorOutcome(details=default_competitor_details(competitors), used_fallback=True)

    prompt = build_competitor_prompt(response_text, competitors)
    messages = [
        {"role": "system", "content": COMPETITOR_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
    response_format = {"type": "json_object"}
    log = RequestLog(
        provider=parser_client.provider,
        model=config.parser_model,
        role="parser",
        prompt=prompt,
        request_body={
            "model": config.parser_model,
            "messages": messages,
            "temperature": config.parser_temperature,
            "response_format": response_format,
        },
    )

    try:
        response = await with_retry(
            lambda: parser_client.complete(
                config.parser_model,
                messages,
                config.parser_temperature,
                response_format=response_format,
                cancel_event=cancel_event,
            ),
            max_retries=config.max_retries,
            initial_delay=config.initial_retry_delay,
        )
        log.model = response.model or config.parser_model
        log.response_body = ResponseBody(
            content=response.raw_text or "", model=response.model, usage=response.usage
        )
        if not response.raw_text:
            raise ParseError("No response content from parser model")
        details = details_from_json(load_json_object(response.raw_text))
        if not details:
            raise ParseError("Extraction returned no competitors")
    except Exception as e:
        logger.warning("[COMPETITORS] Extraction failed, using plain list: %s", e)
        log.error = str(e)
        return CompetitorOutcome(
            details=default_competitor_details(competitors), log=log, used_fallback=True
        )

    logger.info("[COMPETITORS] Extracted details for %d competitors", len(details))
    return CompetitorOutcome(details=details, log=log)
