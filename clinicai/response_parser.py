"""
Response Parser - turns a provider's free-text answer into ParsedVisibility.

A second LLM call (the parser model, JSON mode) does the extraction. When its
output cannot be used, the chain falls back to a fenced ```json block and
finally to a substring heuristic over the original provider text.
"""

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from clinicai.config import PipelineConfig, PROVIDER_A, PROVIDER_B
from clinicai.errors import ParseError
from clinicai.provider_clients import ProviderClient
from clinicai.query_builder import normalize_domain, domain_variants
from clinicai.retry import with_retry
from clinicai.scan_orchestrator import ScanOutcome
from clinicai.visibility_models import ParsedVisibility, RequestLog, ResponseBody

logger = logging.getLogger(__name__)

PARSER_SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes medical clinic recommendations "
    "and extracts structured data. Always return valid JSON."
)

RANK_MARKERS = ["1.", "2.", "3.", "4.", "5.", "first", "second", "third"]

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```", re.IGNORECASE)


@dataclass
class ParseOutcome:
    """Parsed result for one provider plus the log of the extraction call."""
    provider: str
    parsed: ParsedVisibility
    logs: List[RequestLog] = field(default_factory=list)
    used_fallback: bool = False
    error: Optional[str] = None


def build_parser_prompt(response_text: str, target_domain: str) -> str:
    return f"""Analyze the following AI response about medical clinic recommendations. Extract the following information in JSON format:

{{
  "domainPresent": boolean,
  "rank": number | null,
  "competitors": string[],
  "rawAnalysis": string,
  "trustScore": number,
  "localScore": number
}}

AI Response to analyze:
{response_text}

Important:
- Check for the domain "{target_domain}" in any form (with/without www, http/https)
- If the domain appears, determine its position in the recommendation list (1st, 2nd, 3rd, etc.)
- Extract all other clinic names or domains mentioned
- For Trust Score: For the specific domain "{target_domain}", if found, estimate a Trust Score (1-10) based on brand mentions, authority signals, reputation indicators, and E-E-A-T signals (Experience, Expertise, Authoritativeness, Trustworthiness). If not found, return 0.
- For Local Score: For the specific domain "{target_domain}", if found, estimate a Local Score (1-10) based on physical address presence, location mentions, local context, and geographic relevance in the search context. If not found, return 0.
- Return valid JSON only, no markdown formatting"""


def build_parser_messages(response_text: str, target_domain: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": PARSER_SYSTEM_PROMPT},
        {"role": "user", "content": build_parser_prompt(response_text, target_domain)},
    ]


def parse_json_content(content: str) -> Dict[str, Any]:
    """Parse content as a bare JSON object."""
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Content is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("JSON content is not an object")
    return data


def extract_fenced_json(content: str) -> Dict[str, Any]:
    """Parse the interior of a fenced ```json ... ``` block."""
    match = _FENCED_JSON_RE.search(content or "")
    if not match:
        raise ParseError("No fenced JSON block found")
    return parse_json_content(match.group(1))


def load_json_object(content: str) -> Dict[str, Any]:
    """Try bare JSON first, then a fenced block."""
    try:
        return parse_json_content(content)
    except ParseError:
        pass
    try:
        return extract_fenced_json(content)
    except ParseError:
        raise ParseError(f"Failed to parse JSON response: {(content or '')[:200]}")


def domain_in_text(text: str, domain: str) -> bool:
    if not normalize_domain(domain):
        return False
    text_lower = (text or "").lower()
    return any(variant in text_lower for variant in domain_variants(domain))


def estimate_rank(text: str, domain: str) -> Optional[int]:
    """
    Best-effort list position: count ordinal markers appearing before the
    domain's first occurrence. Clamped to 10; None when nothing precedes it.
    """
    text_lower = (text or "").lower()
    normalized = normalize_domain(domain)
    if not normalized:
        return None
    index = text_lower.find(normalized)
    if index <= 0:
        return None

    before = text_lower[:index]
    count = sum(before.count(marker) for marker in RANK_MARKERS)
    if count <= 0:
        return None
    return min(count, 10)


def heuristic_visibility(text: str, domain: str, reason: str) -> ParsedVisibility:
    """Deterministic fallback when the extraction output is unusable."""
    present = domain_in_text(text, domain)
    return ParsedVisibility(
        domain_present=present,
        rank=estimate_rank(text, domain) if present else None,
        competitors=[],
        raw_analysis=f"Fallback analysis: {reason}",
        trust_score=0,
        local_score=0,
    )


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_rank(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    return value if 1 <= value <= 10 else None


def _as_score(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    rounded = int(math.floor(number + 0.5)) if math.isfinite(number) else (10 if number > 0 else 0)
    return max(0, min(10, rounded))


def _as_competitors(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    names: List[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name")
        if not isinstance(item, str):
            continue
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names


def validate_parsed(data: Dict[str, Any], content: str) -> ParsedVisibility:
    """
    Normalize raw extraction JSON: rank outside 1-10 becomes None, scores are
    clamped to 0-10 and zeroed when the domain is absent.
    """
    present = _as_bool(_pick(data, "domainPresent", "domain_present"))
    raw_analysis = _pick(data, "rawAnalysis", "raw_analysis")
    return ParsedVisibility(
        domain_present=present,
        rank=_as_rank(_pick(data, "rank")) if present else None,
        competitors=_as_competitors(_pick(data, "competitors")),
        raw_analysis=raw_analysis if isinstance(raw_analysis, str) and raw_analysis else content,
        trust_score=_as_score(_pick(data, "trustScore", "trust_score")) if present else 0,
        local_score=_as_score(_pick(data, "localScore", "local_score")) if present else 0,
    )


def reconcile_with_text(parsed: ParsedVisibility, text: str, domain: str) -> ParsedVisibility:
    """Mark the domain present when the model missed a literal mention in the text."""
    if parsed.domain_present or not domain_in_text(text, domain):
        return parsed
    logger.info("[PARSER] Domain found in text but not reported by the parser model")
    return parsed.model_copy(update={
        "domain_present": True,
        "rank": estimate_rank(text, domain),
    })


async def parse_provider_text(
    text: str,
    domain: str,
    parser_client: ProviderClient,
    config: PipelineConfig,
    provider: str,
    cancel_event: Optional[asyncio.Event] = None,
) -> ParseOutcome:
    """
    Extract ParsedVisibility from one provider's answer.
    Never raises; failures end in the heuristic fallback.
    """
    messages = build_parser_messages(text, domain)
    prompt = messages[1]["content"]
    response_format = {"type": "json_object"}
    request_body = {
        "model": config.parser_model,
        "messages": messages,
        "temperature": config.parser_temperature,
        "response_format": response_format,
    }

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
    except Exception as e:
        logger.warning("[PARSER] Extraction call for %s failed: %s", provider, e)
        return ParseOutcome(
            provider=provider,
            parsed=heuristic_visibility(text, domain, str(e)),
            logs=[RequestLog(
                provider=parser_client.provider,
                model=config.parser_model,
                role="parser",
                prompt=prompt,
                request_body=request_body,
                response_body=None,
                error=str(e),
            )],
            used_fallback=True,
            error=str(e),
        )

    content = response.raw_text or ""
    log = RequestLog(
        provider=parser_client.provider,
        model=response.model or config.parser_model,
        role="parser",
        prompt=prompt,
        request_body=request_body,
        response_body=ResponseBody(content=content, model=response.model, usage=response.usage),
    )

    try:
        if not content:
            raise ParseError("No response content from parser model")
        data = load_json_object(content)
    except ParseError as e:
        logger.warning("[PARSER] Could not parse extraction JSON for %s: %s", provider, e)
        log.error = str(e)
        return ParseOutcome(
            provider=provider,
            parsed=heuristic_visibility(text, domain, str(e)),
            logs=[log],
            used_fallback=True,
            error=str(e),
        )

    parsed = reconcile_with_text(validate_parsed(data, content), text, domain)
    logger.info(
        "[PARSER] %s: domain_present=%s rank=%s competitors=%d",
        provider, parsed.domain_present, parsed.rank, len(parsed.competitors),
    )
    return ParseOutcome(provider=provider, parsed=parsed, logs=[log])


async def parse_all(
    scan: ScanOutcome,
    domain: str,
    parser_client: ProviderClient,
    config: PipelineConfig,
    cancel_event: Optional[asyncio.Event] = None,
) -> Dict[str, ParseOutcome]:
    """
    Run extraction for every provider that returned text, concurrently.
    Providers without text are absent from the result.
    """
    providers = [p for p in (PROVIDER_A, PROVIDER_B) if scan.text_for(p)]
    results = await asyncio.gather(
        *[
            parse_provider_text(
                scan.text_for(p), domain, parser_client, config, p, cancel_event
            )
            for p in providers
        ],
        return_exceptions=True,
    )

    outcomes: Dict[str, ParseOutcome] = {}
    for provider, result in zip(providers, results):
        if isinstance(result, BaseException):
            logger.error("[PARSER] Parsing %s response failed: %s", provider, result)
            continue
        outcomes[provider] = result
    return outcomes
