"""
Visibility Pipeline - runs one ScanRequest through scan, parse, merge,
enrichment and scoring, and returns a ServiceAnalysisResult.

Stages: INIT -> SCANNING -> PARSING -> MERGING -> ENRICHING -> SCORING -> DONE.
Only MERGING can end in FAILED; every other stage degrades instead.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

import httpx

from clinicai.config import (
    PipelineConfig, PROVIDER_A, PROVIDER_B, get_provider_display_name
)
from clinicai.competitor_details import extract_competitor_details
from clinicai.errors import (
    AggregateScanFailure, ScanFailure, ScanRequestError, VisibilityScanError,
    failure_from_exception,
)
from clinicai.provider_clients import get_provider_a_client, get_provider_b_client
from clinicai.query_builder import build_prompt, ensure_scheme, normalize_domain
from clinicai.recommendations import generate_recommendation_text
from clinicai.response_parser import parse_all
from clinicai.result_merger import merge_visibility
from clinicai.scan_orchestrator import ScanOutcome, run_provider_scans
from clinicai.scoring import build_score_components, calculate_clinic_ai_score
from clinicai.visibility_models import (
    AuditSignals, MergedVisibilityResult, RequestLog, ScanRequest, ServiceAnalysisResult
)

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    INIT = "init"
    SCANNING = "scanning"
    PARSING = "parsing"
    MERGING = "merging"
    ENRICHING = "enriching"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


class PipelineRun:
    """Tracks the stage of one pipeline run."""

    def __init__(self, domain: str):
        self.domain = domain
        self.stage = PipelineStage.INIT
        self.history: List[PipelineStage] = [PipelineStage.INIT]

    def advance(self, stage: PipelineStage) -> None:
        if stage == PipelineStage.FAILED and self.stage != PipelineStage.MERGING:
            raise RuntimeError(f"Cannot fail from stage {self.stage.value}")
        logger.info("[PIPELINE] %s: %s -> %s", self.domain, self.stage.value, stage.value)
        self.stage = stage
        self.history.append(stage)


def describe_failure(failure: ScanFailure) -> str:
    """Caller-facing message for a classified provider failure."""
    name = get_provider_display_name(failure.provider) if failure.provider else "AI provider"
    if failure.kind == "http":
        return (
            f"{name} API error ({failure.status}): {failure.message}. "
            "Please check your API key and try again"
        )
    if failure.kind == "network":
        return f"{name} network error: {failure.message}. Please try again later"
    if failure.kind == "parse":
        return f"{name} response could not be parsed: {failure.message}"
    if failure.kind == "cancelled":
        return f"{name} request was cancelled"
    if failure.kind == "unknown":
        return f"{name} scan failed: {failure.message}"
    raise ValueError(f"Unknown failure kind: {failure.kind}")


def validate_request(request: ScanRequest) -> ScanRequest:
    """
    Reject blank fields and return a copy with every field trimmed.
    A domain with nothing left after normalization (e.g. "https://") counts as missing.
    """
    missing = request.missing_fields()
    if not missing and not normalize_domain(request.domain):
        missing = ["domain"]
    if missing:
        raise ScanRequestError(missing)
    return ScanRequest(
        domain=request.domain.strip(),
        query=request.query.strip(),
        city=request.city.strip(),
        api_key_provider_a=request.api_key_provider_a.strip(),
        api_key_provider_b=request.api_key_provider_b.strip(),
    )


def _provider_error(scan: ScanOutcome, provider: str) -> Optional[str]:
    error = scan.error_for(provider)
    if error is not None:
        return describe_failure(failure_from_exception(error, provider))
    if not scan.text_for(provider):
        return f"{get_provider_display_name(provider)} returned an empty response"
    return None


def _engine_label(
    merged: MergedVisibilityResult, scan: ScanOutcome, config: PipelineConfig
) -> str:
    labels = {
        PROVIDER_A: f"{get_provider_display_name(PROVIDER_A)} / {config.provider_a_model}",
        PROVIDER_B: f"{get_provider_display_name(PROVIDER_B)} / {config.provider_b_model}",
    }
    answered = [p for p in (PROVIDER_A, PROVIDER_B) if scan.text_for(p)]
    if not merged.visible and len(answered) == 2:
        return " + ".join(labels[p] for p in answered)
    return labels.get(merged.winning_provider, labels[PROVIDER_A])


async def run_visibility_analysis(
    request: ScanRequest,
    config: Optional[PipelineConfig] = None,
    audit_signals: Optional[AuditSignals] = None,
    cancel_event: Optional[asyncio.Event] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceAnalysisResult:
    """
    Run a full visibility analysis for one domain, query and city.

    Args:
        request: domain, query, city and both provider API keys
        config: models, temperatures and endpoints; defaults from environment
        audit_signals: tech/content/E-E-A-T/local subscores from the audit collaborators
        cancel_event: set it to abandon in-flight provider requests
        http_client: transport shared by both provider clients

    Raises:
        ScanRequestError: a required field is blank (no provider is called)
        AggregateScanFailure: neither provider produced a usable result; carries
            the scanner and parser logs in request_logs
        VisibilityScanError: any other unexpected failure
    """
    request = validate_request(request)
    config = config or PipelineConfig()
    run = PipelineRun(request.domain)
    logs: List[RequestLog] = []

    logger.info(
        "[PIPELINE] Starting visibility analysis for %s (query=%r, city=%r)",
        request.domain, request.query, request.city,
    )

    client_a = get_provider_a_client(request.api_key_provider_a, config, http_client)
    client_b = get_provider_b_client(request.api_key_provider_b, config, http_client)
    try:
        run.advance(PipelineStage.SCANNING)
        prompt = build_prompt(request.query, request.city)
        scan = await run_provider_scans(prompt, client_a, client_b, config, cancel_event)
        logs.extend(scan.logs)

        run.advance(PipelineStage.PARSING)
        parses = await parse_all(scan, request.domain, client_a, config, cancel_event)
        for provider in (PROVIDER_A, PROVIDER_B):
            if provider in parses:
                outcome = parses[provider]
                logs.extend(outcome.logs)
                if outcome.used_fallback:
                    logger.warning(
                        "[PIPELINE] %s extraction fell back to text heuristic: %s",
                        provider, outcome.error,
                    )

        run.advance(PipelineStage.MERGING)
        parsed_a = parses[PROVIDER_A].parsed if PROVIDER_A in parses else None
        parsed_b = parses[PROVIDER_B].parsed if PROVIDER_B in parses else None
        try:
            merged = merge_visibility(
                parsed_a,
                parsed_b,
                error_a=_provider_error(scan, PROVIDER_A),
                error_b=_provider_error(scan, PROVIDER_B),
            )
        except AggregateScanFailure as e:
            e.request_logs = list(logs)
            run.advance(PipelineStage.FAILED)
            raise

        run.advance(PipelineStage.ENRICHING)
        best_text = scan.text_for(merged.winning_provider) or scan.provider_a_text or scan.provider_b_text
        enrichment = await extract_competitor_details(
            best_text, merged.competitors, client_a, config, cancel_event
        )
        if enrichment.log is not None:
            logs.append(enrichment.log)
        if enrichment.used_fallback:
            logger.info("[PIPELINE] Competitor details fell back to plain ranked list")
        competitors = enrichment.details

        run.advance(PipelineStage.SCORING)
        score = calculate_clinic_ai_score(build_score_components(merged, audit_signals))
        recommendation = generate_recommendation_text(
            merged.visible, merged.position, len(competitors), competitors
        )

        result = ServiceAnalysisResult(
            query=request.query,
            location=request.city,
            found_url=ensure_scheme(request.domain) if merged.visible else None,
            position=merged.position,
            total_results=len(competitors),
            ai_engine=_engine_label(merged, scan, config),
            competitors=competitors,
            recommendation_text=recommendation,
            request_logs=logs,
            visible=merged.visible,
            trust_score=merged.trust_score,
            local_score=merged.local_score,
            winning_provider=merged.winning_provider,
            clinic_ai_score=score,
        )
        run.advance(PipelineStage.DONE)
        logger.info(
            "[PIPELINE] Finished %s: visible=%s position=%s score=%s",
            request.domain, result.visible, result.position, score.score,
        )
        return result
    except VisibilityScanError:
        raise
    except Exception as e:
        logger.error("[PIPELINE] Visibility analysis for %s failed: %s", request.domain, e, exc_info=True)
        failure = failure_from_exception(e)
        error = VisibilityScanError(
            f"Failed to run visibility scan: {describe_failure(failure)}", failure
        )
        error.request_logs = list(logs)
        raise error from e
    finally:
        await client_a.aclose()
        await client_b.aclose()


def run_visibility_analysis_sync(
    request: ScanRequest,
    config: Optional[PipelineConfig] = None,
    audit_signals: Optional[AuditSignals] = None,
) -> ServiceAnalysisResult:
    """Blocking wrapper for scripts and workers without an event loop."""
    return asyncio.run(run_visibility_analysis(request, config, audit_signals))
