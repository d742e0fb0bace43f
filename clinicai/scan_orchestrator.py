"""
Scan Orchestrator - asks both providers the simulated user query concurrently.
A failure in one branch never cancels or blocks the other.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Any

from clinicai.config import PipelineConfig, PROVIDER_A
from clinicai.provider_clients import ProviderClient
from clinicai.query_builder import build_scan_messages
from clinicai.retry import with_retry
from clinicai.visibility_models import ProviderResponse, RequestLog, ResponseBody

logger = logging.getLogger(__name__)


@dataclass
class ScanOutcome:
    """Settled result of both provider scans."""
    provider_a_text: Optional[str] = None
    provider_b_text: Optional[str] = None
    provider_a_error: Optional[BaseException] = None
    provider_b_error: Optional[BaseException] = None
    logs: List[RequestLog] = field(default_factory=list)

    def text_for(self, provider: str) -> Optional[str]:
        return self.provider_a_text if provider == PROVIDER_A else self.provider_b_text

    def error_for(self, provider: str) -> Optional[BaseException]:
        return self.provider_a_error if provider == PROVIDER_A else self.provider_b_error


async def _scan_provider(
    client: ProviderClient,
    model: str,
    temperature: float,
    prompt: str,
    config: PipelineConfig,
    cancel_event: Optional[asyncio.Event],
) -> ProviderResponse:
    messages = build_scan_messages(prompt)
    return await with_retry(
        lambda: client.complete(model, messages, temperature, cancel_event=cancel_event),
        max_retries=config.max_retries,
        initial_delay=config.initial_retry_delay,
    )


def _settle_branch(
    provider: str,
    model: str,
    temperature: float,
    prompt: str,
    result: Any,
) -> Tuple[Optional[str], Optional[BaseException], RequestLog]:
    request_body = {
        "model": model,
        "messages": build_scan_messages(prompt),
        "temperature": temperature,
    }

    if isinstance(result, BaseException):
        logger.error("[SCAN] %s scan failed: %s", provider, result)
        return None, result, RequestLog(
            provider=provider,
            model=model,
            role="scanner",
            prompt=prompt,
            request_body=request_body,
            response_body=None,
            error=str(result),
        )

    text = result.raw_text
    logger.info(
        "[SCAN] %s answered with %d characters", provider, len(text) if text else 0
    )
    return text, None, RequestLog(
        provider=provider,
        model=result.model or model,
        role="scanner",
        prompt=prompt,
        request_body=request_body,
        response_body=ResponseBody(
            content=text or "",
            model=result.model,
            usage=result.usage,
        ),
    )


async def run_provider_scans(
    prompt: str,
    client_a: ProviderClient,
    client_b: ProviderClient,
    config: PipelineConfig,
    cancel_event: Optional[asyncio.Event] = None,
) -> ScanOutcome:
    """
    Run the scan against both providers and wait for both to settle.

    Each branch contributes exactly one scanner log entry, whatever its outcome.
    """
    logger.info(
        "[SCAN] Querying %s (%s) and %s (%s)",
        client_a.provider, config.provider_a_model,
        client_b.provider, config.provider_b_model,
    )

    result_a, result_b = await asyncio.gather(
        _scan_provider(
            client_a, config.provider_a_model, config.provider_a_temperature,
            prompt, config, cancel_event,
        ),
        _scan_provider(
            client_b, config.provider_b_model, config.provider_b_temperature,
            prompt, config, cancel_event,
        ),
        return_exceptions=True,
    )

    text_a, error_a, log_a = _settle_branch(
        client_a.provider, config.provider_a_model, config.provider_a_temperature, prompt, result_a
    )
    text_b, error_b, log_b = _settle_branch(
        client_b.provider, config.provider_b_model, config.provider_b_temperature, prompt, result_b
    )

    return ScanOutcome(
        provider_a_text=text_a,
        provider_b_text=text_b,
        provider_a_error=error_a,
        provider_b_error=error_b,
        logs=[log_a, log_b],
    )
