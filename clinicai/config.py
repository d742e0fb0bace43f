"""
Configuration module for the ClinicAI visibility scan.
Centralizes environment variable access and provider defaults.
"""

import os
from typing import List

from pydantic import BaseModel, Field


OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_SCANNER_MODEL = os.getenv("OPENAI_SCANNER_MODEL", "gpt-4o")
OPENAI_PARSER_MODEL = os.getenv("OPENAI_PARSER_MODEL", "gpt-4o-mini")
OPENAI_SCANNER_TEMPERATURE = float(os.getenv("OPENAI_SCANNER_TEMPERATURE", "0.7"))

PERPLEXITY_BASE_URL = os.getenv("PERPLEXITY_BASE_URL", "https://api.perplexity.ai")
PERPLEXITY_MODEL = os.getenv("PERPLEXITY_MODEL", "sonar")
PERPLEXITY_TEMPERATURE = float(os.getenv("PERPLEXITY_TEMPERATURE", "0.7"))

SCAN_MAX_RETRIES = int(os.getenv("SCAN_MAX_RETRIES", "3"))
SCAN_INITIAL_RETRY_DELAY = float(os.getenv("SCAN_INITIAL_RETRY_DELAY", "1.0"))
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

PROVIDER_A = "openai"
PROVIDER_B = "perplexity"

PROVIDER_DISPLAY_NAMES = {
    PROVIDER_A: "OpenAI",
    PROVIDER_B: "Perplexity",
}


class PipelineConfig(BaseModel):
    """Models, temperatures and endpoints used by one pipeline run."""
    provider_a_base_url: str = OPENAI_BASE_URL
    provider_a_model: str = OPENAI_SCANNER_MODEL
    provider_a_temperature: float = OPENAI_SCANNER_TEMPERATURE

    provider_b_base_url: str = PERPLEXITY_BASE_URL
    provider_b_model: str = PERPLEXITY_MODEL
    provider_b_temperature: float = PERPLEXITY_TEMPERATURE

    parser_model: str = OPENAI_PARSER_MODEL
    parser_temperature: float = 0.0

    max_retries: int = Field(default=SCAN_MAX_RETRIES, ge=0)
    initial_retry_delay: float = Field(default=SCAN_INITIAL_RETRY_DELAY, ge=0)
    timeout_seconds: float = PROVIDER_TIMEOUT_SECONDS


def get_provider_display_name(provider: str) -> str:
    """Get human-readable display name for a provider."""
    return PROVIDER_DISPLAY_NAMES.get(provider, provider)


def get_scan_providers() -> List[str]:
    """Providers queried by every visibility scan, in evaluation order."""
    return [PROVIDER_A, PROVIDER_B]
