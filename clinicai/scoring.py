"""
ClinicAI Score calculation.

Formula:
    score = 0.25*Visibility + 0.2*Tech + 0.2*Content + 0.15*E-E-A-T + 0.1*Local

The weights sum to 0.90, so the maximum attainable score is 90.
"""

import math
from typing import Dict, Optional

from clinicai.visibility_models import (
    AuditSignals, ClinicAIScoreComponents, ClinicAIScoreResult, MergedVisibilityResult
)

SCORE_WEIGHTS: Dict[str, float] = {
    "visibility": 0.25,
    "tech": 0.20,
    "content": 0.20,
    "eeat": 0.15,
    "local": 0.10,
}


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def clamp_score(value: Optional[float]) -> float:
    """Clamp a subscore to 0-100; missing or NaN values count as 0."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return 0.0
    return max(0.0, min(100.0, float(value)))


def calculate_clinic_ai_score(components: ClinicAIScoreComponents) -> ClinicAIScoreResult:
    """
    Calculate the ClinicAI Score from five 0-100 subscores.

    Out-of-range inputs are clamped, never rejected. The clamped components
    and the weight table are returned with the score.
    """
    clamped = ClinicAIScoreComponents(
        visibility=clamp_score(components.visibility),
        tech=clamp_score(components.tech),
        content=clamp_score(components.content),
        eeat=clamp_score(components.eeat),
        local=clamp_score(components.local),
    )

    score = sum(getattr(clamped, name) * weight for name, weight in SCORE_WEIGHTS.items())

    return ClinicAIScoreResult(
        score=_round2(score),
        components=clamped,
        weights=dict(SCORE_WEIGHTS),
    )


def build_score_components(
    merged: MergedVisibilityResult,
    audit_signals: Optional[AuditSignals] = None,
) -> ClinicAIScoreComponents:
    """
    Combine scan output with collaborator audit subscores.

    Visibility is 100 when the domain was found, else 0. E-E-A-T and local
    fall back to the parser's 0-10 trust and local scores scaled to 0-100.
    """
    signals = audit_signals or AuditSignals()
    eeat = signals.eeat_signals
    if eeat is None:
        eeat = merged.trust_score * 10
    local = signals.local_signals
    if local is None:
        local = merged.local_score * 10

    return ClinicAIScoreComponents(
        visibility=100 if merged.visible else 0,
        tech=signals.tech_optimization or 0,
        content=signals.content_optimization or 0,
        eeat=eeat,
        local=local,
    )


def calculate_visibility_rate(total_services: int, visible_services: int) -> float:
    """Percentage of services visible in AI answers, rounded to 2 decimals."""
    if total_services < 0:
        raise ValueError("Total services must be non-negative")
    if visible_services < 0:
        raise ValueError("Visible services must be non-negative")
    if visible_services > total_services:
        raise ValueError("Visible services cannot exceed total services")
    if total_services == 0:
        return 0.0
    return _round2(visible_services / total_services * 100)


def score_badge_variant(score: float) -> str:
    if score >= 70:
        return "success"
    if score >= 40:
        return "warning"
    return "outline"
