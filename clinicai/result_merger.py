"""
Result Merger - picks the best parsed result across providers.
"""

import logging
from typing import List, Optional, Tuple

from clinicai.config import PROVIDER_A, PROVIDER_B
from clinicai.errors import AggregateScanFailure
from clinicai.visibility_models import ParsedVisibility, MergedVisibilityResult

logger = logging.getLogger(__name__)


def _rank_key(parsed: ParsedVisibility) -> int:
    return parsed.rank if parsed.rank is not None else 11


def select_winner(
    parsed_a: Optional[ParsedVisibility],
    parsed_b: Optional[ParsedVisibility],
) -> Tuple[str, ParsedVisibility]:
    """
    Tie-break rules, in order:
    - a single parse wins by default
    - a parse that found the domain beats one that did not
    - between two that found it, the better (lower) rank wins, A on ties
    - between two that did not, A wins
    """
    if parsed_a is None and parsed_b is None:
        raise ValueError("select_winner needs at least one parsed result")
    if parsed_b is None:
        return PROVIDER_A, parsed_a
    if parsed_a is None:
        return PROVIDER_B, parsed_b

    if parsed_a.domain_present != parsed_b.domain_present:
        if parsed_a.domain_present:
            return PROVIDER_A, parsed_a
        return PROVIDER_B, parsed_b

    if parsed_a.domain_present and _rank_key(parsed_b) < _rank_key(parsed_a):
        return PROVIDER_B, parsed_b
    return PROVIDER_A, parsed_a


def union_competitors(*parsed_results: Optional[ParsedVisibility]) -> List[str]:
    competitors: List[str] = []
    for parsed in parsed_results:
        if parsed is None:
            continue
        for name in parsed.competitors:
            if name not in competitors:
                competitors.append(name)
    return competitors


def merge_visibility(
    parsed_a: Optional[ParsedVisibility],
    parsed_b: Optional[ParsedVisibility],
    error_a: Optional[str] = None,
    error_b: Optional[str] = None,
) -> MergedVisibilityResult:
    """
    Merge up to two parsed results into one.

    Raises:
        AggregateScanFailure: neither provider produced a parsed result
    """
    if parsed_a is None and parsed_b is None:
        raise AggregateScanFailure(error_a, error_b)

    winner, best = select_winner(parsed_a, parsed_b)
    merged = MergedVisibilityResult(
        visible=best.domain_present,
        position=best.rank,
        competitors=union_competitors(parsed_a, parsed_b),
        trust_score=best.trust_score,
        local_score=best.local_score,
        raw_analysis=best.raw_analysis,
        winning_provider=winner,
    )
    logger.info(
        "[MERGE] Winner %s: visible=%s position=%s competitors=%d",
        winner, merged.visible, merged.position, len(merged.competitors),
    )
    return merged
