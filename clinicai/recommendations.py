"""
Recommendation text for a service visibility analysis.
"""

from typing import List, Optional

from clinicai.visibility_models import CompetitorDetail

_ORDINAL_WORDS = {1: "first", 2: "second", 3: "third"}


def ordinal_position(position: int) -> str:
    """first, second, third, then 4th, 11th, 21st, 22nd ..."""
    if position in _ORDINAL_WORDS:
        return _ORDINAL_WORDS[position]
    if 10 <= position % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(position % 10, "th")
    return f"{position}{suffix}"


def generate_recommendation_text(
    visible: bool,
    position: Optional[int],
    total_results: int,
    competitors: List[CompetitorDetail],
) -> str:
    if not visible:
        return (
            "Your domain was not found in the AI recommendations. Consider improving your "
            "online presence, local SEO, and ensuring your clinic information is easily "
            "discoverable. Focus on building authority signals and local citations."
        )

    if position is None:
        return (
            "Your domain was mentioned but position could not be determined. Continue "
            "improving your visibility through content optimization and local SEO."
        )

    top_competitors = [c for c in competitors if c.rank < position and c.rank <= 3][:2]

    recommendation = (
        f"Great! Your domain was found in {ordinal_position(position)} position "
        f"out of {total_results} recommendations. "
    )

    if top_competitors:
        names = " and ".join(c.name for c in top_competitors)
        recommendation += f"To improve your ranking, consider analyzing what makes {names} stand out. "
        leader = top_competitors[0]
        if leader.strengths:
            recommendation += f"For example, {leader.name} is noted for: {leader.strengths}. "

    recommendation += (
        "Focus on enhancing your E-E-A-T signals, local presence, and technical "
        "optimization to move up in rankings."
    )
    return recommendation
