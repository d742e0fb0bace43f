"""
Query builder and domain helpers for visibility scans.
"""

import re
from typing import Dict, List

_SCHEME_RE = re.compile(r"^https?://")


def build_prompt(query: str, city: str) -> str:
    """
    Build the simulated end-user question sent to each provider.
    Both query and city are embedded verbatim.
    """
    return (
        f"I'm looking for {query} in {city}. "
        "Can you recommend the top 5 clinics or medical facilities that provide this service? "
        "Please include their names, locations, and any relevant details about why you're recommending them."
    )


def build_scan_messages(prompt: str) -> List[Dict[str, str]]:
    return [{"role": "user", "content": prompt}]


def normalize_domain(domain: str) -> str:
    """
    Normalize a domain for comparison: lowercase, no scheme, no www., no trailing slash.
    Applied until stable so normalize_domain(normalize_domain(d)) == normalize_domain(d).
    """
    current = (domain or "").lower()
    while True:
        stripped = current.strip()
        stripped = _SCHEME_RE.sub("", stripped)
        if stripped.startswith("www."):
            stripped = stripped[4:]
        stripped = stripped.rstrip("/")
        if stripped == current:
            return current
        current = stripped


def ensure_scheme(domain: str) -> str:
    """Return the domain as a URL, adding https:// if missing."""
    domain = (domain or "").strip()
    if domain.lower().startswith(("http://", "https://")):
        return domain
    return f"https://{domain}"


def domain_variants(domain: str) -> List[str]:
    normalized = normalize_domain(domain)
    return [
        normalized,
        f"www.{normalized}",
        f"http://{normalized}",
        f"https://{normalized}",
    ]

