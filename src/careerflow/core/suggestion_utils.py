"""Shared "did you mean" helpers for flow names.

Used by the registry when a lookup misses and by the CLI when it reports
unknown flows.
"""

import difflib
from typing import Literal


def find_similar_items(
    query: str,
    items: list[str],
    *,
    max_results: int = 3,
    method: Literal["substring", "fuzzy", "both"] = "both",
    cutoff: float = 0.5,
) -> list[str]:
    """Find items similar to query.

    Args:
        query: Search query to match against items
        items: Available items
        max_results: Maximum number of suggestions to return
        method: "substring" (case-insensitive), "fuzzy" (difflib), or "both"
            (substring matches first, then fuzzy matches not already found)
        cutoff: Similarity threshold for fuzzy matching (0.0-1.0)

    Returns:
        Matching items, at most max_results

    Examples:
        >>> find_similar_items("resume", ["tailorResume", "generateDocument"])
        ['tailorResume']
        >>> find_similar_items("generateDocumnt", ["generateDocument"], method="fuzzy")
        ['generateDocument']
    """
    matches: list[str] = []

    if method in ("substring", "both"):
        query_lower = query.lower()
        matches.extend(item for item in items if query_lower in item.lower())

    if method in ("fuzzy", "both"):
        # Compare case-insensitively, report original spelling
        lowered = {item.lower(): item for item in items}
        for close in difflib.get_close_matches(query.lower(), list(lowered), n=max_results, cutoff=cutoff):
            original = lowered[close]
            if original not in matches:
                matches.append(original)

    return matches[:max_results]


def format_did_you_mean(
    query: str,
    suggestions: list[str],
    *,
    item_type: str = "flow",
    fallback_items: list[str] | None = None,
    max_fallback: int = 10,
) -> str:
    """Format suggestions as a user-friendly message.

    Examples:
        >>> format_did_you_mean("tailor", ["tailorResume"])
        'Did you mean one of these flows?\\n  - tailorResume'
        >>> format_did_you_mean("xyz", [])
        "No flows found matching 'xyz'"
    """
    if suggestions:
        lines = [f"Did you mean one of these {item_type}s?"]
        lines.extend(f"  - {suggestion}" for suggestion in suggestions)
        return "\n".join(lines)

    if fallback_items:
        lines = [f"No similar {item_type}s found. Available {item_type}s:"]
        lines.extend(f"  - {item}" for item in fallback_items[:max_fallback])
        if len(fallback_items) > max_fallback:
            lines.append(f"  ... and {len(fallback_items) - max_fallback} more")
        return "\n".join(lines)

    return f"No {item_type}s found matching '{query}'"
