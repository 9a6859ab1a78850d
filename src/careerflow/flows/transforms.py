"""Input preparation steps used by built-in flows.

A prepare step receives the validated input (a private copy) and returns
the value the template is rendered against. Steps are pure functions.
"""

from typing import Any

BULLET = "•"


def bulletize(text: str) -> str:
    """Prefix every non-blank line with a bullet unless it already has one.

    Examples:
        >>> bulletize("Led a team\\n• Shipped v2")
        '• Led a team\\n• Shipped v2'
    """
    lines = []
    for line in text.splitlines():
        if not line.strip():
            continue
        lines.append(line if line.strip().startswith(BULLET) else f"{BULLET} {line.strip()}")
    return "\n".join(lines)


def bulletize_resume_input(value: dict[str, Any]) -> dict[str, Any]:
    """Bullet-prefix work responsibilities and leadership descriptions."""
    value["workExperience"] = [
        {**job, "responsibilities": bulletize(job.get("responsibilities") or "")}
        for job in value.get("workExperience", [])
    ]
    if value.get("leadership"):
        value["leadership"] = [
            {**entry, "description": bulletize(entry.get("description") or "")} for entry in value["leadership"]
        ]
    return value
