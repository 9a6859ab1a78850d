"""JSON parsing utilities for careerflow.

Provides safe, consistent JSON parsing with:
- Quick rejection for non-JSON strings (performance)
- Size limits to prevent memory exhaustion (security)
- Extraction of JSON wrapped in markdown code fences (LLM output)
"""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

# Security: Prevent memory exhaustion from maliciously large JSON
DEFAULT_MAX_JSON_SIZE = 10 * 1024 * 1024  # 10MB

# Max chars to show in debug log previews
_LOG_PREVIEW_LENGTH = 100


def _preview(text: str) -> str:
    return text[:_LOG_PREVIEW_LENGTH] if len(text) > _LOG_PREVIEW_LENGTH else text


def strip_code_fences(text: str) -> str:
    """Extract the body of the first markdown code block, if any.

    Args:
        text: Raw model output

    Returns:
        The code block contents, or the stripped input when there is no block
    """
    trimmed = text.strip()
    if "```" not in trimmed:
        return trimmed

    start = trimmed.find("```json") + 7 if "```json" in trimmed else trimmed.find("```") + 3
    end = trimmed.find("```", start)
    if end > start:
        return trimmed[start:end].strip()
    return trimmed


def _parse(text: str, max_size: int) -> tuple[bool, Any]:
    # Quick rejection: empty string
    if not text:
        return (False, None)

    # Security: size limit (check after strip)
    if len(text) > max_size:
        logger.warning(
            f"Skipping JSON parse: string exceeds size limit ({len(text):,} > {max_size:,} bytes)",
        )
        return (False, None)

    # Quick rejection: doesn't look like JSON
    if text[0] not in '{["tfn-0123456789':
        return (False, None)

    try:
        parsed = json.loads(text)
        logger.debug(f"Parsed JSON string to {type(parsed).__name__}", extra={"preview": _preview(text)})
        return (True, parsed)
    except (json.JSONDecodeError, ValueError) as e:
        logger.debug(f"String is not valid JSON: {type(e).__name__}", extra={"preview": _preview(text)})
        return (False, None)


def try_parse_json(
    value: str,
    *,
    max_size: int = DEFAULT_MAX_JSON_SIZE,
) -> tuple[bool, Any]:
    """Attempt to parse a string as JSON.

    Returns a tuple of (success, result) where:
    - (True, parsed_value) if parsing succeeded
    - (False, original_value) if parsing failed or was skipped

    The whole body is parsed first, so fences inside JSON string values
    are left alone. Only when that fails is the first markdown code block
    tried.

    Args:
        value: String that may contain JSON
        max_size: Maximum string size to attempt parsing (default 10MB)

    Returns:
        Tuple of (success: bool, result: Any)

    Examples:
        >>> try_parse_json('{"a": 1}')
        (True, {'a': 1})
        >>> try_parse_json('```json\\n{"a": 1}\\n```')
        (True, {'a': 1})
        >>> try_parse_json('not json')
        (False, 'not json')
    """
    if not isinstance(value, str):
        return (False, value)

    text = value.strip()
    success, parsed = _parse(text, max_size)
    if not success and "```" in text:
        success, parsed = _parse(strip_code_fences(text), max_size)
    return (True, parsed) if success else (False, value)
