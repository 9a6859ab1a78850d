"""Turn a raw provider response into a validated flow output."""

import logging
from typing import Any

from careerflow.core.exceptions import OutputMismatchError, ValidationError
from careerflow.core.json_utils import try_parse_json
from careerflow.core.schema import ObjectField
from careerflow.core.validation import validate
from careerflow.providers.base import RawResponse

logger = logging.getLogger(__name__)


def coerce(output_schema: ObjectField, raw: RawResponse) -> dict[str, Any]:
    """Validate a provider response against a flow's output schema.

    Args:
        output_schema: Declared output shape
        raw: Response returned by the provider adapter

    Returns:
        Validated output (a fresh value with declared defaults applied)

    Raises:
        OutputMismatchError: If the response is absent, empty, not
            structured, or fails validation. Carries the offending field
            path when validation names one.
    """
    data = raw.data
    if isinstance(data, str):
        # Adapters that don't parse JSON themselves
        _, data = try_parse_json(data)

    if data is None or data == "" or data == {}:
        raise OutputMismatchError("Provider returned an empty response")
    if not isinstance(data, dict):
        raise OutputMismatchError(
            f"Provider response is not structured data matching the output schema (got {type(data).__name__})"
        )

    try:
        return validate(output_schema, data)
    except ValidationError as e:
        logger.debug(
            f"Provider response failed output validation: {e.detail}",
            extra={"path": e.path, "constraint": e.constraint},
        )
        raise OutputMismatchError(f"Provider response does not match the output schema: {e}", path=e.path, cause=e) from e
