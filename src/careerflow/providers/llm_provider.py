"""Default provider adapter built on the ``llm`` library.

Any model ``llm`` can reach (through its plugins) can back a flow:

    provider = LLMProvider()
    raw = provider.invoke(ProviderConfig(model="gemini-2.5-flash"), "Hello", ())

Request construction is deterministic: the same (config, text,
attachments, schema) always produce the same model id, prompt and keyword
arguments, which ``build_request`` exposes for dry runs and tests.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

import llm

from careerflow.core.json_utils import try_parse_json
from careerflow.providers.base import (
    ProviderAdapter,
    ProviderConfig,
    ProviderFailure,
    RateLimitPolicy,
    RawResponse,
)
from careerflow.runtime.template_renderer import MediaAttachment

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "gemini-2.5-flash"

JSON_INSTRUCTION = (
    "Respond with a single JSON object and nothing else. "
    "It must validate against this JSON Schema:\n{schema}"
)


@dataclass(frozen=True)
class LLMRequest:
    """Everything needed for one ``model.prompt`` call."""

    model: str
    prompt: str
    system: Optional[str] = None
    attachments: tuple[MediaAttachment, ...] = ()
    schema: Optional[dict[str, Any]] = None
    schema_in_system: bool = False
    options: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> dict[str, Any]:
        """Summary without payloads (for logs and dry runs)."""
        return {
            "model": self.model,
            "prompt_chars": len(self.prompt),
            "system": bool(self.system),
            "attachments": [attachment.describe() for attachment in self.attachments],
            "schema": "native" if self.schema and not self.schema_in_system else ("system" if self.schema else None),
            "options": dict(self.options),
        }


def to_llm_attachment(attachment: MediaAttachment) -> "llm.Attachment":
    """Convert a rendered media attachment into an ``llm.Attachment``."""
    if attachment.url is not None:
        return llm.Attachment(url=attachment.url)
    return llm.Attachment(type=attachment.mime_type, content=attachment.data)


def normalize_usage(usage_obj: Any) -> dict[str, int]:
    """Normalise ``response.usage()`` into input/output/total token counts.

    Handles the ``llm`` Usage object (``.input`` / ``.output``), dicts using
    either naming scheme, and None.
    """
    if not usage_obj:
        return {}
    if isinstance(usage_obj, dict):
        input_tokens = usage_obj.get("input", usage_obj.get("input_tokens", 0))
        output_tokens = usage_obj.get("output", usage_obj.get("output_tokens", 0))
    else:
        input_tokens = getattr(usage_obj, "input", 0)
        output_tokens = getattr(usage_obj, "output", 0)

    input_tokens = input_tokens or 0
    output_tokens = output_tokens or 0
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
    }


class LLMProvider(ProviderAdapter):
    """Provider adapter that calls models through ``llm.get_model``.

    Args:
        default_model: Model used when a config leaves ``model`` unset
        rate_limit_policy: Predicate the classifier uses for this adapter
    """

    name = "llm"

    def __init__(self, default_model: str = FALLBACK_MODEL, rate_limit_policy: Optional[RateLimitPolicy] = None):
        super().__init__(rate_limit_policy)
        self.default_model = default_model

    def build_request(
        self,
        config: ProviderConfig,
        text: str,
        attachments: Iterable[MediaAttachment] = (),
        schema: Optional[dict[str, Any]] = None,
        supports_schema: bool = True,
    ) -> LLMRequest:
        """Construct the outbound request without touching the network."""
        system = config.system
        schema_in_system = schema is not None and not supports_schema
        if schema_in_system:
            instruction = JSON_INSTRUCTION.format(schema=json.dumps(schema, indent=2, sort_keys=True))
            system = f"{system}\n\n{instruction}" if system else instruction

        options: dict[str, Any] = dict(config.options)
        # Only pass optional parameters when set, the model's own defaults apply otherwise
        if config.temperature is not None:
            options["temperature"] = config.temperature
        if config.max_tokens is not None:
            options["max_tokens"] = config.max_tokens

        return LLMRequest(
            model=config.model or self.default_model,
            prompt=text,
            system=system,
            attachments=tuple(attachments),
            schema=schema,
            schema_in_system=schema_in_system,
            options=options,
        )

    def _prompt_kwargs(self, request: LLMRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"stream": False, **request.options}
        if request.system is not None:
            kwargs["system"] = request.system
        if request.attachments:
            kwargs["attachments"] = [to_llm_attachment(attachment) for attachment in request.attachments]
        if request.schema is not None and not request.schema_in_system:
            kwargs["schema"] = request.schema
        return kwargs

    def _to_response(self, request: LLMRequest, text: str, usage_obj: Any) -> RawResponse:
        data: Any = None
        if text and text.strip():
            success, parsed = try_parse_json(text)
            data = parsed if success else text
        return RawResponse(data=data, text=text or "", model=request.model, usage=normalize_usage(usage_obj))

    def invoke(
        self,
        config: ProviderConfig,
        text: str,
        attachments: Iterable[MediaAttachment] = (),
        schema: Optional[dict[str, Any]] = None,
    ) -> RawResponse:
        model_id = config.model or self.default_model
        try:
            model = llm.get_model(model_id)
            request = self.build_request(
                config, text, attachments, schema, supports_schema=bool(getattr(model, "supports_schema", False))
            )
            logger.debug("Invoking llm model", extra=request.describe())
            response = model.prompt(request.prompt, **self._prompt_kwargs(request))
            # text() forces evaluation of the lazy response
            body = response.text()
            usage_obj = response.usage()
        except Exception as e:
            raise ProviderFailure.from_exception(e) from e
        return self._to_response(request, body, usage_obj)

    async def ainvoke(
        self,
        config: ProviderConfig,
        text: str,
        attachments: Iterable[MediaAttachment] = (),
        schema: Optional[dict[str, Any]] = None,
    ) -> RawResponse:
        model_id = config.model or self.default_model
        try:
            model = llm.get_async_model(model_id)
            request = self.build_request(
                config, text, attachments, schema, supports_schema=bool(getattr(model, "supports_schema", False))
            )
            logger.debug("Invoking async llm model", extra=request.describe())
            response = model.prompt(request.prompt, **self._prompt_kwargs(request))
            body = await response.text()
            usage_obj = await response.usage()
        except Exception as e:
            raise ProviderFailure.from_exception(e) from e
        return self._to_response(request, body, usage_obj)
