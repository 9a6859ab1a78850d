"""Flow engine: the invocation boundary used by callers.

    engine = FlowEngine(create_registry())
    output = engine.invoke("tailorResume", {"resume": "...", "jobDescription": "..."})

Each call builds its own Invocation and pipeline; the only state shared
between calls is the frozen registry and the provider adapter, so calls
may run fully concurrently (threads or asyncio tasks).
"""

import copy
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Optional

from careerflow.core.exceptions import CareerflowError, RateLimited
from careerflow.core.flow import Flow
from careerflow.providers.base import ProviderAdapter, ProviderConfig, RateLimitPolicy
from careerflow.registry.registry import FlowRegistry
from careerflow.runtime.invocation import Invocation
from careerflow.runtime.pipeline import create_async_pipeline, create_pipeline, create_render_pipeline
from careerflow.runtime.template_renderer import RenderedPrompt

if TYPE_CHECKING:
    from careerflow.core.settings import CareerflowSettings

logger = logging.getLogger(__name__)


class FlowEngine:
    """Runs registered flows: validate → render → invoke → validate.

    Args:
        registry: Flow registry (frozen on construction)
        provider: Provider adapter; defaults to ``LLMProvider``
        default_model: Model for flows that don't name one; defaults to
            the configured ``llm.default_model`` setting
        settings: Settings to read defaults from; loaded from the user's
            settings file when omitted
    """

    def __init__(
        self,
        registry: FlowRegistry,
        provider: Optional[ProviderAdapter] = None,
        default_model: Optional[str] = None,
        settings: Optional["CareerflowSettings"] = None,
    ):
        self.registry = registry.freeze()

        if settings is None and (default_model is None or provider is None):
            # Lazy import: settings are only needed when something is left unconfigured
            from careerflow.core.settings import SettingsManager

            settings = SettingsManager().load()

        self._default_temperature = settings.llm.temperature if settings is not None else None
        if settings is not None:
            default_model = default_model or settings.llm.default_model
            if provider is None:
                from careerflow.providers.llm_provider import LLMProvider

                provider = LLMProvider(
                    default_model=default_model,
                    rate_limit_policy=RateLimitPolicy.from_settings(settings.rate_limit),
                )

        self.provider = provider
        self.default_model = default_model

    def provider_config_for(self, flow: Flow, model: Optional[str] = None) -> ProviderConfig:
        """Resolve the provider config of a call: explicit model → flow model → default."""
        config = flow.provider_config
        if config.model is None:
            config = config.with_model(self.default_model)
        if model is not None:
            config = config.with_model(model)
        if config.temperature is None and self._default_temperature is not None:
            config = replace(config, temperature=self._default_temperature)
        return config

    def _start(self, name: str, value: Any, model: Optional[str]) -> Invocation:
        flow = self.registry.lookup(name)
        return Invocation(flow=flow, raw_input=value, provider_config=self.provider_config_for(flow, model))

    def _failed(self, invocation: Invocation, error: CareerflowError) -> None:
        invocation.fail(error)
        if isinstance(error, RateLimited):
            logger.warning(
                f"Flow '{invocation.flow.name}' was rate limited by the provider",
                extra={**invocation.log_extra, "status": error.status},
            )

    def _finished(self, invocation: Invocation) -> dict[str, Any]:
        logger.info(
            f"Flow '{invocation.flow.name}' completed in {invocation.duration:.2f}s",
            extra={**invocation.log_extra, "timings": invocation.timings},
        )
        assert invocation.output is not None
        # The caller owns the result outright
        return copy.deepcopy(invocation.output)

    def invoke(self, name: str, value: Any, model: Optional[str] = None) -> dict[str, Any]:
        """Invoke a flow by name.

        Args:
            name: Registered flow name
            value: Input value (maps/lists/scalars)
            model: Optional model override for this call only

        Returns:
            Output value validated against the flow's output schema

        Raises:
            FlowNotFoundError: Unknown flow name
            ValidationError: Input doesn't match the input schema
            RenderError: Template needs a value that is absent
            RateLimited: Provider reported rate limiting or quota exhaustion
            ProviderUnavailable: Any other provider failure
            OutputMismatchError: Response doesn't match the output schema
        """
        invocation = self._start(name, value, model)
        shared = {"invocation": invocation}
        try:
            create_pipeline(self.provider).run(shared)
        except CareerflowError as e:
            self._failed(invocation, e)
            raise
        return self._finished(invocation)

    async def ainvoke(self, name: str, value: Any, model: Optional[str] = None) -> dict[str, Any]:
        """Async variant of ``invoke``; only the provider call awaits."""
        invocation = self._start(name, value, model)
        shared = {"invocation": invocation}
        try:
            await create_async_pipeline(self.provider).run_async(shared)
        except CareerflowError as e:
            self._failed(invocation, e)
            raise
        return self._finished(invocation)

    def render(self, name: str, value: Any) -> RenderedPrompt:
        """Validate input and render the prompt without calling the provider.

        Raises:
            FlowNotFoundError, ValidationError, RenderError
        """
        invocation = self._start(name, value, None)
        create_render_pipeline().run({"invocation": invocation})
        assert invocation.prompt is not None
        return invocation.prompt
