"""Execution settings for OpenRouter chat completions.

Every field is optional; unset fields are not sent. Host frameworks may pass
a plain mapping of settings, which ``from_execution_settings`` converts.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    InstanceOf,
    field_validator,
    model_validator,
)

from .functions import DEFAULT_MAX_TOOL_ITERATIONS, FunctionChoiceBehavior
from .logit_bias import validate_bias
from .models import ResponseFormat

logger = logging.getLogger(__name__)


class OpenRouterExecutionSettings(BaseModel):
    """Per-request OpenRouter settings."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    model_id: str | None = Field(default=None, validation_alias=AliasChoices("model_id", "model"))

    # Sampling
    max_tokens: int | None = Field(default=None, ge=1)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    top_k: int | None = Field(default=None, ge=0)
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    repetition_penalty: float | None = Field(default=None, ge=0.0, le=2.0)
    stop_sequences: list[str] | None = Field(
        default=None, validation_alias=AliasChoices("stop_sequences", "stop")
    )
    seed: int | None = None

    # OpenRouter routing
    models: list[str] | None = Field(
        default=None, validation_alias=AliasChoices("models", "fallback_models")
    )
    provider: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("provider", "provider_preferences")
    )

    response_format: ResponseFormat | None = None
    logit_bias: dict[int, int] | None = None
    user: str | None = None
    max_completion_tokens: int | None = Field(default=None, ge=1)
    store: bool | None = None
    metadata: dict[str, Any] | None = None
    top_logprobs: int | None = Field(default=None, ge=0, le=20)
    logprobs: bool | None = Field(default=None, validation_alias=AliasChoices("logprobs", "log_probs"))
    service_tier: str | None = None

    # Function calling
    parallel_tool_calls: bool | None = None
    function_choice_behavior: InstanceOf[FunctionChoiceBehavior] | None = None
    auto_invoke_tools: bool | None = None
    max_tool_iterations: int | None = Field(default=None, ge=1)

    @field_validator("logit_bias")
    @classmethod
    def _check_logit_bias(cls, value: dict[int, int] | None) -> dict[int, int] | None:
        if value is not None:
            for bias in value.values():
                validate_bias(bias)
        return value

    @classmethod
    def accepted_keys(cls) -> set[str]:
        """Field names plus every alternative name a field accepts."""
        keys = set(cls.model_fields)
        for info in cls.model_fields.values():
            if isinstance(info.validation_alias, AliasChoices):
                keys.update(c for c in info.validation_alias.choices if isinstance(c, str))
        return keys

    @model_validator(mode="before")
    @classmethod
    def _log_unknown_keys(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            unknown = sorted(str(key) for key in data if key not in cls.accepted_keys())
            if unknown:
                logger.warning("Ignoring unsupported execution settings: %s", ", ".join(unknown))
        return data

    @classmethod
    def from_execution_settings(
        cls,
        settings: "OpenRouterExecutionSettings | Mapping[str, Any] | None",
    ) -> "OpenRouterExecutionSettings":
        """Convert host settings into OpenRouter settings.

        Args:
            settings: None, an existing instance, or a mapping of field values.

        Returns:
            An OpenRouterExecutionSettings instance (a new default one for None).

        Raises:
            TypeError: If ``settings`` is of an unsupported type.
        """
        if settings is None:
            return cls()
        if isinstance(settings, cls):
            return settings
        if isinstance(settings, BaseModel):
            # Shallow copy keeps nested objects such as the behavior intact
            return cls.model_validate({k: v for k, v in dict(settings).items() if v is not None})
        if isinstance(settings, Mapping):
            return cls.model_validate(dict(settings))
        raise TypeError(f"Unsupported execution settings type: {type(settings).__name__}")

    @property
    def auto_invoke(self) -> bool:
        """Whether tool calls are executed automatically.

        ``auto_invoke_tools`` wins when set, else the behavior decides.
        """
        if self.auto_invoke_tools is not None:
            return self.auto_invoke_tools
        if self.function_choice_behavior is not None:
            return self.function_choice_behavior.auto_invoke
        return False

    @property
    def resolved_max_tool_iterations(self) -> int:
        if self.max_tool_iterations is not None:
            return self.max_tool_iterations
        behavior = self.function_choice_behavior
        if behavior is not None and behavior.max_iterations is not None:
            return behavior.max_iterations
        return DEFAULT_MAX_TOOL_ITERATIONS
