# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Routing table from model id to provider configuration."""

from dataclasses import dataclass
from typing import Mapping, Optional

from src.errors import ConfigurationError, ValidationError

SUPPORTED_PROVIDERS = frozenset({"openai", "openai-compatible"})


@dataclass(frozen=True, slots=True)
class ModelRoute:
    model_id: str
    label: str
    provider: str
    base_url_env: str
    api_key_env: str
    default_base_url: str
    supports_thinking: bool = False


MODEL_ROUTES: dict[str, ModelRoute] = {
    "glm-4.7-flash": ModelRoute(
        model_id="glm-4.7-flash",
        label="GLM-4.7",
        provider="openai-compatible",
        base_url_env="OPENAI_API_URL",
        api_key_env="OPENAI_API_KEY",
        default_base_url="https://open.bigmodel.cn/api/paas/v4",
        supports_thinking=True,
    ),
    "deepseek-chat": ModelRoute(
        model_id="deepseek-chat",
        label="DeepSeek",
        provider="openai",
        base_url_env="DEEPSEEK_API_URL",
        api_key_env="DEEPSEEK_API_KEY",
        default_base_url="https://api.deepseek.com/v1",
    ),
    "deepseek-reasoner": ModelRoute(
        model_id="deepseek-reasoner",
        label="DeepSeek Reasoner",
        provider="openai-compatible",
        base_url_env="DEEPSEEK_API_URL",
        api_key_env="DEEPSEEK_API_KEY",
        default_base_url="https://api.deepseek.com/v1",
        supports_thinking=True,
    ),
    "MiniMax-M2": ModelRoute(
        model_id="MiniMax-M2",
        label="MiniMax M2",
        provider="openai-compatible",
        base_url_env="MINIMAX_API_URL",
        api_key_env="MINIMAX_API_KEY",
        default_base_url="https://api.minimax.chat/v1",
        supports_thinking=True,
    ),
}

DEFAULT_MODEL_ID = "glm-4.7-flash"


def validate_routes(
    routes: Mapping[str, ModelRoute], default_model: Optional[str] = None
) -> None:
    """Raise ConfigurationError if the table cannot route every entry."""
    if not routes:
        raise ConfigurationError("Model routing table is empty")
    for key, route in routes.items():
        if key != route.model_id:
            raise ConfigurationError(
                f"Routing key {key!r} does not match model id {route.model_id!r}"
            )
        if route.provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(
                f"Model {key!r} uses unsupported provider {route.provider!r}"
            )
        if not route.base_url_env or not route.api_key_env:
            raise ConfigurationError(f"Model {key!r} is missing endpoint settings")
    if default_model is not None and default_model not in routes:
        raise ConfigurationError(f"Default model {default_model!r} is not routable")


def get_route(
    model_id: Optional[str], routes: Mapping[str, ModelRoute] = MODEL_ROUTES
) -> ModelRoute:
    """Pure lookup; an unknown id is a request validation problem."""
    key = model_id or DEFAULT_MODEL_ID
    route = routes.get(key)
    if route is None:
        raise ValidationError(f"Unknown model: {key}")
    return route
