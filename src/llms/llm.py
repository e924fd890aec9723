# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from typing import Any, Mapping, Optional

from langchain_core.language_models import BaseChatModel
from langchain_deepseek import ChatDeepSeek
from langchain_openai import ChatOpenAI

from src.config.loader import get_str_env
from src.config.models import DEFAULT_MODEL_ID, MODEL_ROUTES, ModelRoute, get_route
from src.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Budget handed to providers that accept an explicit reasoning allowance.
_THINKING_BUDGET_TOKENS = 12000


def _resolve_endpoint(route: ModelRoute) -> tuple[str, str]:
    base_url = get_str_env(route.base_url_env, route.default_base_url)
    api_key = get_str_env(route.api_key_env)
    if not api_key:
        raise ConfigurationError(
            f"{route.api_key_env} is not set; model {route.model_id!r} is unavailable"
        )
    return base_url, api_key


def _thinking_body(route: ModelRoute, thinking: bool) -> Optional[dict[str, Any]]:
    if not route.supports_thinking:
        return None
    if thinking:
        return {"thinking": {"type": "enabled", "budget_tokens": _THINKING_BUDGET_TOKENS}}
    return {"thinking": {"type": "disabled"}}


def build_llm(route: ModelRoute, *, thinking: bool = False) -> BaseChatModel:
    """Instantiate the chat model a route points at.

    "openai-compatible" endpoints stream reasoning as ``reasoning_content``
    deltas, which ChatDeepSeek surfaces in ``additional_kwargs``.
    """
    base_url, api_key = _resolve_endpoint(route)
    extra_body = _thinking_body(route, thinking)
    if route.provider == "openai":
        return ChatOpenAI(
            model=route.model_id,
            base_url=base_url,
            api_key=api_key,
            streaming=True,
        )
    if route.provider == "openai-compatible":
        kwargs: dict[str, Any] = {}
        if extra_body:
            kwargs["extra_body"] = extra_body
        return ChatDeepSeek(
            model=route.model_id,
            api_base=base_url,
            api_key=api_key,
            streaming=True,
            **kwargs,
        )
    raise ConfigurationError(f"Unsupported provider {route.provider!r}")


def get_llm_by_model(
    model_id: Optional[str],
    *,
    thinking: bool = False,
    routes: Mapping[str, ModelRoute] = MODEL_ROUTES,
) -> BaseChatModel:
    route = get_route(model_id, routes)
    logger.debug("Routing model %s to provider %s", route.model_id, route.provider)
    return build_llm(route, thinking=thinking)


def get_utility_llm() -> BaseChatModel:
    """Model for short auxiliary prompts (titles, query rewriting, objectives)."""
    return get_llm_by_model(get_str_env("AI_UTILITY_MODEL", DEFAULT_MODEL_ID))


def supports_reasoning(model_id: Optional[str], routes: Mapping[str, ModelRoute] = MODEL_ROUTES) -> bool:
    return get_route(model_id, routes).supports_thinking


def is_ai_configured(routes: Mapping[str, ModelRoute] = MODEL_ROUTES) -> bool:
    """True when at least one routed model has credentials."""
    return any(get_str_env(route.api_key_env) for route in routes.values())


def get_configured_llm_models(routes: Mapping[str, ModelRoute] = MODEL_ROUTES) -> list[dict[str, Any]]:
    return [
        {
            "id": route.model_id,
            "label": route.label,
            "provider": route.provider,
            "supportsThinking": route.supports_thinking,
            "available": bool(get_str_env(route.api_key_env)),
        }
        for route in routes.values()
    ]
