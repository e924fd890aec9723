import pytest
from langchain_deepseek import ChatDeepSeek
from langchain_openai import ChatOpenAI

from src.config.models import MODEL_ROUTES, ModelRoute, get_route, validate_routes
from src.errors import ConfigurationError, ValidationError
from src.llms.llm import (
    get_configured_llm_models,
    get_llm_by_model,
    is_ai_configured,
    supports_reasoning,
)

KEYS = ("OPENAI_API_KEY", "DEEPSEEK_API_KEY", "MINIMAX_API_KEY")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in KEYS + ("OPENAI_API_URL", "DEEPSEEK_API_URL", "MINIMAX_API_URL"):
        monkeypatch.delenv(name, raising=False)


def test_default_route_is_used_without_model():
    assert get_route(None).model_id == "glm-4.7-flash"


def test_unknown_model_is_a_validation_error():
    with pytest.raises(ValidationError):
        get_route("gpt-unknown")


def test_builtin_routing_table_is_valid():
    validate_routes(MODEL_ROUTES, "glm-4.7-flash")


def test_validate_routes_rejects_bad_tables():
    bad_provider = ModelRoute("m", "M", "ollama", "M_URL", "M_KEY", "http://localhost")
    with pytest.raises(ConfigurationError):
        validate_routes({"m": bad_provider})
    with pytest.raises(ConfigurationError):
        validate_routes({"other": MODEL_ROUTES["deepseek-chat"]})
    with pytest.raises(ConfigurationError):
        validate_routes({})
    with pytest.raises(ConfigurationError):
        validate_routes(MODEL_ROUTES, "missing-default")


def test_openai_route_builds_chat_openai(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test")
    monkeypatch.setenv("DEEPSEEK_API_URL", "https://proxy.test/v1")

    llm = get_llm_by_model("deepseek-chat")

    assert isinstance(llm, ChatOpenAI)
    assert llm.model_name == "deepseek-chat"
    assert llm.openai_api_base == "https://proxy.test/v1"
    assert llm.streaming is True


def test_compatible_route_sends_thinking_switch(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    enabled = get_llm_by_model("glm-4.7-flash", thinking=True)
    disabled = get_llm_by_model("glm-4.7-flash", thinking=False)

    assert isinstance(enabled, ChatDeepSeek)
    assert enabled.api_base == "https://open.bigmodel.cn/api/paas/v4"
    assert enabled.extra_body["thinking"]["type"] == "enabled"
    assert disabled.extra_body == {"thinking": {"type": "disabled"}}


def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        get_llm_by_model("MiniMax-M2")


def test_model_listing_reflects_credentials(monkeypatch):
    assert is_ai_configured() is False
    monkeypatch.setenv("MINIMAX_API_KEY", "sk-test")

    models = {model["id"]: model for model in get_configured_llm_models()}

    assert is_ai_configured() is True
    assert models["MiniMax-M2"]["available"] is True
    assert models["deepseek-chat"]["available"] is False
    assert supports_reasoning("deepseek-reasoner") is True
    assert supports_reasoning("deepseek-chat") is False
