"""
Document Import — LLM Client
============================
Version 1.0 — October 2026

Wrapper for LLM interactions with retry logic and error handling.

Supported Providers:
- anthropic: Claude models (requires ANTHROPIC_API_KEY)
- openai: GPT models (requires OPENAI_API_KEY)
- google: Gemini models (requires GOOGLE_API_KEY)
- openrouter: OpenRouter proxy (requires OPENROUTER_API_KEY)
- local: Ollama local models (requires Ollama running, optional OLLAMA_BASE_URL)

Example:
    from config import ModelConfig
    config = ModelConfig(provider="local", model_name="llama3.2")
    llm = get_llm(config)
    response = await ainvoke_llm(llm, messages)
"""

import json
import os
import re
from typing import Any, Dict, Optional, Tuple

from config import ModelConfig


# OpenAI-compatible endpoints: provider -> (API key env var, base URL)
_OPENAI_COMPATIBLE = {
    "openai": ("OPENAI_API_KEY", None),
    "openrouter": ("OPENROUTER_API_KEY", "https://openrouter.ai/api/v1"),
}

DEFAULT_MODEL = ModelConfig(provider="openai", model_name="gpt-4o", temperature=0.5)


def get_llm(model_config: Optional[ModelConfig] = None):
    """
    Build the chat model for one AI collaborator.

    Every provider is created with retries (429s back off exponentially)
    and a request timeout; local models get fewer retries and more time.

    Args:
        model_config: Model configuration. If None, uses DEFAULT_MODEL.

    Raises:
        ValueError: Unknown provider
    """
    model_config = model_config or DEFAULT_MODEL
    provider = model_config.provider.lower()
    common = {
        "model": model_config.model_name,
        "temperature": model_config.temperature,
        "max_retries": 5,
        "timeout": 60.0,
    }

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic
        return ChatAnthropic(
            max_tokens=model_config.max_tokens or 4096,
            api_key=os.getenv("ANTHROPIC_API_KEY"),
            **common,
        )

    if provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI
        return ChatGoogleGenerativeAI(
            max_tokens=model_config.max_tokens,
            google_api_key=os.getenv("GOOGLE_API_KEY"),
            **common,
        )

    from langchain_openai import ChatOpenAI

    if provider in _OPENAI_COMPATIBLE:
        key_env, base_url = _OPENAI_COMPATIBLE[provider]
        return ChatOpenAI(
            max_tokens=model_config.max_tokens,
            api_key=os.getenv(key_env),
            base_url=base_url,
            **common,
        )

    if provider == "local":
        # Ollama ignores the key but langchain needs one
        common.update(max_retries=3, timeout=120.0)
        return ChatOpenAI(
            max_tokens=model_config.max_tokens,
            api_key="ollama",
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1"),
            **common,
        )

    raise ValueError(f"Unsupported LLM provider: {provider}")


async def ainvoke_llm(llm, messages, **kwargs):
    """Invoke a chat model asynchronously; kwargs pass through to ainvoke."""
    return await llm.ainvoke(messages, **kwargs)


def response_text(response: Any) -> str:
    """Return the text content of a chat model response."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Anthropic returns content blocks
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return str(content)


def token_usage(response: Any) -> Tuple[int, int]:
    """Return (prompt_tokens, completion_tokens) from a response, or zeros."""
    usage = getattr(response, "usage_metadata", None) or {}
    return int(usage.get("input_tokens", 0) or 0), int(usage.get("output_tokens", 0) or 0)


def extract_json(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of an LLM reply.

    Handles fenced markdown blocks, a bare object surrounded by prose,
    and a reply that is pure JSON.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if fenced:
        candidate = fenced.group(1)
    else:
        bare = re.search(r"\{[\s\S]*\}", text)
        candidate = bare.group(0) if bare else text.strip()

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ValueError(f"AI returned invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError("AI returned JSON that is not an object")
    return parsed
