"""Default model resolver wiring using environment-derived settings.

Converts the settings plus an execution's ``model_config`` overrides into a
``ModelClient``. Clients are created lazily and reused per configuration.

Recognised ``model_config`` keys: ``model``, ``temperature``, ``api_key``,
``base_url``.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from langchain_openai import ChatOpenAI

from swarmAgent.config import Settings
from swarmAgent.models import ChatModelClient, ModelClient

LOGGER = logging.getLogger(__name__)

ModelResolver = Callable[[Mapping[str, Any]], ModelClient]

_PLACEHOLDER_IDS = {"chat-mid"}


def resolve_model_config(settings: Settings, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Merge settings defaults with per-execution overrides.

    Args:
        settings: Application settings loaded from .env
        overrides: ``ExecutionOptions.model_config``

    Returns:
        Dict with keys: model, api_key, base_url, temperature
    """
    overrides = dict(overrides or {})
    model_id = settings.models.swarm
    if model_id in _PLACEHOLDER_IDS:
        model_id = os.getenv("MODEL_SWARM_ID") or model_id

    return {
        "model": overrides.get("model") or model_id,
        "api_key": overrides.get("api_key") or settings.models.swarm_api_key,
        "base_url": overrides.get("base_url") or settings.models.swarm_base_url,
        "temperature": overrides.get("temperature", settings.models.temperature),
    }


def _chat_kwargs(config: Mapping[str, Any]) -> Dict[str, object]:
    if not config.get("api_key"):
        raise RuntimeError(f"Missing API key for model {config['model']}; set MODEL_SWARM_API_KEY in .env")
    kwargs: Dict[str, object] = {
        "model": config["model"],
        "api_key": config["api_key"],
        "temperature": config["temperature"],
    }
    if config.get("base_url"):
        kwargs["base_url"] = config["base_url"]
    return kwargs


def build_model_resolver(settings: Settings) -> ModelResolver:
    """Construct a resolver that returns ChatOpenAI-backed model clients.

    Example:
        resolver = build_model_resolver(get_settings())
        client = resolver({"model": "gpt-4o-mini", "temperature": 0})
    """
    cache: Dict[str, ModelClient] = {}

    def resolver(model_config: Mapping[str, Any]) -> ModelClient:
        config = resolve_model_config(settings, model_config)
        key = json.dumps({k: v for k, v in config.items() if k != "api_key"}, sort_keys=True, default=str)
        if key not in cache:
            LOGGER.info(f"Creating model client: {config['model']} (temperature={config['temperature']})")
            cache[key] = ChatModelClient(ChatOpenAI(**_chat_kwargs(config)))
        return cache[key]

    return resolver
