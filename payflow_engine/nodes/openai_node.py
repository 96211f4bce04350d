"""
OpenAI node handler.
"""

import json
from typing import Any, Dict

from ..services.openai_client import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    build_messages,
    create_chat_completion,
    resolve_api_key,
    usage_dict,
)
from .base import NodeHandler, NodeRun

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class OpenAINodeHandler(NodeHandler):
    """Single chat completion; output is {content, model, usage}."""

    node_types = ("openai",)

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        prompt = config.get("prompt")
        if not prompt:
            previous = run.input.get("previous")
            prompt = previous if isinstance(previous, str) else json.dumps(previous or {}, default=str)

        model = config.get("model") or DEFAULT_MODEL
        temperature = config.get("temperature")
        api_key = resolve_api_key(run.context.get_credential("openai"))

        self.logger.info(f"📝 Prompt: {str(prompt)[:100]}...")
        response = await create_chat_completion(
            api_key,
            timeout=self.timeout,
            model=model,
            messages=build_messages(config.get("systemPrompt") or DEFAULT_SYSTEM_PROMPT, str(prompt)),
            max_tokens=int(config.get("maxTokens") or DEFAULT_MAX_TOKENS),
            temperature=DEFAULT_TEMPERATURE if temperature in (None, "") else float(temperature),
        )

        content = response.choices[0].message.content if response.choices else None
        run.log(f"OpenAI {model} responded")
        return {
            "content": content or "",
            "model": getattr(response, "model", model),
            "usage": usage_dict(response),
        }
