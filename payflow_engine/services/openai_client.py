"""OpenAI chat-completion helper shared by the OpenAI node and the agent adapter."""

import logging
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ..core.config import get_settings
from ..models.credential import ProviderCredential
from .api_adapters.base import AuthenticationError, TemporaryError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


def resolve_api_key(credentials: Optional[ProviderCredential]) -> str:
    """The user's OpenAI key, falling back to the service-wide key."""
    if credentials is not None and credentials.api_key:
        return credentials.api_key
    api_key = get_settings().openai_api_key
    if not api_key:
        raise AuthenticationError("OpenAI API key not configured")
    return api_key


def build_messages(system_prompt: Optional[str], user_prompt: str) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


async def create_chat_completion(api_key: str, timeout: Optional[float] = None, **params: Any) -> Any:
    """
    Call chat.completions.create and translate client errors.

    Raises:
        AuthenticationError: the key was rejected
        TemporaryError: timeout or connection failure
        TransportError: any other API error status
    """
    client = AsyncOpenAI(api_key=api_key, timeout=timeout or get_settings().http_timeout)
    logger.info(f"Calling OpenAI API with model: {params.get('model')}")
    try:
        return await client.chat.completions.create(**params)
    except openai.AuthenticationError as e:
        raise AuthenticationError(f"Invalid or missing OpenAI API key: {e}")
    except (openai.APITimeoutError, openai.APIConnectionError) as e:
        raise TemporaryError(f"Failed to reach OpenAI API: {e}")
    except openai.APIStatusError as e:
        raise TransportError(
            f"OpenAI API error: {e.status_code} - {e.message}",
            status_code=e.status_code,
            body=e.response.text if e.response is not None else None,
        )
    finally:
        await client.close()


def usage_dict(response: Any) -> Dict[str, Any]:
    usage = getattr(response, "usage", None)
    return usage.model_dump() if usage is not None else {}
