from typing import Optional

from openai import OpenAI

from . import config

_client: Optional[OpenAI] = None


def has_openai_key() -> bool:
    """False when no key is set, or the key is still the .env template value."""
    key = config.OPENAI_API_KEY
    return bool(key) and key != config.OPENAI_KEY_PLACEHOLDER


def get_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(api_key=config.OPENAI_API_KEY)
    return _client
