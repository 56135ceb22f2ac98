from typing import List

import numpy as np

from . import config
from .errors import EmbeddingError, is_quota_error
from .logging_config import logger
from .openai_client import get_client, has_openai_key


def placeholder_embedding() -> List[float]:
    """
    Random stand-in vector (uniform in [-0.5, 0.5)).
    Not a real embedding; lets the pipeline run without an OpenAI key.
    """
    return np.random.default_rng().uniform(-0.5, 0.5, config.EMBEDDING_DIM).tolist()


def embed_text(text: str) -> List[float]:
    if not has_openai_key():
        logger.debug("No OpenAI key configured, using placeholder embedding")
        return placeholder_embedding()

    try:
        resp = get_client().embeddings.create(model=config.EMBED_MODEL, input=text)
    except Exception as e:
        if is_quota_error(e):
            logger.warning("OpenAI quota exhausted, using placeholder embedding")
            return placeholder_embedding()
        logger.error("Error generating embedding", error=str(e))
        raise EmbeddingError(f"Failed to generate embedding: {e}") from e

    return list(resp.data[0].embedding)
