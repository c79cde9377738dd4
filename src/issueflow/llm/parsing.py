"""Helpers for pulling structured data out of model responses."""

import json
import logging
import re
from typing import Any, Optional


logger = logging.getLogger(__name__)


JSON_BLOCK_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")


def extract_json_block(response_text: str) -> Optional[Any]:
    """Decode the first fenced ```json block in a response.

    Args:
        response_text: Raw text response from the model.

    Returns:
        The decoded JSON value, or None when there is no block or it
        does not decode.
    """
    match = JSON_BLOCK_PATTERN.search(response_text)
    if match is None:
        return None

    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.warning(
            "Failed to parse JSON block from model response",
            extra={
                "error": str(e),
                "response_preview": match.group(1)[:200],
            },
        )
        return None
