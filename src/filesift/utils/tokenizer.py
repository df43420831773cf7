# src/filesift/utils/tokenizer.py
import logging
import math
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

_SPECIAL_MARKER = "<|endoftext|>"


def estimate_from_length(text: str) -> int:
    """Fallback estimation strategy: roughly four characters per token."""
    return math.ceil(len(text) / 4)


class Tokenizer:
    """Counts tokens with a tiktoken encoding, or estimates when it can't."""

    def __init__(self, encoding_name: Optional[str] = "o200k_base"):
        self.encoding_name = encoding_name
        self._encoding = None
        self._unavailable = encoding_name is None

    def get_encoding(self):
        if self._encoding is None and not self._unavailable:
            try:
                self._encoding = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                # Unknown name, or the BPE file could not be fetched
                logger.warning(f"Tokenizer '{self.encoding_name}' unavailable, estimating by length: {e}")
                self._unavailable = True
        return self._encoding

    def count(self, text: str) -> int:
        """Estimates token count for a given text."""
        if not text:
            return 0
        encoding = self.get_encoding()
        if encoding is None:
            return estimate_from_length(text)
        try:
            return len(encoding.encode(text.replace(_SPECIAL_MARKER, "")))
        except Exception as e:
            logger.debug(f"Token encoding failed, estimating by length: {e}")
            return estimate_from_length(text)
