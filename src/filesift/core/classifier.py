# src/filesift/core/classifier.py
import posixpath
from enum import Enum
from typing import Dict, FrozenSet, Optional

from filesift.config import BINARY_EXTENSIONS, MAX_FILE_SIZE
from filesift.utils.tokenizer import Tokenizer


class SizeClass(str, Enum):
    NORMAL = "normal"
    OVERSIZED = "oversized"


class FileClassifier:
    def __init__(
        self,
        binary_extensions: FrozenSet[str] = BINARY_EXTENSIONS,
        max_file_size: int = MAX_FILE_SIZE,
        tokenizer: Optional[Tokenizer] = None,
        type_cache: Optional[Dict[str, bool]] = None,
    ):
        self.binary_extensions = binary_extensions
        self.max_file_size = max_file_size
        self.tokenizer = tokenizer or Tokenizer()
        self.type_cache = type_cache if type_cache is not None else {}

    @staticmethod
    def extension(path: str) -> str:
        name = posixpath.basename(path.replace("\\", "/"))
        return posixpath.splitext(name)[1].lower()

    def is_binary(self, path: str) -> bool:
        """Extension lookup only; never touches the file."""
        ext = self.extension(path)
        cached = self.type_cache.get(ext)
        if cached is not None:
            return cached
        is_binary = ext in self.binary_extensions
        self.type_cache[ext] = is_binary
        return is_binary

    def size_class(self, byte_size: int) -> SizeClass:
        if byte_size > self.max_file_size:
            return SizeClass.OVERSIZED
        return SizeClass.NORMAL

    def estimate_tokens(self, text: str) -> int:
        return self.tokenizer.count(text)
