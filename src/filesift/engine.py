# src/filesift/engine.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

from filesift.config import EngineConfig
from filesift.core.cache import EngineCaches
from filesift.core.classifier import FileClassifier
from filesift.core.fs import LocalFileSystem
from filesift.core.gitignore import GitignorePatternCollector
from filesift.core.ignore import IgnoreRuleResolver
from filesift.core.scanner import DirectoryScanner, EventCallback
from filesift.models import FileRecord, IgnoreMode, ScanResult, ScanState
from filesift.utils.paths import PathNormalizer
from filesift.utils.tokenizer import Tokenizer

logger = logging.getLogger(__name__)


class ScanEngine:
    """
    Host-facing entry point: one instance owns its caches and allows one
    running scan at a time.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        fs: Optional[LocalFileSystem] = None,
        normalizer: Optional[PathNormalizer] = None,
        tokenizer: Optional[Tokenizer] = None,
    ):
        self.config = config or EngineConfig()
        self.fs = fs or LocalFileSystem()
        self.normalizer = normalizer or PathNormalizer(case_insensitive=self.config.case_insensitive)
        self.caches = EngineCaches()

        collector = GitignorePatternCollector(
            fs=self.fs,
            normalizer=self.normalizer,
            ignore_filename=self.config.ignore_filename,
            skipped_dirs=self.config.always_skipped_dirs,
            max_depth=self.config.max_depth,
        )
        self.resolver = IgnoreRuleResolver(
            caches=self.caches,
            collector=collector,
            normalizer=self.normalizer,
            default_patterns=self.config.default_ignore_patterns,
            excluded_patterns=self.config.excluded_patterns,
        )
        self.classifier = FileClassifier(
            binary_extensions=self.config.binary_extensions,
            max_file_size=self.config.max_file_size,
            tokenizer=tokenizer or Tokenizer(self.config.token_encoding),
            type_cache=self.caches.file_types,
        )
        self.scanner = DirectoryScanner(
            resolver=self.resolver,
            classifier=self.classifier,
            caches=self.caches,
            normalizer=self.normalizer,
            fs=self.fs,
            config=self.config,
        )

    @property
    def state(self) -> ScanState:
        return self.scanner.state

    async def start_scan(
        self,
        root_path: str,
        mode=IgnoreMode.AUTOMATIC,
        custom_patterns: Optional[List[str]] = None,
        on_event: Optional[EventCallback] = None,
    ) -> ScanResult:
        """
        Scans root_path. Progress and exactly one terminal event go to
        on_event; a request made while another scan runs gets `busy`.
        """
        return await self.scanner.scan(root_path, mode, custom_patterns, on_event)

    def cancel_scan(self) -> None:
        self.scanner.cancel()

    def clear_caches(self) -> None:
        self.caches.clear()

    def clear_ignore_cache(self) -> None:
        """Drops only the ignore filters, e.g. after the host edits its ignore settings."""
        self.caches.clear_ignore_filters()

    async def get_ignore_patterns(
        self, root_path: str, mode=IgnoreMode.AUTOMATIC, custom_patterns: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """Resolves (and caches) the filter and returns where its patterns came from."""
        if not root_path:
            return {"error": "root path is required"}
        try:
            patterns = await asyncio.to_thread(self.resolver.provenance, root_path, mode, custom_patterns)
        except (OSError, ValueError) as e:
            logger.error(f"Error getting ignore patterns for {root_path}: {e}")
            return {"error": str(e)}
        return {"patterns": patterns}

    async def refresh_file(
        self,
        root_path: str,
        file_path: str,
        mode=IgnoreMode.AUTOMATIC,
        custom_patterns: Optional[List[str]] = None,
    ) -> Optional[FileRecord]:
        """Re-processes a single changed file; None when it is ignored or outside the root."""
        return await self.scanner.process_single_file(root_path, file_path, mode, custom_patterns)

    def invalidate_file(self, file_path: str) -> bool:
        removed = self.caches.file_metadata.pop(self.normalizer.key(file_path), None)
        if removed is not None:
            logger.debug(f"Removed from file cache: {file_path}")
        return removed is not None

    def update_cache_entry(self, record: FileRecord) -> None:
        self.caches.file_metadata[self.normalizer.key(record.path)] = record
        logger.debug(f"Updated file cache for: {record.path}")
