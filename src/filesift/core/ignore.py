# src/filesift/core/ignore.py
import copy
import logging
import os
import posixpath
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pathspec

from filesift.config import DEFAULT_IGNORE_PATTERNS, EXCLUDED_PATTERNS
from filesift.core.cache import EngineCaches, IgnoreCacheKey
from filesift.core.gitignore import GitignorePatternCollector, GitignorePatternMap
from filesift.models import IgnoreFilterCacheEntry, IgnoreMode
from filesift.utils.paths import PathNormalizer, default_normalizer

logger = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


class IgnoreFilter:
    """
    Compiled gitwildmatch matcher over root-relative, forward-slash paths.
    Absolute paths are refused: they would silently match nothing.
    """

    def __init__(self, patterns: Iterable[str]):
        self.patterns: Tuple[str, ...] = tuple(patterns)
        self._spec = _compile(self.patterns)

    def ignores(self, rel_path: str, is_dir: bool = False) -> bool:
        if rel_path.startswith("/") or _DRIVE_PREFIX.match(rel_path):
            raise ValueError(f"Ignore filter needs a root-relative path, got {rel_path!r}")
        if not rel_path or rel_path == ".":
            return False
        if is_dir and not rel_path.endswith("/"):
            rel_path += "/"
        return self._spec.match_file(rel_path)

    def __len__(self) -> int:
        return len(self.patterns)


def _compile(patterns: Sequence[str]) -> pathspec.PathSpec:
    try:
        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)
    except Exception as e:
        logger.warning(f"Error parsing ignore rules, dropping invalid ones: {e}")

    valid = []
    for pattern in patterns:
        try:
            pathspec.PathSpec.from_lines("gitwildmatch", [pattern])
        except Exception:
            logger.warning(f"Skipping invalid ignore pattern: {pattern!r}")
            continue
        valid.append(pattern)
    return pathspec.PathSpec.from_lines("gitwildmatch", valid)


def normalize_patterns(patterns: Optional[Iterable[str]]) -> List[str]:
    """Strip, drop blanks, forward slashes; order kept."""
    result = []
    for pattern in patterns or []:
        pattern = pattern.strip().replace("\\", "/")
        if pattern:
            result.append(pattern)
    return result


def anchor_pattern(pattern: str, rel_dir: str) -> str:
    """
    Rewrites a pattern found in rel_dir's ignore file so it can live in one
    root-level filter. Root-anchored (leading '/') and globstar patterns are
    kept as they are. Negations keep their '!' around the rewritten body.
    """
    negated = pattern.startswith("!")
    body = pattern[1:] if negated else pattern
    if rel_dir not in ("", ".") and not body.startswith("/") and "**" not in body:
        body = posixpath.join(rel_dir, body)
    return "!" + body if negated else body


def make_cache_key(root_key: str, mode: IgnoreMode, custom_patterns: Optional[Iterable[str]]) -> IgnoreCacheKey:
    """Single canonical key for the filter cache and the introspection call."""
    return root_key, IgnoreMode(mode).value, tuple(sorted(normalize_patterns(custom_patterns)))


class IgnoreRuleResolver:
    def __init__(
        self,
        caches: Optional[EngineCaches] = None,
        collector: Optional[GitignorePatternCollector] = None,
        normalizer: Optional[PathNormalizer] = None,
        default_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
        excluded_patterns: Sequence[str] = EXCLUDED_PATTERNS,
    ):
        self.caches = caches or EngineCaches()
        self.normalizer = normalizer or default_normalizer()
        self.collector = collector or GitignorePatternCollector(normalizer=self.normalizer)
        self.default_patterns = normalize_patterns(default_patterns)
        self.excluded_patterns = normalize_patterns(excluded_patterns)
        self._excluded_filter = IgnoreFilter(self.excluded_patterns)

    def root_key(self, root: str) -> str:
        return self.normalizer.key(self.normalizer.pathmod.abspath(os.fspath(root)))

    def cache_key(self, root: str, mode, custom_patterns=None) -> IgnoreCacheKey:
        return make_cache_key(self.root_key(root), mode, custom_patterns)

    def resolve(self, root: str, mode, custom_patterns=None) -> IgnoreFilter:
        return self.resolve_entry(root, mode, custom_patterns).filter

    def resolve_entry(self, root: str, mode, custom_patterns=None) -> IgnoreFilterCacheEntry:
        """
        Returns the cached entry for (root, mode, custom_patterns), building it
        on a miss. Repeated calls hand back the identical filter object.
        """
        mode = IgnoreMode(mode)
        key = self.cache_key(root, mode, custom_patterns)
        cached = self.caches.get_filter(key)
        if cached is not None:
            logger.debug(f"Using cached {mode.value} ignore filter for {root}")
            return cached

        logger.debug(f"Ignore cache miss for {key[0]} ({mode.value})")
        if mode is IgnoreMode.GLOBAL:
            entry = self._build_global(key[2])
        else:
            entry = self._build_automatic(root)
        return self.caches.put_filter(key, entry)

    def _build_global(self, custom_patterns: Tuple[str, ...]) -> IgnoreFilterCacheEntry:
        patterns = self.excluded_patterns + list(custom_patterns)
        logger.info(
            f"[Global Mode] {len(self.excluded_patterns)} excluded patterns + "
            f"{len(custom_patterns)} custom patterns"
        )
        return IgnoreFilterCacheEntry(
            filter=IgnoreFilter(patterns),
            provenance={"global": list(patterns)},
        )

    def _build_automatic(self, root: str) -> IgnoreFilterCacheEntry:
        root = self.normalizer.normalize(self.normalizer.pathmod.abspath(os.fspath(root)))
        per_directory: GitignorePatternMap = self.collector.collect(root, root)

        patterns = list(self.default_patterns)
        repository_count = 0
        for rel_dir, dir_patterns in per_directory.items():
            patterns.extend(anchor_pattern(p, rel_dir) for p in dir_patterns)
            repository_count += len(dir_patterns)

        logger.info(
            f"[Automatic Mode] {len(self.default_patterns)} default patterns + "
            f"{repository_count} patterns from {len(per_directory)} ignore files in {root}"
        )
        return IgnoreFilterCacheEntry(
            filter=IgnoreFilter(patterns),
            provenance={
                "perDirectory": {d: list(p) for d, p in per_directory.items()},
                "defaults": list(self.default_patterns),
            },
        )

    def provenance(self, root: str, mode, custom_patterns=None) -> Dict[str, Any]:
        """Raw pattern origins of the resolved filter, safe for callers to mutate."""
        return copy.deepcopy(self.resolve_entry(root, mode, custom_patterns).provenance)

    def is_excluded_by_default(self, rel_path: str, is_dir: bool = False) -> bool:
        return self._excluded_filter.ignores(rel_path, is_dir=is_dir)
