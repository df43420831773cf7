# src/filesift/core/gitignore.py
"""
Collects raw .gitignore lines from every directory below a start directory.

No matching happens here; the resolver turns the collected map into a filter.
"""
import logging
from typing import Dict, FrozenSet, List, Optional

from filesift.config import ALWAYS_SKIPPED_DIRS, IGNORE_FILENAME, MAX_DEPTH
from filesift.core.fs import LocalFileSystem
from filesift.utils.paths import PathNormalizer, default_normalizer

logger = logging.getLogger(__name__)

GitignorePatternMap = Dict[str, List[str]]


def parse_ignore_lines(text: str) -> List[str]:
    """Trimmed, non-blank, non-comment lines in file order."""
    patterns = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(line)
    return patterns


class GitignorePatternCollector:
    def __init__(
        self,
        fs: Optional[LocalFileSystem] = None,
        normalizer: Optional[PathNormalizer] = None,
        ignore_filename: str = IGNORE_FILENAME,
        skipped_dirs: FrozenSet[str] = ALWAYS_SKIPPED_DIRS,
        max_depth: int = MAX_DEPTH,
    ):
        self.fs = fs or LocalFileSystem()
        self.normalizer = normalizer or default_normalizer()
        self.ignore_filename = ignore_filename
        self.skipped_dirs = skipped_dirs
        self.max_depth = max_depth

    def collect(self, start_dir: str, root_dir: str) -> GitignorePatternMap:
        """
        Walks downward from start_dir and maps each directory (relative to
        root_dir, "." for the root) to the patterns of its ignore file.
        Directories that cannot be read are skipped with a warning.
        """
        patterns_by_dir: GitignorePatternMap = {}
        visited = set()
        real_root = self.normalizer.normalize(self.fs.real_path(root_dir))
        # Explicit stack: (directory, depth). Children are pushed in reverse
        # so the map comes out in sorted depth-first order.
        stack = [(start_dir, 0)]

        while stack:
            directory, depth = stack.pop()

            real_key = self.normalizer.key(self.fs.real_path(directory))
            if real_key in visited:
                logger.debug(f"Already collected {directory}, skipping symlink loop")
                continue
            visited.add(real_key)

            rel_dir = self.normalizer.relative_to(root_dir, directory)
            if rel_dir is None:
                logger.debug(f"{directory} is outside {root_dir}, not collecting")
                continue

            patterns = self._read_patterns(directory)
            if patterns:
                patterns_by_dir[rel_dir] = patterns
                logger.debug(f"Found {self.ignore_filename} in {rel_dir} with {len(patterns)} patterns")

            if depth >= self.max_depth:
                logger.warning(f"Max depth {self.max_depth} reached at {directory}, not descending")
                continue

            try:
                entries = self.fs.list_dir(directory)
            except OSError as e:
                logger.warning(f"Cannot read directory {directory}: {e}")
                continue

            children = sorted(
                (e for e in entries if e.is_dir and e.name not in self.skipped_dirs),
                key=lambda e: e.name,
                reverse=True,
            )
            for child in children:
                child_path = self.normalizer.join(directory, child.name)
                if child.is_symlink and self._points_inside(real_root, child_path):
                    logger.debug(f"Symlink {child_path} points inside the root, skipping")
                    continue
                stack.append((child_path, depth + 1))

        return patterns_by_dir

    def _points_inside(self, real_root: str, path: str) -> bool:
        target = self.normalizer.normalize(self.fs.real_path(path))
        return self.normalizer.relative_to(real_root, target) is not None

    def _read_patterns(self, directory: str) -> List[str]:
        ignore_path = self.normalizer.join(directory, self.ignore_filename)
        try:
            content = self.fs.read_text(ignore_path)
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Error reading {ignore_path}: {e}")
            return []
        return parse_ignore_lines(content)
