# src/filesift/utils/paths.py
"""
Path canonicalization shared by every component.

All comparisons happen on forward-slash strings. Relative paths handed to the
ignore matcher must never be absolute, so `relative_to` reports "no valid
relative path" as None instead of raising or returning something absolute.
"""
import os
import re
from typing import Optional

_RESERVED_WINDOWS_NAMES = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\..*)?$", re.IGNORECASE)


class PathNormalizer:
    def __init__(self, pathmod=os.path, case_insensitive: Optional[bool] = None):
        """
        Args:
            pathmod: Path flavor module (posixpath or ntpath). Defaults to the host's.
            case_insensitive: Fold case in comparison keys. None = Windows flavor only.
        """
        self.pathmod = pathmod
        self.is_windows = pathmod.__name__ == "ntpath"
        if case_insensitive is None:
            case_insensitive = self.is_windows
        self.case_insensitive = case_insensitive

    def normalize(self, path) -> str:
        """Canonical separators; display case is preserved."""
        text = os.fspath(path)
        if not text:
            return text
        if text.startswith("\\\\"):
            # \\server\share\x -> //server/share/x
            return "//" + text[2:].replace("\\", "/")
        return text.replace("\\", "/")

    def key(self, path) -> str:
        """Comparison key: normalized, case-folded where the filesystem ignores case."""
        text = self.normalize(path)
        if self.case_insensitive or self._is_wsl_share(text):
            return text.lower()
        return text

    def join(self, *parts) -> str:
        return self.normalize(self.pathmod.join(*parts))

    def is_absolute(self, path: str) -> bool:
        text = self.normalize(path)
        if text.startswith("/"):
            return True
        return bool(re.match(r"^[A-Za-z]:", text))

    def volume(self, path) -> str:
        """Drive letter or UNC share of an absolute path, as a comparison key."""
        drive, _ = self.pathmod.splitdrive(os.fspath(path))
        return self.key(drive)

    def relative_to(self, root, path) -> Optional[str]:
        """
        Root-relative path in forward-slash form, "." for the root itself.

        Returns None when no true relative path exists: different drive or
        share, or a path that escapes the root. Never raises.
        """
        root_text = os.fspath(root)
        path_text = os.fspath(path)
        if not root_text or not path_text:
            return None

        if self.volume(root_text) != self.volume(path_text):
            return None

        try:
            rel = self.pathmod.relpath(path_text, root_text)
        except ValueError:
            # relpath raises on mixed drives, or mixed absolute/relative input
            return None

        rel = self.normalize(rel)
        if rel == ".." or rel.startswith("../") or self.is_absolute(rel):
            return None
        return rel

    def is_reserved_name(self, name: str) -> bool:
        """Windows device names (CON, NUL, COM1...) can't be opened as files there."""
        return self.is_windows and bool(_RESERVED_WINDOWS_NAMES.match(name))

    @staticmethod
    def _is_wsl_share(text: str) -> bool:
        lowered = text.lower()
        return lowered.startswith("//wsl.localhost/") or lowered.startswith("//wsl$/")


def default_normalizer(case_insensitive: Optional[bool] = None) -> PathNormalizer:
    return PathNormalizer(os.path, case_insensitive)
