# src/filesift/core/fs.py
import os
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class DirEntry:
    name: str
    path: str
    is_dir: bool
    is_file: bool
    is_symlink: bool = False


class LocalFileSystem:
    """
    Every blocking filesystem call the engine makes goes through here.
    Tests subclass it to count or fail specific calls.
    """

    def list_dir(self, path: str) -> List[DirEntry]:
        entries = []
        with os.scandir(path) as it:
            for entry in it:
                try:
                    is_dir = entry.is_dir()
                    is_file = not is_dir and entry.is_file()
                    is_symlink = entry.is_symlink()
                except OSError:
                    # Broken symlink or entry vanished mid-listing
                    continue
                entries.append(DirEntry(entry.name, entry.path, is_dir, is_file, is_symlink))
        return entries

    def stat_size(self, path: str) -> int:
        return os.stat(path).st_size

    def read_text(self, path: str) -> str:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def real_path(self, path: str) -> str:
        return os.path.realpath(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)
