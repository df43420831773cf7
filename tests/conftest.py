# tests/conftest.py
import pytest

from filesift.config import EngineConfig
from filesift.core.fs import LocalFileSystem
from filesift.engine import ScanEngine
from filesift.utils import tokenizer as tokenizer_module


@pytest.fixture(autouse=True)
def offline_tokenizer(monkeypatch):
    """Keeps tiktoken from downloading encodings; counts fall back to len/4."""
    def unavailable(name):
        raise RuntimeError(f"encoding {name} not available offline")

    monkeypatch.setattr(tokenizer_module.tiktoken, "get_encoding", unavailable)


class CountingFileSystem(LocalFileSystem):
    """Records every blocking call so tests can assert what was touched."""

    def __init__(self):
        self.listings = []
        self.stats = []
        self.reads = []

    def reset(self):
        self.listings.clear()
        self.stats.clear()
        self.reads.clear()

    @property
    def total_calls(self):
        return len(self.listings) + len(self.stats) + len(self.reads)

    def list_dir(self, path):
        self.listings.append(path)
        return super().list_dir(path)

    def stat_size(self, path):
        self.stats.append(path)
        return super().stat_size(path)

    def read_text(self, path):
        self.reads.append(path)
        return super().read_text(path)


@pytest.fixture
def counting_fs():
    return CountingFileSystem()


@pytest.fixture
def make_engine():
    def factory(fs=None, normalizer=None, **config_overrides):
        return ScanEngine(EngineConfig(**config_overrides), fs=fs, normalizer=normalizer)

    return factory


@pytest.fixture
def project(tmp_path):
    """
    A small repository:
      .gitignore          -> generated/, *.log
      src/main.py
      src/app.log         (ignored)
      src/.gitignore      -> local.cfg
      src/local.cfg       (ignored, nested rule)
      generated/out.txt   (ignored)
      package-lock.json   (kept, excluded by default)
      logo.png            (binary)
      README.md
    """
    (tmp_path / ".gitignore").write_text("# build products\ngenerated/\n*.log\n\n", encoding="utf-8")
    src = tmp_path / "src"
    src.mkdir()
    (src / "main.py").write_text("print('main')\n", encoding="utf-8")
    (src / "app.log").write_text("ERROR: ...", encoding="utf-8")
    (src / ".gitignore").write_text("local.cfg\n", encoding="utf-8")
    (src / "local.cfg").write_text("debug=true\n", encoding="utf-8")
    generated = tmp_path / "generated"
    generated.mkdir()
    (generated / "out.txt").write_text("artifact", encoding="utf-8")
    (tmp_path / "package-lock.json").write_text("{}", encoding="utf-8")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64)
    (tmp_path / "README.md").write_text("# Project\n", encoding="utf-8")
    return tmp_path
