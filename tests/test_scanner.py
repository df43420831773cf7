# tests/test_scanner.py
import asyncio
import os
import threading
import time

import pytest

from filesift.config import EXCLUDED_PATTERNS
from filesift.core.fs import LocalFileSystem
from filesift.core.ignore import IgnoreFilter
from filesift.models import IgnoreMode, ScanState, ScanStatus, SkipReason
from filesift.utils.paths import PathNormalizer


def by_rel(result):
    return {r.rel_path: r for r in result.records}


def terminal_events(events):
    return [e for e in events if e.is_terminal]


# --- Concrete scenarios ---

@pytest.fixture
def build_project(tmp_path):
    root = tmp_path / "proj"
    (root / "build").mkdir(parents=True)
    (root / ".gitignore").write_text("build/\n", encoding="utf-8")
    (root / "build" / "out.txt").write_text("compiled", encoding="utf-8")
    (root / "main.c").write_text("int main() {}", encoding="utf-8")
    return root


@pytest.mark.asyncio
async def test_automatic_mode_honors_gitignore_directory(build_project, make_engine):
    result = await make_engine().start_scan(str(build_project), IgnoreMode.AUTOMATIC)
    assert result.status is ScanStatus.COMPLETE
    assert "build/out.txt" not in by_rel(result)
    assert "main.c" in by_rel(result)


@pytest.mark.asyncio
async def test_global_mode_ignores_gitignore(build_project, make_engine):
    excluded = [p for p in EXCLUDED_PATTERNS if not p.startswith("build")]
    result = await make_engine(excluded_patterns=excluded).start_scan(str(build_project), IgnoreMode.GLOBAL)
    assert "build/out.txt" in by_rel(result)

    # The stock static list does carry build/**
    result = await make_engine().start_scan(str(build_project), IgnoreMode.GLOBAL)
    assert "build/out.txt" not in by_rel(result)


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["automatic", "global"])
async def test_binary_and_text_records(tmp_path, make_engine, mode):
    (tmp_path / "a.png").write_bytes(b"\x89PNG" + b"\x00" * 2044)
    (tmp_path / "a.txt").write_text("a" * 2048, encoding="utf-8")

    records = by_rel(await make_engine().start_scan(str(tmp_path), mode))

    png = records["a.png"]
    assert png.is_binary is True
    assert png.content is None
    assert png.size == 2048
    assert png.name == "a.png"

    txt = records["a.txt"]
    assert txt.is_binary is False
    assert txt.content == "a" * 2048
    assert txt.token_count > 0
    assert txt.path.endswith("/a.txt")


@pytest.mark.asyncio
async def test_oversized_file_is_skipped_unread(tmp_path, make_engine, counting_fs):
    big = tmp_path / "big.txt"
    with open(big, "wb") as f:
        f.truncate(6_291_456)

    engine = make_engine(fs=counting_fs, max_file_size=5 * 1024 * 1024)
    record = by_rel(await engine.start_scan(str(tmp_path), "global"))["big.txt"]
    assert record.is_skipped is True
    assert record.skip_reason is SkipReason.TOO_LARGE
    assert record.content is None
    assert record.token_count == 0
    assert record.size == 6_291_456
    assert counting_fs.reads == []


# --- Ignore before I/O ---

@pytest.mark.asyncio
async def test_ignored_entries_get_no_file_io(project, make_engine, counting_fs):
    engine = make_engine(fs=counting_fs)
    # Resolve first so the collector's own reads don't count
    await engine.get_ignore_patterns(str(project), "automatic")
    counting_fs.reset()

    result = await engine.start_scan(str(project), "automatic")
    assert result.status is ScanStatus.COMPLETE

    touched = counting_fs.stats + counting_fs.reads
    for ignored in ("app.log", "local.cfg", "out.txt"):
        assert not any(p.endswith(ignored) for p in touched)
    assert not any(p.endswith("/generated") for p in counting_fs.listings)
    # Binary files are sized but never read
    assert any(p.endswith("logo.png") for p in counting_fs.stats)
    assert not any(p.endswith("logo.png") for p in counting_fs.reads)

    assert set(by_rel(result)) == {
        ".gitignore", "src/.gitignore", "src/main.py", "package-lock.json", "logo.png", "README.md",
    }


@pytest.mark.asyncio
async def test_metadata_cache_short_circuits_rescan(project, make_engine, counting_fs):
    engine = make_engine(fs=counting_fs)
    first = await engine.start_scan(str(project))
    counting_fs.reset()

    second = await engine.start_scan(str(project))
    assert counting_fs.stats == [] and counting_fs.reads == []
    assert by_rel(first) == by_rel(second)

    engine.clear_caches()
    await engine.start_scan(str(project))
    assert counting_fs.reads


@pytest.mark.asyncio
async def test_excluded_by_default_flag(project, make_engine):
    records = by_rel(await make_engine().start_scan(str(project), "automatic"))
    assert records["package-lock.json"].excluded_by_default is True
    assert records["src/main.py"].excluded_by_default is False


# --- Path safety ---

class EscapingNormalizer(PathNormalizer):
    """Pretends one entry lives on another volume."""

    def relative_to(self, root, path):
        if os.fspath(path).endswith("elsewhere.txt"):
            return None
        return super().relative_to(root, path)


@pytest.mark.asyncio
async def test_unrelatable_paths_never_reach_matcher_or_output(tmp_path, make_engine, monkeypatch):
    (tmp_path / "elsewhere.txt").write_text("x", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "here.txt").write_text("y", encoding="utf-8")

    seen = []
    original = IgnoreFilter.ignores

    def spy(self, rel_path, is_dir=False):
        seen.append(rel_path)
        return original(self, rel_path, is_dir)

    monkeypatch.setattr(IgnoreFilter, "ignores", spy)

    result = await make_engine(normalizer=EscapingNormalizer()).start_scan(str(tmp_path), "global")
    assert set(by_rel(result)) == {"sub/here.txt"}
    assert seen
    assert not any(p.endswith("elsewhere.txt") for p in seen)
    assert not any(os.path.isabs(p) for p in seen)


@pytest.mark.asyncio
async def test_symlink_loop_is_walked_once(tmp_path, make_engine):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "a.txt").write_text("a", encoding="utf-8")
    os.symlink(str(tmp_path), str(tmp_path / "sub" / "back"))

    result = await make_engine().start_scan(str(tmp_path), "global")
    assert result.status is ScanStatus.COMPLETE
    assert set(by_rel(result)) == {"sub/a.txt"}


# --- Errors ---

@pytest.mark.asyncio
async def test_unreadable_root_fails(tmp_path, make_engine):
    events = []
    engine = make_engine()
    result = await engine.start_scan(str(tmp_path / "missing"), "global", on_event=events.append)
    assert result.status is ScanStatus.ERROR
    assert "Cannot read directory" in result.error
    assert engine.state is ScanState.FAILED
    assert [e.status for e in terminal_events(events)] == [ScanStatus.ERROR]


@pytest.mark.asyncio
async def test_unreadable_subdirectory_is_an_empty_subtree(tmp_path, make_engine):
    (tmp_path / "locked").mkdir()
    (tmp_path / "locked" / "hidden.txt").write_text("h", encoding="utf-8")
    (tmp_path / "open.txt").write_text("o", encoding="utf-8")

    class LockedFs(LocalFileSystem):
        def list_dir(self, path):
            if path.endswith("/locked"):
                raise PermissionError(13, "Permission denied", path)
            return super().list_dir(path)

    result = await make_engine(fs=LockedFs()).start_scan(str(tmp_path), "global")
    assert result.status is ScanStatus.COMPLETE
    assert set(by_rel(result)) == {"open.txt"}


@pytest.mark.asyncio
async def test_file_read_errors_become_skipped_records(tmp_path, make_engine):
    (tmp_path / "denied.txt").write_text("nope", encoding="utf-8")
    (tmp_path / "latin1.txt").write_bytes("caf\xe9".encode("latin-1"))
    (tmp_path / "fine.txt").write_text("fine", encoding="utf-8")

    class DenyingFs(LocalFileSystem):
        def read_text(self, path):
            if path.endswith("denied.txt"):
                raise PermissionError(13, "Permission denied", path)
            return super().read_text(path)

    result = await make_engine(fs=DenyingFs()).start_scan(str(tmp_path), "global")
    assert result.status is ScanStatus.COMPLETE
    records = by_rel(result)

    denied = records["denied.txt"]
    assert denied.is_skipped and denied.skip_reason is SkipReason.PERMISSION_DENIED
    assert denied.content is None and denied.token_count == 0
    assert denied.size == 4

    latin1 = records["latin1.txt"]
    assert latin1.is_skipped and latin1.skip_reason is SkipReason.INVALID_ENCODING

    assert records["fine.txt"].content == "fine"


@pytest.mark.asyncio
async def test_unknown_mode_is_an_error_event(tmp_path, make_engine):
    events = []
    result = await make_engine().start_scan(str(tmp_path), "sometimes", on_event=events.append)
    assert result.status is ScanStatus.ERROR
    assert events[-1].status is ScanStatus.ERROR


# --- Events and lifecycle ---

@pytest.mark.asyncio
async def test_progress_is_monotonic_with_one_terminal_event(project, make_engine):
    events = []
    result = await make_engine(file_chunk_size=2).start_scan(str(project), on_event=events.append)

    progress = [e for e in events if e.status is ScanStatus.PROCESSING]
    assert progress
    dirs = [e.directories_processed for e in progress]
    files = [e.files_processed for e in progress]
    assert dirs == sorted(dirs) and files == sorted(files)

    terminal = terminal_events(events)
    assert len(terminal) == 1 and events[-1] is terminal[0]
    assert terminal[0].status is ScanStatus.COMPLETE
    assert len(terminal[0].file_records) == len(result.records) == result.files_processed

    wire = terminal[0].to_dict()
    assert wire["status"] == "complete"
    assert {r["relativePath"] for r in wire["fileRecords"]} == set(by_rel(result))
    assert progress[-1].to_dict().keys() == {"status", "directoriesProcessed", "filesProcessed"}


@pytest.fixture
def thousand_files(tmp_path):
    for d in range(10):
        folder = tmp_path / f"dir{d}"
        folder.mkdir()
        for i in range(100):
            (folder / f"file{i}.txt").write_text(f"content {d}-{i}", encoding="utf-8")
    return tmp_path


@pytest.mark.asyncio
async def test_cancel_mid_scan(thousand_files, make_engine):
    engine = make_engine()
    events = []
    at_cancel = {}

    def on_event(event):
        events.append(event)
        if event.status is ScanStatus.PROCESSING and event.files_processed > 0 and not at_cancel:
            at_cancel["files"] = event.files_processed
            engine.cancel_scan()

    result = await engine.start_scan(str(thousand_files), "global", on_event=on_event)

    assert result.status is ScanStatus.CANCELLED
    assert engine.state is ScanState.CANCELLED
    assert [e.status for e in terminal_events(events)] == [ScanStatus.CANCELLED]
    assert result.files_processed == at_cancel["files"] < 1000
    assert len(result.records) == result.files_processed

    again = await engine.start_scan(str(thousand_files), "global")
    assert again.status is ScanStatus.COMPLETE
    assert len(again.records) == 1000


@pytest.mark.asyncio
async def test_cancel_when_idle_is_a_no_op(make_engine):
    engine = make_engine()
    engine.cancel_scan()
    engine.cancel_scan()
    assert engine.state is ScanState.IDLE


@pytest.mark.asyncio
async def test_second_scan_is_rejected_as_busy(project, make_engine):
    gate = threading.Event()

    class GatedFs(LocalFileSystem):
        def list_dir(self, path):
            gate.wait(5)
            return super().list_dir(path)

    engine = make_engine(fs=GatedFs())
    task = asyncio.create_task(engine.start_scan(str(project), "global"))
    await asyncio.sleep(0)
    assert engine.state is ScanState.SCANNING

    events = []
    busy = await engine.start_scan(str(project), "global", on_event=events.append)
    assert busy.status is ScanStatus.BUSY
    assert [e.status for e in events] == [ScanStatus.BUSY]

    gate.set()
    result = await task
    assert result.status is ScanStatus.COMPLETE
    assert engine.state is ScanState.COMPLETED


@pytest.mark.asyncio
async def test_deadline_expiry_times_out(project, make_engine):
    class SlowFs(LocalFileSystem):
        def list_dir(self, path):
            time.sleep(0.3)
            return super().list_dir(path)

    engine = make_engine(fs=SlowFs(), scan_timeout=0.05)
    events = []
    result = await engine.start_scan(str(project), "global", on_event=events.append)

    assert result.status is ScanStatus.TIMED_OUT
    assert engine.state is ScanState.TIMED_OUT
    assert [e.status for e in terminal_events(events)] == [ScanStatus.TIMED_OUT]
    assert result.records == []


@pytest.mark.asyncio
async def test_cached_records_are_relative_to_the_current_root(tmp_path, make_engine):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "a.txt").write_text("a", encoding="utf-8")
    (tmp_path / "sub" / "yarn.lock").write_text("{}", encoding="utf-8")

    engine = make_engine(excluded_patterns=["sub/yarn.lock"])
    parent = by_rel(await engine.start_scan(str(tmp_path), "global"))
    assert "sub/a.txt" in parent
    assert "sub/yarn.lock" not in parent

    child = by_rel(await engine.start_scan(str(tmp_path / "sub"), "global"))
    assert set(child) == {"a.txt", "yarn.lock"}
    assert child["a.txt"].content == "a"
    assert child["yarn.lock"].excluded_by_default is False

    # Cached record keeps its own rel_path for the parent root
    again = by_rel(await engine.start_scan(str(tmp_path), "global"))
    assert again["sub/a.txt"].rel_path == "sub/a.txt"


@pytest.mark.asyncio
async def test_cache_hit_recomputes_excluded_flag(tmp_path, make_engine):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "yarn.lock").write_text("{}", encoding="utf-8")

    # Automatic mode only flags static-list matches, it does not drop them
    engine = make_engine(excluded_patterns=["sub/*.lock"])
    parent = by_rel(await engine.start_scan(str(tmp_path), "automatic"))
    assert parent["sub/yarn.lock"].excluded_by_default is True

    child = by_rel(await engine.start_scan(str(tmp_path / "sub"), "automatic"))
    assert child["yarn.lock"].excluded_by_default is False


@pytest.mark.asyncio
async def test_symlink_alias_inside_root_keeps_canonical_path(tmp_path, make_engine):
    (tmp_path / "real").mkdir()
    (tmp_path / "real" / "x.txt").write_text("x", encoding="utf-8")
    os.symlink(str(tmp_path / "real"), str(tmp_path / "alias"))
    os.symlink(str(tmp_path / "real"), str(tmp_path / "a_first"))

    result = await make_engine().start_scan(str(tmp_path), "global")
    assert set(by_rel(result)) == {"real/x.txt"}


@pytest.mark.asyncio
async def test_symlink_to_directory_outside_root_is_followed(tmp_path_factory, make_engine):
    outside = tmp_path_factory.mktemp("shared")
    (outside / "lib.txt").write_text("lib", encoding="utf-8")
    root = tmp_path_factory.mktemp("proj")
    os.symlink(str(outside), str(root / "shared"))

    result = await make_engine().start_scan(str(root), "global")
    assert set(by_rel(result)) == {"shared/lib.txt"}
