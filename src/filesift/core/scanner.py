# src/filesift/core/scanner.py
"""
Bounded-concurrency directory walker and the lifecycle of one scan.

Per directory: list it, filter entries by relative path (no file I/O for
ignored entries), walk subdirectories in batches, then process files in
chunks. Batches and chunks are awaited before the next one starts, so the
caches and counters only ever have one writer.
"""
import asyncio
import errno
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Set, Tuple

from filesift.config import EngineConfig
from filesift.core.cache import EngineCaches
from filesift.core.classifier import FileClassifier, SizeClass
from filesift.core.fs import LocalFileSystem
from filesift.core.ignore import IgnoreFilter, IgnoreRuleResolver
from filesift.errors import RootUnreadableError
from filesift.models import (
    FileRecord,
    IgnoreMode,
    ScanEvent,
    ScanResult,
    ScanState,
    ScanStatus,
    SkipReason,
)
from filesift.utils.paths import PathNormalizer

logger = logging.getLogger(__name__)

EventCallback = Callable[[ScanEvent], None]

_TERMINAL_STATUS = {
    ScanState.COMPLETED: ScanStatus.COMPLETE,
    ScanState.CANCELLED: ScanStatus.CANCELLED,
    ScanState.TIMED_OUT: ScanStatus.TIMED_OUT,
    ScanState.FAILED: ScanStatus.ERROR,
}

_ERRNO_REASONS = {
    errno.EACCES: SkipReason.PERMISSION_DENIED,
    errno.EPERM: SkipReason.PERMISSION_DENIED,
    errno.ENOENT: SkipReason.NOT_FOUND,
    errno.EBUSY: SkipReason.BUSY,
    errno.EMFILE: SkipReason.TOO_MANY_OPEN_FILES,
    errno.ENFILE: SkipReason.TOO_MANY_OPEN_FILES,
}


def skip_reason_for(error: Exception) -> SkipReason:
    if isinstance(error, UnicodeDecodeError):
        return SkipReason.INVALID_ENCODING
    if isinstance(error, OSError):
        return _ERRNO_REASONS.get(error.errno, SkipReason.UNREADABLE)
    return SkipReason.UNREADABLE


class CancellationToken:
    """First reason wins; later cancels are no-ops."""

    def __init__(self):
        self.reason: Optional[ScanState] = None

    def cancel(self, reason: ScanState = ScanState.CANCELLED) -> bool:
        if self.reason is not None:
            return False
        self.reason = reason
        return True

    @property
    def is_cancelled(self) -> bool:
        return self.reason is not None


@dataclass
class ScanSession:
    root: str
    mode: IgnoreMode
    deadline: float
    real_root: str = ""
    on_event: Optional[EventCallback] = None
    token: CancellationToken = field(default_factory=CancellationToken)
    state: ScanState = ScanState.SCANNING
    directories_processed: int = 0
    files_processed: int = 0
    ignore_filter: Optional[IgnoreFilter] = None
    records: List[FileRecord] = field(default_factory=list)
    visited: Set[str] = field(default_factory=set)
    error: Optional[str] = None
    terminal_sent: bool = False

    @property
    def active(self) -> bool:
        return self.state is ScanState.SCANNING and not self.token.is_cancelled


class DirectoryScanner:
    def __init__(
        self,
        resolver: IgnoreRuleResolver,
        classifier: FileClassifier,
        caches: EngineCaches,
        normalizer: PathNormalizer,
        fs: Optional[LocalFileSystem] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.resolver = resolver
        self.classifier = classifier
        self.caches = caches
        self.normalizer = normalizer
        self.fs = fs or LocalFileSystem()
        self.config = config or EngineConfig()
        self._session: Optional[ScanSession] = None

    @property
    def state(self) -> ScanState:
        if self._session is None:
            return ScanState.IDLE
        return self._session.state

    @property
    def is_scanning(self) -> bool:
        return self.state is ScanState.SCANNING

    @property
    def session(self) -> Optional[ScanSession]:
        return self._session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def scan(
        self,
        root: str,
        mode=IgnoreMode.AUTOMATIC,
        custom_patterns: Optional[List[str]] = None,
        on_event: Optional[EventCallback] = None,
    ) -> ScanResult:
        if self.is_scanning:
            message = "Already processing another directory. Please wait."
            logger.info(f"Rejecting scan of {root}: {message}")
            _emit(on_event, ScanEvent(ScanStatus.BUSY, message=message))
            return ScanResult(ScanStatus.BUSY, error=message)

        try:
            mode = IgnoreMode(mode)
        except ValueError:
            message = f"Unknown ignore mode: {mode!r}"
            _emit(on_event, ScanEvent(ScanStatus.ERROR, message=message))
            return ScanResult(ScanStatus.ERROR, error=message)

        loop = asyncio.get_running_loop()
        root_path = self.normalizer.normalize(self.normalizer.pathmod.abspath(os.fspath(root)))
        session = ScanSession(
            root=root_path,
            mode=mode,
            deadline=loop.time() + self.config.scan_timeout,
            on_event=on_event,
        )
        self._session = session
        timer = loop.call_later(self.config.scan_timeout, self._expire, session)
        logger.info(f"Scanning {root_path} ({mode.value} mode)")
        self._report(session)

        try:
            session.ignore_filter = await asyncio.to_thread(
                self.resolver.resolve, root_path, session.mode, custom_patterns
            )
            if not self._should_stop(session):
                real_root = await asyncio.to_thread(self.fs.real_path, root_path)
                session.real_root = self.normalizer.normalize(real_root)
                await self._walk_directory(session, root_path, self.normalizer.key(real_root), 0, is_root=True)
        except RootUnreadableError as e:
            logger.error(str(e))
            self._finish(session, ScanState.FAILED, error=str(e))
        except Exception as e:
            logger.exception(f"Scan of {root_path} failed")
            self._finish(session, ScanState.FAILED, error=f"Error: {e}")
        finally:
            timer.cancel()

        if session.state is ScanState.SCANNING and session.token.is_cancelled:
            self._finish(session, session.token.reason)
        elif session.state is ScanState.SCANNING:
            self._finish(session, ScanState.COMPLETED)

        logger.info(
            f"Scan of {root_path} ended {session.state.value}: "
            f"{session.directories_processed} directories, {session.files_processed} files"
        )
        return ScanResult(
            status=_TERMINAL_STATUS[session.state],
            records=list(session.records),
            directories_processed=session.directories_processed,
            files_processed=session.files_processed,
            error=session.error,
        )

    def cancel(self, reason: ScanState = ScanState.CANCELLED) -> bool:
        """User cancellation. No-op unless a scan is running."""
        session = self._session
        if session is None or not session.active:
            return False
        logger.info(
            f"Cancelling scan of {session.root} ({reason.value}) after "
            f"{session.directories_processed} directories, {session.files_processed} files"
        )
        session.token.cancel(reason)
        self._finish(session, reason)
        return True

    def _expire(self, session: ScanSession) -> None:
        if session.active:
            logger.warning(f"Scan of {session.root} timed out after {self.config.scan_timeout}s")
            session.token.cancel(ScanState.TIMED_OUT)
            self._finish(session, ScanState.TIMED_OUT)

    def _should_stop(self, session: ScanSession) -> bool:
        if not session.active:
            return True
        if asyncio.get_running_loop().time() >= session.deadline:
            self._expire(session)
            return True
        return False

    def _finish(self, session: ScanSession, state: ScanState, error: Optional[str] = None) -> None:
        """Moves the session to a terminal state and sends the one terminal event."""
        if session.terminal_sent:
            return
        session.state = state
        session.error = error
        session.terminal_sent = True

        status = _TERMINAL_STATUS[state]
        if status is ScanStatus.COMPLETE:
            event = ScanEvent(
                status,
                session.directories_processed,
                session.files_processed,
                file_records=tuple(session.records),
                message=f"Found {len(session.records)} files",
            )
        elif status is ScanStatus.TIMED_OUT:
            event = ScanEvent(status, message=f"Directory loading timed out after {self.config.scan_timeout:g} seconds")
        elif status is ScanStatus.CANCELLED:
            event = ScanEvent(status, message="Directory loading cancelled")
        else:
            event = ScanEvent(status, message=error)
        _emit(session.on_event, event)

    def _report(self, session: ScanSession) -> None:
        if session.active:
            _emit(
                session.on_event,
                ScanEvent(ScanStatus.PROCESSING, session.directories_processed, session.files_processed),
            )

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    async def _walk_directory(
        self, session: ScanSession, directory: str, real_key: str, depth: int, is_root: bool = False
    ) -> None:
        if real_key in session.visited:
            logger.debug(f"Already scanned {directory} through another path, skipping")
            return
        session.visited.add(real_key)

        try:
            entries = await asyncio.to_thread(self.fs.list_dir, directory)
        except OSError as e:
            if is_root:
                raise RootUnreadableError(directory, e) from e
            logger.warning(f"Skipping inaccessible directory {directory}: {e}")
            return
        if self._should_stop(session):
            return

        session.directories_processed += 1
        self._report(session)

        subdirs: List[Tuple[str, str]] = []
        files: List[Tuple[str, str, str]] = []
        for entry in entries:
            path = self.normalizer.join(directory, entry.name)
            rel_path = self.normalizer.relative_to(session.root, path)
            if rel_path is None or rel_path == ".":
                logger.debug(f"Invalid path, skipping: {path}")
                continue

            if entry.is_dir:
                if session.ignore_filter.ignores(rel_path, is_dir=True):
                    logger.debug(f"Ignored directory: {rel_path}")
                    continue
                if entry.is_symlink:
                    target = self.normalizer.normalize(await asyncio.to_thread(self.fs.real_path, path))
                    # Targets inside the root are reached under their own path
                    if self.normalizer.relative_to(session.real_root, target) is not None:
                        logger.debug(f"Symlink {rel_path} points inside the root, skipping")
                        continue
                    child_key = self.normalizer.key(target)
                else:
                    child_key = f"{real_key.rstrip('/')}/{self.normalizer.key(entry.name)}"
                subdirs.append((path, child_key))
            elif entry.is_file:
                if self.normalizer.is_reserved_name(entry.name):
                    logger.debug(f"Reserved device name, skipping: {path}")
                    continue
                if session.ignore_filter.ignores(rel_path):
                    continue
                files.append((path, rel_path, entry.name))

        if subdirs and depth >= self.config.max_depth:
            logger.warning(f"Max depth {self.config.max_depth} reached at {directory}, not descending")
            subdirs = []

        batch_size = self.config.directory_batch_size
        for i in range(0, len(subdirs), batch_size):
            if self._should_stop(session):
                return
            batch = subdirs[i:i + batch_size]
            await asyncio.gather(
                *(self._walk_directory(session, path, key, depth + 1) for path, key in batch)
            )

        chunk_size = self.config.file_chunk_size
        for i in range(0, len(files), chunk_size):
            if self._should_stop(session):
                return
            chunk = files[i:i + chunk_size]
            results = await asyncio.gather(
                *(self._build_record(path, rel_path, name, session.token) for path, rel_path, name in chunk)
            )
            # Partial chunk work is dropped once the scan has stopped.
            if not session.active:
                return
            produced = [r for r in results if r is not None]
            session.records.extend(produced)
            session.files_processed += len(produced)
            self._report(session)

    async def _build_record(
        self, path: str, rel_path: str, name: str, token: Optional[CancellationToken] = None
    ) -> Optional[FileRecord]:
        """
        Cache lookup, then binary check, size check and content read, in that
        order. Returns None when the token was cancelled while suspended.
        """
        cache_key = self.normalizer.key(path)
        excluded = self.resolver.is_excluded_by_default(rel_path)
        cached = self.caches.file_metadata.get(cache_key)
        if cached is not None:
            # Cached I/O results are root-independent; the relative fields are not.
            if cached.rel_path != rel_path or cached.excluded_by_default != excluded:
                return replace(cached, rel_path=rel_path, excluded_by_default=excluded)
            return cached

        size = 0
        try:
            size = await asyncio.to_thread(self.fs.stat_size, path)
            if token is not None and token.is_cancelled:
                return None

            if self.classifier.is_binary(path):
                record = FileRecord(
                    name=name, path=path, rel_path=rel_path, size=size,
                    is_binary=True, excluded_by_default=excluded,
                )
            elif self.classifier.size_class(size) is SizeClass.OVERSIZED:
                record = FileRecord(
                    name=name, path=path, rel_path=rel_path, size=size,
                    is_skipped=True, skip_reason=SkipReason.TOO_LARGE, excluded_by_default=excluded,
                )
            else:
                content = await asyncio.to_thread(self.fs.read_text, path)
                if token is not None and token.is_cancelled:
                    return None
                record = FileRecord(
                    name=name, path=path, rel_path=rel_path, size=size,
                    token_count=self.classifier.estimate_tokens(content),
                    content=content, excluded_by_default=excluded,
                )
        except (OSError, UnicodeDecodeError) as e:
            reason = skip_reason_for(e)
            logger.warning(f"Error processing file {rel_path}: {reason.value} ({e})")
            record = FileRecord(
                name=name, path=path, rel_path=rel_path, size=size,
                is_skipped=True, skip_reason=reason, excluded_by_default=excluded,
            )

        self.caches.file_metadata[cache_key] = record
        return record

    # ------------------------------------------------------------------
    # Single files, outside of a full scan
    # ------------------------------------------------------------------

    async def process_single_file(
        self, root: str, path: str, mode=IgnoreMode.AUTOMATIC, custom_patterns: Optional[List[str]] = None
    ) -> Optional[FileRecord]:
        """
        Re-reads one file and refreshes its cache entry. Returns None when the
        file is outside the root or ignored.
        """
        root_path = self.normalizer.normalize(self.normalizer.pathmod.abspath(os.fspath(root)))
        file_path = self.normalizer.normalize(self.normalizer.pathmod.abspath(os.fspath(path)))
        rel_path = self.normalizer.relative_to(root_path, file_path)
        if rel_path is None or rel_path == ".":
            logger.debug(f"{file_path} is not inside {root_path}")
            return None
        name = self.normalizer.pathmod.basename(file_path)
        if self.normalizer.is_reserved_name(name):
            logger.debug(f"Reserved device name, skipping: {file_path}")
            return None

        ignore_filter = await asyncio.to_thread(self.resolver.resolve, root_path, mode, custom_patterns)
        if ignore_filter.ignores(rel_path):
            return None

        self.caches.file_metadata.pop(self.normalizer.key(file_path), None)
        return await self._build_record(file_path, rel_path, name)


def _emit(on_event: Optional[EventCallback], event: ScanEvent) -> None:
    if on_event is None:
        return
    try:
        on_event(event)
    except Exception:
        logger.exception(f"Event callback failed for {event.status.value} event")
