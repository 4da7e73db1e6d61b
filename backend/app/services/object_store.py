"""
DocBridge Backend — Ephemeral Object Store
============================================

What:  Stores generated files under random ids and deletes them after a fixed
       retention window, whether or not they were ever downloaded.
Why:   PDF endpoints hand out download links instead of inlining bytes; the
       files behind those links must not outlive the window.
How:   put() stages the payload under .staging/ and renames it into place,
       registers it in an in-memory index and schedules one expiry in the
       ExpiryScheduler. A single background task (run_expiry_loop) deletes
       due objects. get() returns an ObjectReader streaming the file.
Who:   Built by main.create_app() and placed on app.state; used by the PDF
       and file-download routes.

Lifecycle of a stored object:
    put() ──▶ ACTIVE ──(get() any number of times)──▶ expires_at reached
                                                          │
                       evict() ──────────────────────────▶│
                                                          ▼
                                    EXPIRED (id unresolvable, file unlinked
                                             once its last open reader closes)

Security Model:
    - The id is the capability: 32 characters from a 62-symbol alphabet drawn
      with `secrets`, assigned by the store only.
    - The display name is sanitized and used only for Content-Disposition and
      the cosmetic tail of the download link; it never reaches a path.
    - Malformed, unknown and expired ids fail with the same NotFoundError.

Restart Policy:
    Pending expirations live in memory. On start() the store sweeps its
    directory: staging leftovers and files older than the retention window
    (by mtime) are deleted, younger files are re-registered with their
    remaining lifetime.
"""

import asyncio
import logging
import os
import re
import secrets
import string
import threading
import time
import unicodedata
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import quote

import aiofiles

from app.exceptions import FileStorageError, NotFoundError, ValidationError
from app.services.expiry import ExpiryScheduler, ExpiryTask

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

STAGING_DIRNAME = ".staging"
STAGING_SUFFIX = ".part"
MAX_STEM_LENGTH = 100

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")
_DOT_RUNS = re.compile(r"\.{2,}")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


def sanitize_filename(
    name: Optional[str],
    allowed_suffixes: Tuple[str, ...] = (".pdf",),
    default_suffix: str = ".pdf",
) -> str:
    """
    Reduce a caller-supplied name to a plain display filename.

    Steps: NFKC-normalize, drop control characters, keep the last path
    segment, replace anything outside [A-Za-z0-9._ -] with "_", collapse
    dot and underscore runs, then enforce the suffix policy.

    Examples:
        "report.PDF"        → "report.pdf"
        "../../etc/passwd"  → "passwd.pdf"
        "notes.exe"         → "notes.exe.pdf"

    Raises:
        ValidationError if nothing usable remains (e.g. "", "..", "///").
    """
    raw = unicodedata.normalize("NFKC", name or "")
    raw = "".join(ch for ch in raw if unicodedata.category(ch)[0] != "C")
    raw = raw.replace("\\", "/").rsplit("/", 1)[-1]

    cleaned = _UNSAFE_CHARS.sub("_", raw)
    cleaned = _DOT_RUNS.sub(".", cleaned)
    cleaned = _UNDERSCORE_RUNS.sub("_", cleaned).strip(" .")

    stem, suffix = os.path.splitext(cleaned)
    if suffix.lower() not in allowed_suffixes:
        stem, suffix = cleaned, default_suffix

    stem = stem.strip(" .")[:MAX_STEM_LENGTH].rstrip(" .")
    if not stem:
        raise ValidationError(
            message="File name is empty or contains no usable characters.",
            field="filename",
        )
    return f"{stem}{suffix.lower()}"


class ObjectState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ObjectStoreConfig:
    """Immutable store configuration, fixed at startup."""

    directory: Path
    retention_seconds: float = 300.0
    id_alphabet: str = string.ascii_letters + string.digits
    id_length: int = 32
    allowed_suffixes: Tuple[str, ...] = (".pdf",)
    default_suffix: str = ".pdf"
    reference_prefix: str = "/files"
    chunk_size: int = 64 * 1024
    delete_retry_delay: float = 30.0
    expiry_poll_interval: float = 5.0
    sweep_on_startup: bool = True

    @classmethod
    def from_settings(cls, settings) -> "ObjectStoreConfig":
        return cls(
            directory=Path(settings.storage_root) / "objects",
            retention_seconds=settings.retention_seconds,
            id_alphabet=settings.id_alphabet,
            id_length=settings.id_length,
            allowed_suffixes=settings.allowed_suffixes_tuple,
            default_suffix=settings.default_suffix,
            reference_prefix=f"{settings.public_base_url.rstrip('/')}/files",
            chunk_size=settings.chunk_size,
            delete_retry_delay=settings.delete_retry_delay,
            expiry_poll_interval=settings.expiry_poll_interval,
            sweep_on_startup=settings.sweep_on_startup,
        )


@dataclass
class StoredObject:
    """Metadata of one stored payload. The payload itself lives only on disk."""

    id: str
    display_name: str
    size: int
    created_at: float
    expires_at: float
    reference: str
    state: ObjectState = ObjectState.ACTIVE


class ObjectReader:
    """
    Open handle on an active object.

    Iterate with `async for chunk in reader` to stream, or call read() for the
    whole payload. The handle closes itself at the end of either; an expired
    object is unlinked only after its last reader has closed.
    """

    def __init__(self, store: "ObjectStore", stored: StoredObject, handle, chunk_size: int):
        self.object = stored
        self._store = store
        self._handle = handle
        self._chunk_size = chunk_size
        self._closed = False

    @property
    def display_name(self) -> str:
        return self.object.display_name

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                try:
                    chunk = await self._handle.read(self._chunk_size)
                except OSError as e:
                    raise self._store._read_fault(self.object.id, e)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        try:
            return await self._handle.read()
        except OSError as e:
            raise self._store._read_fault(self.object.id, e)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._handle.close()
        finally:
            self._store._release(self.object.id)

    async def __aenter__(self) -> "ObjectReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class ObjectStore:
    """
    Ephemeral, directory-backed object store.

    Thread Safety:
        The index, reader counts and id reservations are guarded by one
        threading.Lock that is never held across an await. Each object has its
        own file, so puts and gets on different objects never contend on I/O.

    Testing:
        Pass `clock` to control time. expire_due() runs one expiry pass
        without the background loop.
    """

    def __init__(self, config: ObjectStoreConfig, clock: Clock = time.time):
        self.config = config
        self._clock = clock
        self._root = Path(config.directory).resolve()
        self._staging = self._root / STAGING_DIRNAME
        self._id_pattern = re.compile(
            f"[{re.escape(config.id_alphabet)}]{{{config.id_length}}}"
        )

        self._objects: Dict[str, StoredObject] = {}
        self._reserved: Set[str] = set()
        self._readers: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._scheduler = ExpiryScheduler()

        self._wakeup: Optional[asyncio.Event] = None
        self._loop_task: Optional["asyncio.Task[None]"] = None

        try:
            self._staging.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileStorageError(
                message="Object store directory is not usable.",
                context={"path": str(self._root), "os_error": str(e)},
            )
        logger.info(
            "ObjectStore initialized at %s (retention=%.0fs)",
            self._root,
            config.retention_seconds,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Public operations
    # ══════════════════════════════════════════════════════════════════════

    async def put(self, payload: bytes, suggested_name: str) -> StoredObject:
        """
        Store `payload` and schedule its expiry.

        Returns:
            StoredObject with the new id and its retrieval reference.

        Raises:
            ValidationError: empty payload or unusable name (nothing is written)
            FileStorageError: id collision or write failure
        """
        if not payload:
            raise ValidationError(message="Cannot store an empty file.", field="payload")
        display_name = sanitize_filename(
            suggested_name, self.config.allowed_suffixes, self.config.default_suffix
        )

        object_id = self._reserve_id()
        final_path = self._path_for(object_id)
        staging_path = self._staging / f"{object_id}{STAGING_SUFFIX}"

        committed = False
        try:
            async with aiofiles.open(staging_path, "xb") as f:
                await f.write(payload)
                await f.flush()
            os.replace(staging_path, final_path)
            committed = True
        except OSError as e:
            logger.error("Failed to store object %s: %s", _short(object_id), e)
            raise FileStorageError(
                message="Failed to save the generated file. Please try again.",
                context={"path": str(final_path), "os_error": str(e)},
            )
        finally:
            # Also runs when the caller is cancelled mid-write
            if not committed:
                self._discard_staging(staging_path)
                with self._lock:
                    self._reserved.discard(object_id)

        created_at = self._clock()
        stored = StoredObject(
            id=object_id,
            display_name=display_name,
            size=len(payload),
            created_at=created_at,
            expires_at=created_at + self.config.retention_seconds,
            reference=self._reference_for(object_id, display_name),
        )
        with self._lock:
            self._reserved.discard(object_id)
            self._objects[object_id] = stored
        self._scheduler.schedule(object_id, stored.expires_at)
        self._wake()

        logger.info(
            "Stored object %s as %s (%d bytes, expires in %.0fs)",
            _short(object_id),
            display_name,
            stored.size,
            self.config.retention_seconds,
        )
        return stored

    async def get(self, object_id: str) -> ObjectReader:
        """
        Open an active object for reading.

        Raises:
            NotFoundError: malformed, unknown or expired id (indistinguishable)
            FileStorageError: the backing file exists but cannot be opened
        """
        stored = self._lookup(object_id, acquire=True)
        path = self._path_for(stored.id)
        handle = None
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError:
            raise _not_found()
        except OSError as e:
            raise self._read_fault(stored.id, e)
        finally:
            # Failed or cancelled open: the reader slot must not outlive us
            if handle is None:
                self._release(stored.id)
        return ObjectReader(self, stored, handle, self.config.chunk_size)

    def describe(self, object_id: str) -> StoredObject:
        """Metadata of an active object; same NotFound rules as get()."""
        return self._lookup(object_id)

    async def evict(self, object_id: str) -> bool:
        """
        Remove an object before its deadline.

        Returns True if an active object was evicted. Unknown, malformed or
        already expired ids are a no-op, so repeated eviction is safe.
        """
        if not self._is_valid_id(object_id):
            return False
        self._scheduler.cancel(object_id)
        evicted = self._retire(object_id, reason="evicted")
        return evicted

    async def expire_due(self) -> int:
        """Run one expiry pass at the current clock reading. Returns objects expired."""
        expired = 0
        for task in self._scheduler.pop_due(self._clock()):
            if task.attempt == 0:
                if self._retire(task.object_id, reason="expired"):
                    expired += 1
            else:
                self._delete_backing(task.object_id, attempt=task.attempt)
        return expired

    def sweep(self) -> Tuple[int, int]:
        """
        Reconcile the directory with the (empty) in-memory index after a restart.

        Returns:
            (deleted, rescheduled) counts.
        """
        now = self._clock()
        deleted = rescheduled = 0

        for leftover in self._staging.glob(f"*{STAGING_SUFFIX}"):
            self._discard_staging(leftover)

        try:
            entries = list(os.scandir(self._root))
        except OSError as e:
            logger.error("Startup sweep could not list %s: %s", self._root, e)
            return deleted, rescheduled

        for entry in entries:
            if entry.name == STAGING_DIRNAME:
                continue
            if not entry.is_file(follow_symlinks=False) or not self._is_valid_id(entry.name):
                logger.warning("Sweep ignoring unexpected entry: %s", entry.name)
                continue
            try:
                stat = entry.stat(follow_symlinks=False)
            except FileNotFoundError:
                continue

            expires_at = stat.st_mtime + self.config.retention_seconds
            if expires_at <= now:
                if self._delete_backing(entry.name):
                    deleted += 1
                continue

            display_name = f"document{self.config.default_suffix}"
            with self._lock:
                if entry.name in self._objects:
                    continue
                self._objects[entry.name] = StoredObject(
                    id=entry.name,
                    display_name=display_name,
                    size=stat.st_size,
                    created_at=stat.st_mtime,
                    expires_at=expires_at,
                    reference=self._reference_for(entry.name, display_name),
                )
            self._scheduler.schedule(entry.name, expires_at)
            rescheduled += 1

        logger.info("Startup sweep: %d deleted, %d rescheduled", deleted, rescheduled)
        return deleted, rescheduled

    def pending_expirations(self) -> List[ExpiryTask]:
        return self._scheduler.pending()

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    # ══════════════════════════════════════════════════════════════════════
    # Background expiry loop
    # ══════════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """Sweep leftovers (if configured) and start the expiry loop."""
        if self._loop_task is not None:
            return
        if self.config.sweep_on_startup:
            self.sweep()
        self._wakeup = asyncio.Event()
        self._loop_task = asyncio.create_task(self.run_expiry_loop())

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Expiry loop stopped with %d pending expirations", len(self._scheduler))

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def run_expiry_loop(self) -> None:
        if self._wakeup is None:
            self._wakeup = asyncio.Event()
        logger.info("Expiry loop started")
        while True:
            # Cleared before the pass so a put() during it is not missed
            self._wakeup.clear()
            try:
                await self.expire_due()
            except Exception:
                logger.exception("Unexpected error during expiry pass")
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._sleep_interval())
            except asyncio.TimeoutError:
                pass

    def _sleep_interval(self) -> float:
        poll = self.config.expiry_poll_interval
        deadline = self._scheduler.next_deadline()
        if deadline is None:
            return poll
        return max(0.0, min(poll, deadline - self._clock()))

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    # ══════════════════════════════════════════════════════════════════════
    # Internals
    # ══════════════════════════════════════════════════════════════════════

    def _new_id(self) -> str:
        alphabet = self.config.id_alphabet
        return "".join(secrets.choice(alphabet) for _ in range(self.config.id_length))

    def _reserve_id(self) -> str:
        object_id = self._new_id()
        with self._lock:
            collision = (
                object_id in self._objects
                or object_id in self._reserved
                or self._path_for(object_id).exists()
            )
            if not collision:
                self._reserved.add(object_id)
        if collision:
            logger.error("Object id collision detected for %s; refusing to overwrite", _short(object_id))
            raise FileStorageError(
                message="Failed to allocate storage for the generated file. Please try again.",
                context={"reason": "id_collision"},
            )
        return object_id

    def _is_valid_id(self, object_id: object) -> bool:
        return isinstance(object_id, str) and self._id_pattern.fullmatch(object_id) is not None

    def _path_for(self, object_id: str) -> Path:
        return self._root / object_id

    def _reference_for(self, object_id: str, display_name: str) -> str:
        return f"{self.config.reference_prefix}/{object_id}/{quote(display_name)}"

    def _lookup(self, object_id: str, acquire: bool = False) -> StoredObject:
        if not self._is_valid_id(object_id):
            raise _not_found()
        with self._lock:
            stored = self._objects.get(object_id)
            if stored is None or stored.expires_at <= self._clock():
                raise _not_found()
            if acquire:
                self._readers[object_id] = self._readers.get(object_id, 0) + 1
            return stored

    def _release(self, object_id: str) -> None:
        with self._lock:
            remaining = self._readers.get(object_id, 0) - 1
            if remaining > 0:
                self._readers[object_id] = remaining
                return
            self._readers.pop(object_id, None)
            retired = object_id not in self._objects
        if retired:
            self._delete_backing(object_id)

    def _retire(self, object_id: str, reason: str) -> bool:
        """Mark an object EXPIRED and unlink it unless readers still hold it open."""
        with self._lock:
            stored = self._objects.pop(object_id, None)
            if stored is None:
                return False
            stored.state = ObjectState.EXPIRED
            busy = self._readers.get(object_id, 0) > 0
        if busy:
            logger.info("Object %s %s; deleting after open readers finish", _short(object_id), reason)
        else:
            self._delete_backing(object_id)
            logger.info("Object %s %s", _short(object_id), reason)
        return True

    def _delete_backing(self, object_id: str, attempt: int = 0) -> bool:
        """Unlink the backing file. An already-absent file counts as success."""
        path = self._path_for(object_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Object %s already absent", _short(object_id))
            return True
        except OSError as e:
            if attempt == 0:
                logger.error(
                    "Failed to delete object %s: %s (retrying in %.0fs)",
                    _short(object_id),
                    e,
                    self.config.delete_retry_delay,
                )
                self._scheduler.schedule(
                    object_id, self._clock() + self.config.delete_retry_delay, attempt=1
                )
            else:
                logger.warning("Giving up deleting object %s: %s", _short(object_id), e)
            return False
        return True

    def _discard_staging(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove staging file %s: %s", path.name, e)

    def _read_fault(self, object_id: str, error: OSError) -> FileStorageError:
        logger.error("Failed to read object %s: %s", _short(object_id), error)
        return FileStorageError(
            message="Failed to read the requested file. Please try again.",
            context={"object": _short(object_id), "os_error": str(error)},
        )


def _not_found() -> NotFoundError:
    return NotFoundError(resource="file")


def _short(object_id: str) -> str:
    # Full ids are download capabilities; keep them out of the logs
    return f"{object_id[:6]}..."
