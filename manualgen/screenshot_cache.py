"""
Screenshot Cache
================
Content-addressed store mapping capture requests to PNG files.

Two lookup paths:

    request key   md5(url : selector|"fullpage" : WxH)
                  An exact repeat request within the TTL is served from
                  disk without touching the browser (``from_cache``).
    content hash  sha256(image bytes)
                  A fresh capture whose bytes match an existing file is
                  deleted and the existing path is returned
                  (``duplicate``), so one file exists per distinct image.

Dropping the last entry that points at a file deletes the file as well.

The index is written to a JSON file after every mutation.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import ScreenshotCaptureError
from .utils import slugify

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 3600
_CACHE_FILE = "screenshot-cache.json"

# Callable that writes a PNG to the given path.
Shooter = Callable[[Path], Awaitable[None]]


def request_key(url: str, selector: Optional[str], viewport: Tuple[int, int]) -> str:
    data = f"{url}:{selector or 'fullpage'}:{viewport[0]}x{viewport[1]}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass
class ScreenshotCacheEntry:
    content_hash: str
    request_key: str
    storage_path: str
    source_url: str
    captured_at: float
    ttl: float = DEFAULT_TTL_S
    selector: Optional[str] = None

    def is_fresh(self, now: float) -> bool:
        return (now - self.captured_at) < self.ttl

    def file_exists(self) -> bool:
        return Path(self.storage_path).is_file()


@dataclass
class CaptureOutcome:
    path: str
    content_hash: str
    request_key: str
    source_url: str
    from_cache: bool = False
    duplicate: bool = False

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "hash": self.content_hash,
            "requestKey": self.request_key,
            "url": self.source_url,
            "fromCache": self.from_cache,
            "duplicate": self.duplicate,
        }


class ScreenshotCache:
    """Owns the request-key and content-hash indices of captured images."""

    def __init__(
        self,
        directory: str,
        *,
        ttl_s: float = DEFAULT_TTL_S,
        index_path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.index_path = Path(index_path) if index_path else self.directory / _CACHE_FILE
        self.ttl_s = ttl_s
        self._clock = clock
        self._by_request: Dict[str, ScreenshotCacheEntry] = {}
        self._by_hash: Dict[str, str] = {}
        self._load()

    # ── Public API ────────────────────────────────────────────────

    def lookup(self, url: str, selector: Optional[str], viewport: Tuple[int, int]) -> Optional[ScreenshotCacheEntry]:
        """Return the entry for this exact request if it is still valid."""
        key = request_key(url, selector, viewport)
        entry = self._by_request.get(key)
        if entry is None:
            return None
        if entry.file_exists() and entry.is_fresh(self._clock()):
            return entry
        logger.debug(f"[CACHE] Stale entry for {url} ({selector or 'fullpage'}) dropped")
        self._drop(key)
        self._flush()
        return None

    async def capture(
        self,
        url: str,
        selector: Optional[str],
        viewport: Tuple[int, int],
        shoot: Shooter,
    ) -> CaptureOutcome:
        """Serve *url*/*selector* from cache or call *shoot* for a new image.

        Raises:
            ScreenshotCaptureError: *shoot* failed or wrote nothing.
        """
        key = request_key(url, selector, viewport)
        cached = self.lookup(url, selector, viewport)
        if cached is not None:
            logger.info(f"[CACHE] Hit: {Path(cached.storage_path).name}")
            return CaptureOutcome(
                path=cached.storage_path,
                content_hash=cached.content_hash,
                request_key=key,
                source_url=cached.source_url,
                from_cache=True,
            )

        target = self._target_path(url, selector, key)
        try:
            await shoot(target)
            data = target.read_bytes()
        except Exception as exc:
            target.unlink(missing_ok=True)
            if isinstance(exc, ScreenshotCaptureError):
                raise
            raise ScreenshotCaptureError(f"Capture of {url} ({selector or 'fullpage'}) failed: {exc}") from exc
        if not data:
            target.unlink(missing_ok=True)
            raise ScreenshotCaptureError(f"Capture of {url} produced an empty image")

        digest = content_hash(data)
        existing_path = self._by_hash.get(digest)
        if existing_path and existing_path != str(target) and Path(existing_path).is_file():
            target.unlink(missing_ok=True)
            self._insert(ScreenshotCacheEntry(
                content_hash=digest,
                request_key=key,
                storage_path=existing_path,
                source_url=url,
                captured_at=self._clock(),
                ttl=self.ttl_s,
                selector=selector,
            ))
            logger.info(f"[CACHE] Duplicate image, reusing {Path(existing_path).name}")
            return CaptureOutcome(
                path=existing_path,
                content_hash=digest,
                request_key=key,
                source_url=url,
                duplicate=True,
            )

        self._insert(ScreenshotCacheEntry(
            content_hash=digest,
            request_key=key,
            storage_path=str(target),
            source_url=url,
            captured_at=self._clock(),
            ttl=self.ttl_s,
            selector=selector,
        ))
        logger.info(f"[CACHE] Stored {target.name}")
        return CaptureOutcome(path=str(target), content_hash=digest, request_key=key, source_url=url)

    def optimize(self) -> Dict[str, int]:
        """Evict entries whose file vanished or whose TTL lapsed."""
        now = self._clock()
        missing = expired = files_deleted = 0
        for key, entry in list(self._by_request.items()):
            if not entry.file_exists():
                self._drop(key)
                missing += 1
            elif not entry.is_fresh(now):
                files_deleted += int(self._drop(key))
                expired += 1

        # files no longer referenced by any entry
        referenced = {e.storage_path for e in self._by_request.values()}
        for png in self.directory.glob("*.png"):
            if str(png) not in referenced:
                png.unlink(missing_ok=True)
                files_deleted += 1

        self._flush()
        report = {
            "removedMissing": missing,
            "removedExpired": expired,
            "removed": missing + expired,
            "filesDeleted": files_deleted,
            "remaining": len(self._by_request),
        }
        logger.info(f"[CACHE] Optimized: {report}")
        return report

    def clear(self) -> int:
        """Delete every cached file and entry; return the file count."""
        paths = {e.storage_path for e in self._by_request.values()}
        for p in paths:
            Path(p).unlink(missing_ok=True)
        self._by_request.clear()
        self._by_hash.clear()
        self._flush()
        logger.info(f"[CACHE] Cleared {len(paths)} file(s)")
        return len(paths)

    def statistics(self) -> Dict:
        entries = list(self._by_request.values())
        files = {e.storage_path for e in entries if e.file_exists()}
        captured = [e.captured_at for e in entries]
        return {
            "entries": len(entries),
            "uniqueImages": len(self._by_hash),
            "filesOnDisk": len(files),
            "bytesOnDisk": sum(Path(p).stat().st_size for p in files),
            "oldestCapture": min(captured) if captured else None,
            "newestCapture": max(captured) if captured else None,
        }

    def __len__(self) -> int:
        return len(self._by_request)

    @property
    def entries(self) -> List[ScreenshotCacheEntry]:
        return list(self._by_request.values())

    # ── Internals ─────────────────────────────────────────────────

    def _target_path(self, url: str, selector: Optional[str], key: str) -> Path:
        stamp = int(self._clock() * 1000)
        name = f"{slugify(url, 40)}_{slugify(selector or 'fullpage', 30)}_{key[:8]}_{stamp}.png"
        return self.directory / name

    def _insert(self, entry: ScreenshotCacheEntry) -> None:
        self._by_request[entry.request_key] = entry
        self._by_hash[entry.content_hash] = entry.storage_path
        self._flush()

    def _drop(self, key: str) -> bool:
        """Remove an entry; delete its file once nothing else points at it.

        Returns True when a file was deleted.
        """
        entry = self._by_request.pop(key, None)
        if entry is None:
            return False
        if any(e.content_hash == entry.content_hash for e in self._by_request.values()):
            return False
        self._by_hash.pop(entry.content_hash, None)
        path = Path(entry.storage_path)
        if not path.is_file():
            return False
        path.unlink()
        logger.debug(f"[CACHE] Deleted {path.name}")
        return True

    def _load(self) -> None:
        if not self.index_path.exists():
            return
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"[CACHE] Corrupt cache index ignored: {exc}")
            return
        for item in raw.get("entries", []):
            try:
                entry = ScreenshotCacheEntry(**item)
            except TypeError:
                continue
            self._by_request[entry.request_key] = entry
            self._by_hash[entry.content_hash] = entry.storage_path
        logger.info(f"[CACHE] Loaded {len(self._by_request)} entries from {self.index_path.name}")

    def _flush(self) -> None:
        payload = {"entries": [asdict(e) for e in self._by_request.values()]}
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            self.index_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error(f"[CACHE] Could not write cache index: {exc}")
