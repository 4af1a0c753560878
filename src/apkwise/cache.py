"""
Content-addressed decompilation cache.

Layout: ``<root>/<sha256 of package bytes>/`` holds one decompiled tree per
unique package content. Entries are only ever published by an atomic rename,
so the presence of the directory means the tree is complete. A hit is trusted
unconditionally; the hash guarantees byte-for-byte identity of the input.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import hashlib
import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Sequence
from uuid import uuid4

from .exceptions import DecompileError, PartialDecompile, ValidationError
from .models import DecompiledTree
from .tools.jadx import Decompiler, SOURCES_SUBDIR

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"


@dataclass
class _HashLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


def hash_package(package_path: Path) -> str:
    """
    Calculate the SHA256 hash of a package.

    Raises:
        ValidationError: the package is missing or unreadable
    """
    package_path = Path(package_path)
    if not package_path.is_file():
        raise ValidationError(f"Package file does not exist: {package_path}", path=str(package_path))

    sha256_hash = hashlib.sha256()
    try:
        with open(package_path, "rb") as f:
            for byte_block in iter(lambda: f.read(65536), b""):
                sha256_hash.update(byte_block)
    except OSError as exc:
        raise ValidationError(f"Package file is unreadable: {package_path}: {exc}", path=str(package_path)) from exc
    return sha256_hash.hexdigest()


class DecompilationCache:
    """
    Maps a package content hash to its decompiled tree.

    The cache directory may be shared between processes. Within one process,
    concurrent resolutions of the same hash are serialized so the decompiler
    runs once; across processes two invocations may both decompile, and the
    loser of the publish race discards its copy.
    """

    def __init__(self, root: Path, decompiler: Decompiler, extra_args: Sequence[str] = ()):
        self.root = Path(root)
        self.decompiler = decompiler
        self.extra_args = list(extra_args)
        self._hash_locks: Dict[str, _HashLock] = {}
        self._hash_locks_guard = threading.Lock()

    def entry_path(self, content_hash: str) -> Path:
        return self.root / content_hash

    def lookup(self, content_hash: str) -> Optional[Path]:
        entry = self.entry_path(content_hash)
        return entry if entry.is_dir() else None

    def resolve(self, package_path: Path) -> DecompiledTree:
        """
        Return the decompiled tree for a package, decompiling it on a miss.

        Raises:
            ValidationError: package missing or unreadable
            DecompileError: decompiler failed with no usable partial output
        """
        package_path = Path(package_path)
        content_hash = hash_package(package_path)

        with self._hash_lock(content_hash):
            cached = self.lookup(content_hash)
            if cached is not None:
                logger.info(f"Found cached decompiled package for {package_path.name}, skipping decompilation")
                return DecompiledTree(path=cached, content_hash=content_hash, cache_hit=True)

            logger.info(f"Decompiling {package_path.name} (this may take a while)")
            partial = self._decompile_and_publish(package_path, content_hash)

        return DecompiledTree(
            path=self.entry_path(content_hash),
            content_hash=content_hash,
            cache_hit=False,
            partial=partial,
        )

    @contextmanager
    def _hash_lock(self, content_hash: str) -> Iterator[None]:
        """Serialize work on one hash; the lock is dropped once nobody holds or waits for it."""
        with self._hash_locks_guard:
            entry = self._hash_locks.get(content_hash)
            if entry is None:
                entry = self._hash_locks[content_hash] = _HashLock()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._hash_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._hash_locks[content_hash]

    def _decompile_and_publish(self, package_path: Path, content_hash: str) -> bool:
        self.root.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="apkwise-"))
        partial = False

        try:
            exit_code = self.decompiler.decompile(package_path, scratch, self.extra_args)
            if exit_code != 0:
                # The exit code alone is not trusted; probe for a usable tree
                if not (scratch / SOURCES_SUBDIR).is_dir():
                    raise DecompileError(f"Failed to decompile {package_path.name}", exit_code=exit_code)
                partial = True
                logger.warning(str(PartialDecompile(str(scratch), exit_code)))

            self._publish(scratch, self.entry_path(content_hash))
        except Exception:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        logger.info(f"✓ Cached decompiled package under {content_hash[:12]}")
        return partial

    def _publish(self, scratch: Path, final: Path) -> None:
        try:
            os.rename(scratch, final)
            return
        except OSError as exc:
            if final.is_dir():
                logger.info(f"Cache entry {final.name[:12]} was published concurrently, discarding duplicate")
                shutil.rmtree(scratch, ignore_errors=True)
                return
            logger.debug(f"Rename into cache failed ({exc}), falling back to copy")

        # Cross-device: build the entry next to its final path, then rename it
        staging = self.root / f"{STAGING_PREFIX}{final.name}-{uuid4().hex[:8]}"
        try:
            shutil.copytree(scratch, staging, symlinks=True)
        except (OSError, shutil.Error) as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise DecompileError("Failed to cache decompiled package", original_exception=exc) from exc

        try:
            os.rename(staging, final)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if not final.is_dir():
                raise DecompileError("Failed to cache decompiled package", original_exception=exc) from exc
            logger.info(f"Cache entry {final.name[:12]} was published concurrently, discarding duplicate")

        shutil.rmtree(scratch, ignore_errors=True)
