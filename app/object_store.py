"""Blob storage for encrypted media.

Keys look like ``{owner_id}/{vault_id}/{filename}``. The store only ever sees
ciphertext; it knows nothing about items or vaults.
"""
import os
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from errors import TransientIOError
from logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BlobInfo:
    key: str
    size: int


class ObjectStore:
    """Interface of the backing object store."""

    def list(self, prefix):
        raise NotImplementedError

    def put(self, key, data):
        raise NotImplementedError

    def get(self, key):
        raise NotImplementedError

    def remove(self, keys):
        """Remove ``keys``; return ``{key: None | error message}``."""
        raise NotImplementedError


def is_key_segment(value):
    """True when ``value`` can stand as one path segment of a blob key."""
    return isinstance(value, str) and value not in ('', '.', '..') and not any(c in value for c in '/\\')


def blob_key(owner_id, vault_id, filename):
    return f'{owner_id}/{vault_id}/{filename}'


def vault_prefix(owner_id, vault_id):
    return f'{owner_id}/{vault_id}/'


class FilesystemObjectStore(ObjectStore):

    def __init__(self, root):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key):
        if not key or key.startswith('/') or '\\' in key:
            raise ValueError(f'Invalid blob key: {key!r}')
        parts = key.split('/')
        if any(p in ('', '.', '..') for p in parts):
            raise ValueError(f'Invalid blob key: {key!r}')
        candidate = (self.root / Path(*parts)).resolve()
        # Safety: never touch anything outside the store root
        if self.root not in candidate.parents:
            raise ValueError(f'Blob key escapes store root: {key!r}')
        return candidate

    def _key(self, path):
        return path.relative_to(self.root).as_posix()

    def list(self, prefix):
        prefix = prefix.rstrip('/')
        base = self._path(prefix) if prefix else self.root
        if not base.exists():
            return []
        try:
            blobs = [BlobInfo(self._key(p), p.stat().st_size) for p in sorted(base.rglob('*')) if p.is_file()]
        except OSError as e:
            raise TransientIOError(f'Listing {prefix!r} failed: {e}') from e
        return blobs

    def put(self, key, data):
        path = self._path(key)
        tmp = path.with_name(path.name + '.part')
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, 'wb') as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except OSError as e:
            with suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise TransientIOError(f'Writing blob {key!r} failed: {e}') from e
        logger.debug("Stored blob %s (%d bytes)", key, len(data))

    def get(self, key):
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise TransientIOError(f'Reading blob {key!r} failed: {e}') from e

    def remove(self, keys):
        results = {}
        for key in keys:
            try:
                path = self._path(key)
                path.unlink(missing_ok=True)
                results[key] = None
            except (OSError, ValueError) as e:
                results[key] = str(e)
        self._prune_empty_dirs(keys)
        return results

    def _prune_empty_dirs(self, keys):
        parents = set()
        for key in keys:
            try:
                parents.add(self._path(key).parent)
            except ValueError:
                continue
        for parent in sorted(parents, key=lambda p: len(p.parts), reverse=True):
            while parent != self.root and self.root in parent.parents:
                try:
                    parent.rmdir()
                except OSError:
                    break
                parent = parent.parent
