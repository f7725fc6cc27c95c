"""
Read-only virtual filesystem over packed assets.

Files are stored as base64 text of brotli-compressed bytes. Each entry is
decoded the first time it is opened and kept in memory afterwards.

Two interchangeable backends:
- EmbeddedFS reads the packed payloads.
- LocalFS reads the original files from disk (for local development).

This module only depends on the standard library and brotli, so its source
is copied verbatim into every generated asset module.
"""

import base64
import binascii
import enum
import io
import os
import posixpath
import stat
import threading
from datetime import datetime, timezone
from functools import cached_property
from typing import Callable, Dict, Iterator, List, Optional

import brotli


EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class PayloadError(ValueError):
    """Raised when a packed payload cannot be decoded."""


class MandatoryAssetError(RuntimeError):
    """Raised by the must_* accessors when a required asset is unusable."""


def clean_key(name: str) -> str:
    """Anchor a slash-separated path at '/' and collapse ., .. and repeated slashes."""
    return posixpath.normpath('/' + name.lstrip('/'))


def clean_path(name: str) -> str:
    """Turn a request path into a canonical, root-anchored key."""
    return clean_key(name.replace('\\', '/'))


def decode_payload(payload: str, size: int) -> bytes:
    """
    Decode a packed payload back into the original bytes.

    Args:
        payload: Base64 text of the brotli-compressed data. Line breaks and
                 other whitespace between chunks are ignored.
        size: Expected decompressed length.

    Raises:
        PayloadError: If the payload is corrupt or truncated.
    """
    try:
        compressed = base64.b64decode(''.join(payload.split()), validate=True)
        data = brotli.decompress(compressed)
    except (binascii.Error, brotli.error) as e:
        raise PayloadError(f"corrupt payload: {e}") from e
    if len(data) != size:
        raise PayloadError(f"payload decoded to {len(data)} bytes, expected {size}")
    return data


# ============== ENTRIES ==============

class DecodeState(enum.Enum):
    UNLOADED = 'unloaded'
    DECODING = 'decoding'
    READY = 'ready'
    FAILED = 'failed'


class Entry:
    """A single file or directory in the registry."""

    def __init__(
        self,
        path: str,
        local: str,
        is_dir: bool = False,
        size: int = 0,
        payload: str = '',
        modtime: Optional[int] = None,
        decoder: Callable[[str, int], bytes] = decode_payload,
    ):
        self.path = path
        self.local = local
        self.is_dir = is_dir
        self.size = 0 if is_dir else size
        self.payload = '' if is_dir else payload
        self.modtime = modtime
        self._decoder = decoder
        self._lock = threading.Lock()
        self._state = DecodeState.UNLOADED
        self._data: Optional[bytes] = None
        self._error: Optional[Exception] = None

    def __repr__(self) -> str:
        kind = 'dir' if self.is_dir else 'file'
        return f"Entry({self.path!r}, {kind}, size={self.size})"

    @cached_property
    def name(self) -> str:
        """Base name of the entry ('/' for the root)."""
        return posixpath.basename(self.path) or '/'

    @property
    def state(self) -> DecodeState:
        return self._state

    def load(self) -> bytes:
        """
        Return the decoded bytes, decoding the payload on first use.

        Concurrent callers wait for the decoding caller and see the same
        outcome. A failure is kept and reported again on every later call.

        Raises:
            PayloadError: If the payload cannot be decoded.
        """
        if self._state is DecodeState.READY:
            return self._data

        with self._lock:
            if self._state is DecodeState.UNLOADED:
                self._state = DecodeState.DECODING
                try:
                    if self.is_dir or self.size == 0:
                        self._data = b''
                    else:
                        self._data = self._decoder(self.payload, self.size)
                except Exception as e:
                    self._error = e
                    self._state = DecodeState.FAILED
                else:
                    self._state = DecodeState.READY

            if self._state is DecodeState.FAILED:
                raise PayloadError(f"{self.path}: {self._error}") from self._error
            return self._data

    def compressed(self) -> bytes:
        """Return the stored brotli-compressed bytes without decompressing."""
        try:
            return base64.b64decode(''.join(self.payload.split()), validate=True)
        except binascii.Error as e:
            raise PayloadError(f"{self.path}: corrupt payload: {e}") from e


class FileInfo:
    """Metadata of an opened file, shared by both backends."""

    def __init__(self, name: str, size: int, is_dir: bool, mod_time: datetime = EPOCH, sys=None):
        self.name = name
        self.size = size
        self.is_dir = is_dir
        self.mode = stat.S_IFDIR if is_dir else stat.S_IFREG
        self.mod_time = mod_time
        self._sys = sys

    def __repr__(self) -> str:
        return f"FileInfo(name={self.name!r}, size={self.size}, is_dir={self.is_dir})"

    @classmethod
    def from_entry(cls, entry: Entry) -> 'FileInfo':
        mod_time = EPOCH
        if entry.modtime is not None:
            mod_time = datetime.fromtimestamp(entry.modtime, tz=timezone.utc)
        return cls(entry.name, entry.size, entry.is_dir, mod_time, sys=entry)

    @classmethod
    def from_stat(cls, path: str, st: os.stat_result) -> 'FileInfo':
        is_dir = stat.S_ISDIR(st.st_mode)
        return cls(
            posixpath.basename(path.rstrip('/')) or '/',
            0 if is_dir else st.st_size,
            is_dir,
            datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            sys=st,
        )

    def sys(self):
        """Backing metadata: the registry Entry, or the os.stat_result for disk files."""
        return self._sys


class Registry:
    """Immutable mapping of canonical path -> Entry."""

    def __init__(self, entries: Dict[str, Entry]):
        self._entries = dict(entries)
        if '/' not in self._entries:
            self._entries['/'] = Entry('/', '.', is_dir=True)

    @classmethod
    def from_table(cls, table: Dict[str, dict], decoder: Callable[[str, int], bytes] = decode_payload) -> 'Registry':
        """Build a registry from the descriptor table of a generated module."""
        entries = {}
        for path, desc in table.items():
            entries[path] = Entry(
                path,
                desc.get('local', ''),
                is_dir=desc.get('is_dir', False),
                size=desc.get('size', 0),
                payload=desc.get('payload', ''),
                modtime=desc.get('modtime'),
                decoder=decoder,
            )
        return cls(entries)

    def get(self, path: str) -> Optional[Entry]:
        return self._entries.get(path)

    def paths(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())

    def __len__(self) -> int:
        return len(self._entries)


# ============== FILE HANDLES ==============

class AssetFile:
    """
    A file-like object over decoded asset bytes.
    Supports read(), readline(), seek() and iteration over lines.
    """

    def __init__(self, data: bytes, info: FileInfo):
        self._data = data
        self._info = info
        self._position = 0

    def __enter__(self) -> 'AssetFile':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def data(self) -> bytes:
        return self._data

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes. If size is -1, read all remaining data."""
        if size is None or size < 0:
            result = self._data[self._position:]
        else:
            result = self._data[self._position:self._position + size]
        self._position += len(result)
        return result

    def readline(self, size: int = -1) -> bytes:
        if self._position >= len(self._data):
            return b''

        newline_pos = self._data.find(b'\n', self._position)
        end = len(self._data) if newline_pos == -1 else newline_pos + 1
        if size is not None and size >= 0:
            end = min(end, self._position + size)

        result = self._data[self._position:end]
        self._position = end
        return result

    def readlines(self) -> List[bytes]:
        return list(self)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Seek to position. whence: 0=start, 1=current, 2=end."""
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._position + offset
        elif whence == io.SEEK_END:
            position = len(self._data) + offset
        else:
            raise ValueError(f"invalid whence ({whence})")
        self._position = max(0, min(position, len(self._data)))
        return self._position

    def tell(self) -> int:
        return self._position

    def close(self) -> None:
        pass

    def stat(self) -> FileInfo:
        return self._info

    def readdir(self) -> List[FileInfo]:
        raise io.UnsupportedOperation("listing directory contents is not supported")

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        line = self.readline()
        if not line:
            raise StopIteration
        return line


class LocalFile:
    """The AssetFile contract over a file on disk."""

    def __init__(self, path: str):
        st = os.stat(path)
        self._info = FileInfo.from_stat(path, st)
        self._file = None if self._info.is_dir else open(path, 'rb')

    def __enter__(self) -> 'LocalFile':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def read(self, size: int = -1) -> bytes:
        if self._file is None:
            return b''
        return self._file.read(size)

    def readline(self, size: int = -1) -> bytes:
        if self._file is None:
            return b''
        return self._file.readline(size)

    def readlines(self) -> List[bytes]:
        return list(self)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if self._file is None:
            return 0
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        if self._file is None:
            return 0
        return self._file.tell()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()

    def stat(self) -> FileInfo:
        return self._info

    def readdir(self) -> List[FileInfo]:
        raise io.UnsupportedOperation("listing directory contents is not supported")

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        line = self.readline()
        if not line:
            raise StopIteration
        return line


# ============== BACKENDS ==============

class VirtualFS:
    """Base class for the filesystem backends."""

    use_local = False

    def __init__(self, registry: Registry):
        self.registry = registry

    def lookup(self, name: str) -> Entry:
        """
        Find the registry entry for a request path.

        Raises:
            FileNotFoundError: If the path is not in the registry.
        """
        path = clean_path(name)
        entry = self.registry.get(path)
        if entry is None:
            raise FileNotFoundError(f"File not found in assets: {path}")
        return entry

    def open(self, name: str):
        raise NotImplementedError


class EmbeddedFS(VirtualFS):
    """Serves files from the packed payloads."""

    def open(self, name: str) -> AssetFile:
        entry = self.lookup(name)
        if entry.is_dir:
            return AssetFile(b'', FileInfo.from_entry(entry))
        return AssetFile(entry.load(), FileInfo.from_entry(entry))


class LocalFS(VirtualFS):
    """Serves the original files from disk, re-reading them on every open."""

    use_local = True

    def open(self, name: str) -> LocalFile:
        entry = self.lookup(name)
        return LocalFile(entry.local)


class ScopedFS:
    """Restricts a backend to the subtree under base."""

    def __init__(self, fs: VirtualFS, base: str):
        self.fs = fs
        self.base = base

    @property
    def use_local(self) -> bool:
        return self.fs.use_local

    def _join(self, name: str) -> str:
        # name is cleaned on its own first so .. cannot climb above base
        return clean_path(self.base).rstrip('/') + clean_path(name)

    def lookup(self, name: str) -> Entry:
        return self.fs.lookup(self._join(name))

    def open(self, name: str):
        return self.fs.open(self._join(name))


# ============== ACCESSORS ==============

class Assets:
    """Accessors bound to one registry. Generated modules expose its methods."""

    def __init__(self, registry: Registry):
        self.registry = registry
        self._local = LocalFS(registry)
        self._embedded = EmbeddedFS(registry)

    def fs(self, use_local: bool = False) -> VirtualFS:
        """Return the embedded filesystem, or the on-disk one if use_local is set."""
        return self._local if use_local else self._embedded

    def dir_fs(self, use_local: bool, name: str) -> ScopedFS:
        """Return a filesystem rooted at name."""
        return ScopedFS(self.fs(use_local), name)

    def read_bytes(self, use_local: bool, name: str) -> bytes:
        """
        Return the contents of the named asset.

        Raises:
            FileNotFoundError: If the asset is not in the registry.
            PayloadError: If the embedded payload is corrupt.
        """
        if use_local:
            with self._local.open(name) as f:
                return f.read()
        return self._embedded.lookup(name).load()

    def must_read_bytes(self, use_local: bool, name: str) -> bytes:
        """Same as read_bytes, but a missing or corrupt asset is fatal."""
        try:
            return self.read_bytes(use_local, name)
        except (OSError, PayloadError) as e:
            raise MandatoryAssetError(f"required asset {name!r} unavailable: {e}") from e

    def read_string(self, use_local: bool, name: str) -> str:
        return self.read_bytes(use_local, name).decode('utf-8')

    def must_read_string(self, use_local: bool, name: str) -> str:
        data = self.must_read_bytes(use_local, name)
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MandatoryAssetError(f"required asset {name!r} is not UTF-8 text: {e}") from e
