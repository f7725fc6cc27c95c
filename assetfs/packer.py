"""
Packs files from one or more roots into an asset bundle.

Walks the roots breadth-first, turns every file path into a canonical
registry key, synthesizes the implied directories and compresses each file
with Brotli (quality 11). Compressed bytes are base64 encoded so they can be
embedded in generated Python source.

Independent files are compressed in parallel when more than one worker is
allowed; the result does not depend on the number of workers.
"""

import base64
import os
import posixpath
import re
import sys
from collections import deque
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import brotli

from assetfs.runtime import clean_key


BROTLI_QUALITY = 11  # Maximum compression
BROTLI_LGWIN = 24    # Window size (max)
BROTLI_MODE = brotli.MODE_GENERIC

# Below this many files compression runs in-process
PARALLEL_THRESHOLD = 8


class PackError(Exception):
    """Raised when the input tree cannot be packed. Nothing is emitted."""


def compress_brotli(data: bytes) -> bytes:
    """Compress data using Brotli with maximum quality."""
    return brotli.compress(data, quality=BROTLI_QUALITY, lgwin=BROTLI_LGWIN, mode=BROTLI_MODE)


def encode_payload(data: bytes) -> str:
    """Compress data and encode it as base64 text."""
    return base64.b64encode(compress_brotli(data)).decode('ascii')


def segment(text: str, width: int = 80) -> List[str]:
    """Split text into chunks of at most width characters."""
    return [text[i:i + width] for i in range(0, len(text), width)]


# ============== WALK ==============

@dataclass
class WalkedPath:
    """A path visited by walk(). Directories carry no data."""
    path: str
    data: Optional[bytes]
    is_dir: bool


def compile_ignore(pattern: Optional[str]) -> Optional[re.Pattern[str]]:
    """
    Compile an exclusion pattern.

    Raises:
        PackError: If the pattern is not a valid regular expression.
    """
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PackError(f"invalid ignore pattern {pattern!r}: {e}") from e


def walk(roots: Sequence[str], ignore: Optional[re.Pattern[str]] = None) -> List[WalkedPath]:
    """
    Visit every path under the given roots breadth-first.

    Directory children are queued in sorted order. A path matching ignore is
    skipped, and an ignored directory is not descended into.

    Args:
        roots: Files or directories to visit, in order
        ignore: Optional compiled exclusion pattern (searched in each path)

    Returns:
        Visited paths; files include their full contents.

    Raises:
        PackError: On any I/O error. Partial results are discarded.
    """
    walked: List[WalkedPath] = []
    queue = deque(roots)

    while queue:
        fname = queue.popleft()
        if ignore is not None and ignore.search(fname):
            continue

        try:
            if os.path.isdir(fname):
                for child in sorted(os.listdir(fname)):
                    queue.append(os.path.join(fname, child))
                walked.append(WalkedPath(fname, None, True))
            else:
                with open(fname, 'rb') as f:
                    walked.append(WalkedPath(fname, f.read(), False))
        except OSError as e:
            raise PackError(f"reading {fname}: {e}") from e

    return walked


# ============== PATHS ==============

def to_slash(path: str) -> str:
    """Replace host separators with '/'."""
    if os.sep != '/':
        path = path.replace(os.sep, '/')
    if os.altsep and os.altsep != '/':
        path = path.replace(os.altsep, '/')
    return path


def canonical_path(fname: str, prefix: str = '') -> str:
    """
    Turn a walked path into its registry key.

    The prefix is stripped from the front, then the remainder is anchored at
    '/' and cleaned.
    """
    fpath = to_slash(fname)
    prefix = to_slash(prefix)
    if prefix and fpath.startswith(prefix):
        fpath = fpath[len(prefix):]
    return clean_key(fpath)


def synthesize_dirs(paths: Sequence[str]) -> List[str]:
    """Return every ancestor directory of the given file keys, root included, sorted."""
    dirs = {'/'}
    for path in paths:
        parent = posixpath.dirname(path)
        while parent != '/':
            dirs.add(parent)
            parent = posixpath.dirname(parent)
    return sorted(dirs)


def local_dirs(files: Dict[str, str], prefix: str = '') -> Dict[str, str]:
    """
    Map each synthesized directory key to its on-disk location.

    Args:
        files: File key -> local path
        prefix: Stripped prefix, used for the root when there are no files
    """
    locals_: Dict[str, str] = {}
    for key, local in sorted(files.items()):
        while key != '/':
            key = posixpath.dirname(key)
            local = posixpath.dirname(local)
            locals_.setdefault(key, local or '.')
    locals_.setdefault('/', to_slash(prefix) or '.')
    return locals_


# ============== BUNDLE ==============

@dataclass
class PackedFile:
    path: str
    local: str
    size: int
    payload: str
    modtime: Optional[int] = None


@dataclass
class PackedDir:
    path: str
    local: str
    modtime: Optional[int] = None


@dataclass
class Bundle:
    """Everything the emitter needs, sorted by canonical path."""
    files: List[PackedFile] = field(default_factory=list)
    dirs: List[PackedDir] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)


def compress_file_task(args: Tuple[str, bytes]) -> Tuple[str, str]:
    """
    Encode one file. Used for parallel processing.
    Args: (path, data)
    Returns: (path, payload)
    """
    path, data = args
    return path, encode_payload(data)


def _encode_all(content: Dict[str, Tuple[str, bytes]], max_workers: Optional[int]) -> Dict[str, str]:
    tasks = [(path, content[path][1]) for path in sorted(content)]
    if max_workers is None:
        max_workers = os.cpu_count() or 4

    if max_workers <= 1 or len(tasks) < PARALLEL_THRESHOLD:
        return dict(compress_file_task(task) for task in tasks)

    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        return dict(executor.map(compress_file_task, tasks))


def pack(
    roots: Sequence[str],
    prefix: str = '',
    ignore: Optional[re.Pattern[str]] = None,
    modtime: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> Bundle:
    """
    Pack the given roots into a bundle.

    Args:
        roots: Files or directories to pack
        prefix: Path prefix stripped before computing registry keys
        ignore: Optional compiled exclusion pattern
        modtime: Optional unix time recorded on every entry
        max_workers: Maximum number of parallel compression workers (default: CPU count)

    Raises:
        PackError: On I/O errors, or when two files (or a file and a directory)
                   end up with the same registry key.
    """
    content: Dict[str, Tuple[str, bytes]] = {}  # key -> (local, data)

    for walked in walk(roots, ignore):
        if walked.is_dir:
            continue
        local = to_slash(walked.path)
        key = canonical_path(walked.path, prefix)
        if key in content:
            raise PackError(f"duplicate asset path {key}: {content[key][0]} and {local}")
        content[key] = (local, walked.data)

    fnames = sorted(content)
    dirnames = synthesize_dirs(fnames)
    for dirname in dirnames:
        if dirname in content:
            raise PackError(f"asset path {dirname} ({content[dirname][0]}) is also a directory")

    payloads = _encode_all(content, max_workers)
    dir_locals = local_dirs({key: local for key, (local, _) in content.items()}, prefix)

    bundle = Bundle()
    for fname in fnames:
        local, data = content[fname]
        bundle.files.append(PackedFile(fname, local, len(data), payloads[fname], modtime))
    for dirname in dirnames:
        bundle.dirs.append(PackedDir(dirname, dir_locals[dirname], modtime))

    compressed = sum(len(f.payload) for f in bundle.files)
    print(f"Packed {len(bundle.files)} file(s), {len(bundle.dirs)} dir(s)", file=sys.stderr)
    if bundle.total_size > 0:
        ratio = compressed / bundle.total_size * 100
        print(f"Encoded: {bundle.total_size} -> {compressed} bytes ({ratio:.1f}%)", file=sys.stderr)
    return bundle
