"""
Module for serving files from an asset filesystem over HTTP.

Supports:
- Serving files from either backend (embedded payloads or local disk)
- Brotli passthrough of the stored payload when the client supports it
  (Accept-Encoding: br); other clients get the decoded bytes
- index.html for directory requests
- Async disk reads for the local backend
"""

import mimetypes
import posixpath
from typing import Optional

import aiofiles
from fastapi import Request
from fastapi.responses import Response

from assetfs.runtime import Entry

INDEX_FILE = 'index.html'

MEDIA_TYPES = {
    '.wasm': 'application/wasm',
    '.js': 'application/javascript',
    '.mjs': 'application/javascript',
    '.json': 'application/json',
    '.html': 'text/html',
    '.css': 'text/css',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.svg': 'image/svg+xml',
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.ogg': 'audio/ogg',
    '.txt': 'text/plain',
}


def _client_accepts_brotli(request: Request) -> bool:
    """Check if client accepts brotli encoding."""
    accept_encoding = request.headers.get("accept-encoding", "")
    return "br" in accept_encoding.lower()


def _get_response_headers(use_brotli: bool, media_type: str) -> dict:
    """Get response headers, optionally with brotli encoding."""
    headers = {
        "Content-Type": media_type,
        "Vary": "Accept-Encoding",
    }
    if use_brotli:
        headers["Content-Encoding"] = "br"
    return headers


def get_media_type(path: str) -> str:
    """Get appropriate media type based on file extension."""
    ext = posixpath.splitext(path.lower())[1]
    if ext in MEDIA_TYPES:
        return MEDIA_TYPES[ext]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


def _resolve(fs, path: str) -> Optional[Entry]:
    """Find the entry to serve for path; directories resolve to their index file."""
    try:
        entry = fs.lookup(path)
    except FileNotFoundError:
        return None
    if not entry.is_dir:
        return entry
    try:
        return fs.lookup(posixpath.join(path, INDEX_FILE))
    except FileNotFoundError:
        return None


async def _read_local(entry: Entry) -> bytes:
    async with aiofiles.open(entry.local, 'rb') as f:
        return await f.read()


async def get_asset_response(fs, path: str, request: Request) -> Optional[Response]:
    """
    Get a file from an asset filesystem.

    How files are sent:
    - Local backend: the file is read from disk and sent plain
    - Embedded backend, client accepts br: the stored payload is sent as-is
      with Content-Encoding: br
    - Embedded backend otherwise: the decoded bytes are sent plain

    Args:
        fs: Filesystem returned by fs() or dir_fs() of a generated module
        path: Request path (e.g. "static/app.js")
        request: FastAPI request object to check Accept-Encoding header

    Returns:
        Response with file data, or None if the file is not found or unreadable
    """
    entry = _resolve(fs, path)
    if entry is None:
        return None

    media_type = get_media_type(entry.path)

    try:
        if fs.use_local:
            data = await _read_local(entry)
            return Response(content=data, headers=_get_response_headers(False, media_type))

        use_brotli = _client_accepts_brotli(request) and entry.size > 0
        data = entry.compressed() if use_brotli else entry.load()
        return Response(content=data, headers=_get_response_headers(use_brotli, media_type))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        print(f"Error reading asset: {path} - {e}")
        return None
