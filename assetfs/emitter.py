"""
Renders a packed bundle as a self-contained Python module.

The module holds a copy of assetfs.runtime, a sorted descriptor table
(_DATA) and the public accessors bound to a registry built from it.
"""

import inspect
import os
import sys
import tempfile
from typing import List, Optional

from assetfs import runtime
from assetfs.packer import Bundle, PackError, segment


CHUNK_WIDTH = 80

HEADER = """\
# Code generated by assetfs. DO NOT EDIT.
# Package: {package}
"""

FOOTER = """
PACKAGE = {package!r}

_assets = Assets(Registry.from_table(_DATA))

registry = _assets.registry
fs = _assets.fs
dir_fs = _assets.dir_fs
read_bytes = _assets.read_bytes
must_read_bytes = _assets.must_read_bytes
read_string = _assets.read_string
must_read_string = _assets.must_read_string
"""


def _render_payload(payload: str, indent: str) -> List[str]:
    chunks = segment(payload, CHUNK_WIDTH)
    if not chunks:
        return [f"{indent}'payload': '',"]
    lines = [f"{indent}'payload': ("]
    lines.extend(f"{indent}    {chunk!r}" for chunk in chunks)
    lines.append(f"{indent}),")
    return lines


def render_registry(bundle: Bundle) -> str:
    """
    Render the descriptor table for a bundle.

    Files come first, then directories; both are sorted by canonical path,
    so the same input tree always renders to the same text.
    """
    lines = ['_DATA = {']
    for f in sorted(bundle.files, key=lambda f: f.path):
        lines.append(f"    {f.path!r}: {{")
        lines.append(f"        'local': {f.local!r},")
        lines.append(f"        'size': {f.size},")
        lines.extend(_render_payload(f.payload, ' ' * 8))
        if f.modtime is not None:
            lines.append(f"        'modtime': {f.modtime},")
        lines.append('    },')
    for d in sorted(bundle.dirs, key=lambda d: d.path):
        lines.append(f"    {d.path!r}: {{")
        lines.append("        'is_dir': True,")
        lines.append(f"        'local': {d.local!r},")
        if d.modtime is not None:
            lines.append(f"        'modtime': {d.modtime},")
        lines.append('    },')
    lines.append('}')
    return '\n'.join(lines) + '\n'


def render_module(bundle: Bundle, package: str = 'main') -> str:
    """Render the complete generated module: runtime, registry and accessors."""
    parts = [
        HEADER.format(package=package),
        inspect.getsource(runtime).rstrip('\n') + '\n\n\n',
        render_registry(bundle),
        FOOTER.format(package=package),
    ]
    return ''.join(parts)


def write_output(text: str, output: Optional[str] = None) -> None:
    """
    Write the generated module to output, or to stdout if output is None.

    The file is written next to its destination first and moved into place,
    so a failed write never leaves a partial module behind.

    Raises:
        PackError: If the file cannot be written.
    """
    if output is None:
        sys.stdout.write(text)
        sys.stdout.flush()
        return

    directory = os.path.dirname(os.path.abspath(output))
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=directory,
                                         suffix='.tmp', delete=False) as f:
            tmp_path = f.name
            f.write(text)
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, output)
    except OSError as e:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise PackError(f"writing {output}: {e}") from e
    print(f"Wrote {output} ({os.path.getsize(output)} bytes)", file=sys.stderr)
