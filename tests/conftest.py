"""Shared fixtures for the assetfs test suite."""

import pytest

from assetfs.emitter import render_module
from assetfs.packer import encode_payload, pack
from server import load_assets


SITE_FILES = {
    "index.html": b"<html><body>hello</body></html>\n",
    "static/app.js": b"console.log('app');\n" * 50,
    "static/css/site.css": b"body { margin: 0; }\n",
    "static/empty.txt": b"",
    "data/blob.bin": bytes(range(256)) * 4,
}


def write_tree(root, files):
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return root


def make_table(files, modtime=None):
    """Descriptor table for the given path -> bytes mapping, as a generated module holds it."""
    table = {}
    for path, data in files.items():
        table[path] = {"local": path.lstrip("/"), "size": len(data), "payload": encode_payload(data)}
        if modtime is not None:
            table[path]["modtime"] = modtime
    return table


@pytest.fixture
def site(tmp_path):
    """A small asset tree under tmp_path/site."""
    return write_tree(tmp_path / "site", SITE_FILES)


@pytest.fixture
def generate(tmp_path):
    """Pack roots into a module under tmp_path and import it."""
    counter = [0]

    def _generate(roots, **kwargs):
        package = kwargs.pop("package", "main")
        counter[0] += 1
        out = tmp_path / f"generated_assets_{counter[0]}.py"
        bundle = pack([str(r) for r in roots], max_workers=1, **kwargs)
        out.write_text(render_module(bundle, package=package), encoding="utf-8")
        return load_assets(str(out))

    return _generate
