import argparse
import importlib.util
import os
import sys
from types import ModuleType

from fastapi import FastAPI, HTTPException, Request

from assetfs.served import get_asset_response

parser = argparse.ArgumentParser(description="Serve a generated assetfs module over HTTP.")
parser.add_argument("--port", type=int, default=8000)
parser.add_argument("--host", type=str, default="0.0.0.0")
parser.add_argument("--assets", type=str, default="assets.py",
                    help="Path to a module generated by assetfs (default: assets.py)")
parser.add_argument("--local", action="store_true",
                    help="Serve the original files from disk instead of the embedded copies")
parser.add_argument("--base", type=str, default=None,
                    help="Only serve the subtree under this asset directory (e.g. /static)")


def load_assets(path: str) -> ModuleType:
    """Import a generated asset module from a file path."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Asset module not found: {path}")
    name = os.path.splitext(os.path.basename(path))[0]
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def create_app(assets: ModuleType, use_local: bool = False, base: str = None) -> FastAPI:
    """Build an app serving every file of a generated asset module."""
    fs = assets.dir_fs(use_local, base) if base else assets.fs(use_local)
    app = FastAPI()

    @app.get("/{path:path}")
    async def serve_asset(request: Request, path: str):
        if response := await get_asset_response(fs, path, request):
            return response
        raise HTTPException(status_code=404, detail="File not found")

    return app


def start_server(app: FastAPI, host: str, port: int):
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    args = parser.parse_args()

    try:
        assets = load_assets(args.assets)
    except (OSError, SyntaxError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    mode = 'local' if args.local else 'embedded'
    print(f"Loaded {args.assets} ({len(assets.registry)} entries, package {assets.PACKAGE})")
    print(f"Starting server on http://localhost:{args.port} ({mode})")
    if args.base:
        print(f"base: {args.base}")

    start_server(create_app(assets, use_local=args.local, base=args.base), args.host, args.port)
