"""Command line interface: pack files into a generated Python module."""

import argparse
import sys
from typing import List, Optional

from assetfs.emitter import render_module, write_output
from assetfs.packer import PackError, compile_ignore, pack


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assetfs",
        description="Embed files into a Python module with a read-only filesystem interface to them.",
    )
    parser.add_argument("roots", nargs="*", metavar="name",
                        help="Files, or directories to add recursively")
    parser.add_argument("-o", dest="output", default=None,
                        help="Output file, else stdout")
    parser.add_argument("-pkg", "--pkg", dest="package", default="main",
                        help="Package name recorded in the generated module (default: main)")
    parser.add_argument("-prefix", "--prefix", dest="prefix", default="",
                        help="Prefix to strip from file names")
    parser.add_argument("-ignore", "--ignore", dest="ignore", default="",
                        help="Regexp for files to ignore (for example \\.DS_Store)")
    parser.add_argument("-modtime", "--modtime", dest="modtime", type=int, default=None,
                        help="Unix time to record as the modification time of every entry")
    parser.add_argument("-workers", "--workers", dest="workers", type=int, default=None,
                        help="Number of parallel compression workers (default: CPU count)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        ignore = compile_ignore(args.ignore)
        bundle = pack(
            args.roots,
            prefix=args.prefix,
            ignore=ignore,
            modtime=args.modtime,
            max_workers=args.workers,
        )
        write_output(render_module(bundle, package=args.package), args.output)
    except PackError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
