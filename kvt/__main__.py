"""Command line tools for KVT archives.

Usage: python -m kvt {show,keys,convert,check} ...
"""

import argparse
import logging
import sys
from typing import Optional

from .archive import DEFAULT_INDENT_SIZE, dump, load
from .errors import KVTError, MissingChildError
from .text_archive import stringify


def _select(tree, name: Optional[str]):
    if name is None:
        return tree
    node = tree.get_node(name)
    if node is None:
        raise MissingChildError(name)
    return node


def cmd_show(args) -> int:
    tree = load(args.filename)
    print(stringify(tree, None if args.compact else args.indent))
    return 0


def cmd_keys(args) -> int:
    tree = _select(load(args.filename), args.name)
    for key in tree.get_keys():
        print(f"  {key}: {tree.get_type(key).name}")
    return 0


def cmd_convert(args) -> int:
    tree = load(args.source)
    dump(tree, args.dest, None if args.compact else args.indent)
    print(f"Wrote {args.dest}")
    return 0


def cmd_check(args) -> int:
    tree = load(args.filename)
    print(f"{args.filename}: OK ({len(tree)} top-level entries)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect and convert KVT text (.kvt) and binary (.kvtb) archives",
        prog="python -m kvt",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s show settings.kvt                 # Pretty-print a tree
  %(prog)s show data.kvtb --compact          # One-line text of a binary file
  %(prog)s keys settings.kvt                 # List top-level keys and types
  %(prog)s keys settings.kvt graphics        # List keys of a child branch
  %(prog)s convert settings.kvt data.kvtb    # Text to binary
  %(prog)s check data.kvtb                   # Validate a file
""",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print a tree as text")
    show.add_argument("filename", help="Archive file (.kvt or .kvtb)")
    show.add_argument(
        "--indent",
        type=int,
        default=DEFAULT_INDENT_SIZE,
        help=f"Spaces per nesting level (default: {DEFAULT_INDENT_SIZE})",
    )
    show.add_argument("--compact", action="store_true", help="Print on a single line")
    show.set_defaults(func=cmd_show)

    keys = sub.add_parser("keys", help="List keys and their types")
    keys.add_argument("filename", help="Archive file (.kvt or .kvtb)")
    keys.add_argument("name", nargs="?", help="Child branch to list (default: root)")
    keys.set_defaults(func=cmd_keys)

    convert = sub.add_parser("convert", help="Convert between formats, chosen by extension")
    convert.add_argument("source", help="Input archive")
    convert.add_argument("dest", help="Output archive")
    convert.add_argument(
        "--indent",
        type=int,
        default=DEFAULT_INDENT_SIZE,
        help=f"Spaces per nesting level for text output (default: {DEFAULT_INDENT_SIZE})",
    )
    convert.add_argument("--compact", action="store_true", help="Write text output on a single line")
    convert.set_defaults(func=cmd_convert)

    check = sub.add_parser("check", help="Parse or decode a file and report errors")
    check.add_argument("filename", help="Archive file (.kvt or .kvtb)")
    check.set_defaults(func=cmd_check)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except FileNotFoundError as e:
        print(f"Error: file not found: {e.filename}")
        return 1
    except KVTError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
