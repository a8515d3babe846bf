"""Command line entry point: signcheck <binary-file>."""

import argparse
import json
import logging
import os
import sys

from .errors import SignCheckError
from .probe import check_signature

EXIT_SIGNED = 0
EXIT_UNSIGNED = 1
EXIT_ERROR = 2


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="signcheck",
        description="Report whether a PE, Mach-O or universal binary carries a code signature.",
    )
    parser.add_argument("file", help="Path to the binary file to check")
    parser.add_argument(
        "-j", "--json", action="store_true", help="Output the result in JSON format"
    )
    parser.add_argument(
        "--strict", action="store_true",
        help="Report a corrupted container as an error instead of trying the next format",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print debug messages to stderr"
    )
    return parser.parse_args(argv)

def main(argv=None):
    """Run the checker and return 0 if signed, 1 if unsigned, 2 on error."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s - %(message)s",
    )

    file_path = args.file
    try:
        file_size = os.stat(file_path).st_size
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not args.json:
        print(f"File: {file_path}")
        print(f"Size: {file_size} bytes")

    try:
        result = check_signature(file_path, strict=args.strict)
    except (SignCheckError, OSError) as e:
        print(f"Error checking signature: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.json:
        print(json.dumps({
            "file": file_path,
            "size": file_size,
            "type": result.format.value,
            "signed": result.signed,
            "architectures": list(result.architectures),
        }, indent=2))
    else:
        print(f"Type: {result.format.value}")
        print(f"Signed: {'Yes' if result.signed else 'No'}")

    return EXIT_SIGNED if result.signed else EXIT_UNSIGNED


if __name__ == "__main__":
    sys.exit(main())
