"""
Command line entry point.

    marky report.docx              # print Markdown to stdout
    marky report.docx -o report.md # write Markdown to a file
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .config import get_config
from .errors import DocumentIOError, MarkyError
from .marky import new

logger = logging.getLogger(__name__)

CONSOLE_OUTPUT = "console"

OUTPUT_FILE_MODE = 0o644


def write_output(path: str, content: str) -> None:
    """Write ``content`` to ``path`` (created with mode 0644, truncated if it exists)."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OUTPUT_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
    except OSError as e:
        raise DocumentIOError(f"failed to write output file {path}: {e}") from e


def run(input_path: str, output: str = CONSOLE_OUTPUT) -> str:
    """Convert ``input_path`` and deliver the result; returns the Markdown."""
    if not os.path.exists(input_path):
        raise DocumentIOError(f"input file does not exist: {input_path}")

    content = new(get_config()).convert(input_path)

    if output == CONSOLE_OUTPUT:
        sys.stdout.write(content)
        if not content.endswith("\n"):
            sys.stdout.write("\n")
    else:
        write_output(output, content)
        logger.info(f"Content written to {output}")
    return content


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the marky command."""
    parser = argparse.ArgumentParser(
        prog="marky",
        description="Convert CSV, DOCX, EPUB, Excel, HTML, IPYNB, PDF and PPTX files to Markdown",
    )
    parser.add_argument("input", help="Path to the file to convert")
    parser.add_argument(
        "-o",
        "--output",
        default=CONSOLE_OUTPUT,
        help="Output file path, or 'console' to print to stdout (default: console)",
    )

    args = parser.parse_args(argv)

    try:
        run(args.input, args.output)
    except MarkyError as e:
        print(f"failed to convert file: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
