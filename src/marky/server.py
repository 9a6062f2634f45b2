# Copyright (c) 2025
# This source code is licensed under MIT License.

"""
marky MCP Server

A Model Context Protocol server that converts local documents to Markdown.
Long results are paginated in character chunks so they fit in a tool response.
"""

import logging
import os
import time
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from .cli import CONSOLE_OUTPUT, write_output
from .config import get_config
from .errors import DocumentIOError, MarkyError
from .marky import Marky, new

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("marky")


def apply_pagination(content: str, offset: int, limit: Optional[int]) -> tuple[str, bool]:
    """Apply pagination to content."""
    if offset >= len(content):
        return "", False
    if limit:
        end = min(offset + limit, len(content))
        return content[offset:end], end < len(content)
    return content[offset:], False


async def process_conversion(
    file_path: str,
    marky: Marky,
    output: str = CONSOLE_OUTPUT,
    chunk: Optional[int] = 1,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Convert a document and return one chunk of the Markdown.

    Args:
        file_path: Path to the file
        marky: Dispatcher used for the conversion
        output: 'console' to return the Markdown, or a path to also write it to
        chunk: Chunk number for pagination (1-indexed)
        chunk_size: Number of characters per chunk (default from MARKY_MCP_CHUNK_SIZE)

    Returns:
        Dictionary with the content chunk and pagination info, or an error
    """
    start_time = time.time()

    # Normalize chunk parameters (handle None and invalid values)
    if chunk is None or chunk < 1:
        chunk = 1
    if chunk_size is None or chunk_size < 1:
        chunk_size = get_config().mcp_chunk_size

    try:
        if not os.path.exists(file_path):
            raise DocumentIOError(f"input file does not exist: {file_path}")

        full_content, info = marky.convert_with_info(file_path)

        if output != CONSOLE_OUTPUT:
            write_output(output, full_content)
            logger.info(f"Content written to {output}")

        char_offset = (chunk - 1) * chunk_size
        paginated_content, has_more = apply_pagination(full_content, char_offset, chunk_size)

        total_chars = len(full_content)
        total_chunks = max(1, (total_chars + chunk_size - 1) // chunk_size)
        result_text = paginated_content
        if has_more:
            current_end = char_offset + len(paginated_content)
            result_text += f"\n\n[Chunk {chunk}/{total_chunks}: Characters {char_offset:,}-{current_end:,} of {total_chars:,}. Continue with chunk={chunk + 1}]"

        result = {
            "success": True,
            "content": result_text,
            "mime_type": info.mime_type,
            "has_more": has_more,
            "current_chunk": chunk,
            "total_chunks": total_chunks,
            "total_chars": total_chars,
            "processing_time_ms": int((time.time() - start_time) * 1000),
        }
        if output != CONSOLE_OUTPUT:
            result["output_path"] = output
        return result

    except MarkyError as e:
        logger.error(f"Error converting document: {e}")
        return {
            "success": False,
            "error": str(e),
            "content": f"Error: Failed to convert file: {e}",
        }


@mcp.tool()
async def convert_to_markdown(
    file_path: str,
    output: Optional[str] = CONSOLE_OUTPUT,
    chunk: Optional[int] = 1,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """Convert a local document (CSV, DOCX, EPUB, Excel, HTML, IPYNB, PDF, PPTX) to Markdown.

    USAGE STRATEGY:
    - The format is detected from the file content and extension
    - For large documents: read chunk=1 first, then follow the "Continue with chunk=N" hint
    - Pass an output path to also save the full Markdown to disk

    Args:
        file_path: The path to the document to convert
        output: 'console' to only return the Markdown, or a file path to also write it to. Default: 'console'.
        chunk: Chunk number for pagination (1-indexed). Default: 1.
        chunk_size: Number of characters per chunk. Default: 10000.

    Returns:
        A dictionary containing the Markdown chunk, detected MIME type and pagination info, or an error message.
    """
    return await process_conversion(
        file_path=file_path,
        marky=new(get_config()),
        output=output or CONSOLE_OUTPUT,
        chunk=chunk,
        chunk_size=chunk_size,
    )


def describe_formats(marky: Marky) -> Dict[str, Any]:
    formats = {}
    for converter in marky.converters:
        formats[converter.name] = {
            "extensions": list(converter.accepted_extensions),
            "mime_types": list(converter.accepted_mime_types),
            "partial_failure_tolerant": converter.partial_failure_tolerant,
        }
    return formats


@mcp.tool()
async def get_supported_formats() -> Dict[str, Any]:
    """Get a list of all supported file formats.

    Returns:
        A dictionary listing each converter with its extensions and MIME types.
    """
    return {
        "success": True,
        "formats": describe_formats(new(get_config())),
    }


def main():
    """Main entry point for running MCP server."""
    import argparse

    parser = argparse.ArgumentParser(description="marky MCP Server - convert documents to Markdown")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport method: 'stdio' or 'http' (default: stdio)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port to use when running with HTTP transport (default: 8080)",
    )
    parser.add_argument(
        "--path",
        type=str,
        default="/mcp",
        help="URL path to use when running with HTTP transport (default: /mcp)",
    )

    args = parser.parse_args()

    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="streamable-http", port=args.port, path=args.path)


if __name__ == "__main__":
    main()
