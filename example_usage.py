# Example usage of the marky MCP server

from mcp import StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp import ClientSession
import asyncio


async def main():
    """Example of using the marky MCP server."""

    # Configure to MCP server
    server_params = StdioServerParameters(
        command="python",
        args=["-m", "marky.server"],
    )

    print("=" * 50)
    print("marky MCP Server Example")
    print("=" * 50)

    async with stdio_client(server_params) as (read, write):
        async with ClientSession(read, write) as session:
            # Initialize to session
            await session.initialize()
            print("\nConnected to marky server\n")

            # List available tools
            tools = await session.list_tools()
            print(f"\nAvailable tools: {len(tools.tools)}")
            for tool in tools.tools:
                print(f"   - {tool.name}")

            # Example 1: Convert a Word document
            print("\n" + "-" * 50)
            print("Example 1: Convert DOCX")
            print("-" * 50)

            word_result = await session.call_tool(
                "convert_to_markdown",
                arguments={"file_path": "/path/to/document.docx"}
            )
            print(f"\nResult: {word_result.content[-1].text[:200]}...\n")

            # Example 2: Read a large deck chunk by chunk
            print("\n" + "-" * 50)
            print("Example 2: Convert PPTX, second chunk")
            print("-" * 50)

            deck_result = await session.call_tool(
                "convert_to_markdown",
                arguments={"file_path": "/path/to/slides.pptx", "chunk": 2, "chunk_size": 5000}
            )
            print(f"\nResult: {deck_result.content[-1].text[:200]}...\n")

            # Example 3: Save the Markdown next to the source
            print("\n" + "-" * 50)
            print("Example 3: Convert EPUB to a file")
            print("-" * 50)

            book_result = await session.call_tool(
                "convert_to_markdown",
                arguments={"file_path": "/path/to/book.epub", "output": "/path/to/book.md"}
            )
            print(f"\nResult: {book_result.content[-1].text[:200]}...\n")

            # Example 4: Get supported formats
            print("\n" + "-" * 50)
            print("Example 4: Get Supported Formats")
            print("-" * 50)

            formats = await session.call_tool(
                "get_supported_formats",
                arguments={}
            )
            print(f"\nSupported formats info:\n{formats.content[-1].text}")


if __name__ == "__main__":
    asyncio.run(main())
