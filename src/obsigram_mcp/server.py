"""
MCP Server for ObsiGram.

Exposes the agent's client-side tools (YouTube transcripts, vault search) as
an MCP server, so they can be mounted into the agent directly.
"""

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from obsigram.config import get_vault_path
from obsigram.tools import TOOL_DEFINITIONS, create_registry, dispatch

# Create MCP server
server = Server("obsigram")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return list(TOOL_DEFINITIONS)


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    registry = create_registry(get_vault_path())
    try:
        result = await dispatch(registry, name, arguments or {})
    except Exception as e:
        return [TextContent(type="text", text=f"Error: {e}")]

    if result is None:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]
    return [TextContent(type="text", text=result)]


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run() -> None:
    """Console-script entry point."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    run()
