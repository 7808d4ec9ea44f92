"""JSON-RPC 2.0 tool surface for MCP clients."""

from reclaim_connector.mcp.server import McpDispatcher, create_mcp_router
from reclaim_connector.mcp.tools import TOOLS, ToolContext, call_tool, list_tools

__all__ = ["TOOLS", "McpDispatcher", "ToolContext", "call_tool", "create_mcp_router", "list_tools"]
