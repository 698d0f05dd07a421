"""Entry point for the spec-kit status MCP server."""

from speckit_status.server import run


if __name__ == "__main__":
    run()
