"""MCP 服务入口 -- python -m intentflow.mcp"""

import asyncio
import sys

from intentflow.core.config import get_db_path
from intentflow.core.logging_config import setup_logging
from intentflow.core.store import create_store_group

from .server import McpServer


async def serve() -> None:
    stores = await create_store_group(get_db_path())
    try:
        await McpServer(stores).serve()
    finally:
        await stores.close()


def main() -> None:
    """MCP 主入口：stdout 专用于协议，日志写 stderr"""
    setup_logging(sys.stderr)
    asyncio.run(serve())


if __name__ == "__main__":
    main()
