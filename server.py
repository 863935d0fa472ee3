import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from managers.asset_pipeline import AssetPipeline
from managers.config import PipelineConfig
from tools.assets import register_asset_tools
from tools.configuration import register_configuration_tools
from tools.optimize import register_optimize_tools

config = PipelineConfig()

# Configure logging
logging.basicConfig(level=config.log_level)
logger = logging.getLogger("MCP_Server")

pipeline = AssetPipeline(config)


# Define application context
class AppContext:
    def __init__(self, pipeline: AssetPipeline):
        self.pipeline = pipeline


# Lifespan management
@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle"""
    logger.info("Starting MCP server lifecycle...")
    logger.info(f"Environment: {config.environment}, optimized dir: {config.optimized_dir}")
    try:
        yield AppContext(pipeline=pipeline)
    finally:
        stats = pipeline.cache.stats()
        pipeline.cache.clear()
        logger.info(f"Shutting down MCP server (cache stats: {stats})")


# Initialize FastMCP with lifespan
mcp = FastMCP("Asset_Pipeline_MCP_Server", lifespan=app_lifespan)

register_asset_tools(mcp, pipeline)
register_optimize_tools(mcp, pipeline)
register_configuration_tools(mcp, config)

if __name__ == "__main__":
    mcp.run(transport="streamable-http")
