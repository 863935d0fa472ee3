"""Configuration tools for the asset pipeline server"""

from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from managers.config import DEFAULTS, PipelineConfig, save_pipeline_config


def register_configuration_tools(
    mcp: FastMCP,
    config: PipelineConfig
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def get_pipeline_config() -> dict:
        """Get the effective pipeline settings.

        Shows the merged result of explicit settings, environment variables,
        the persistent config file and hardcoded defaults, plus the path of
        the config file.
        """
        return config.to_dict()

    @mcp.tool()
    def save_pipeline_settings(settings: Dict[str, Any]) -> dict:
        """Persist pipeline settings to the config file.

        Saved settings apply on the next server start; environment variables
        still take precedence over them.

        Args:
            settings: e.g. {"max_file_size": 20971520, "cache_ttl": 600}

        Returns:
            Success status, or the unknown/invalid setting names.
        """
        unknown = sorted(set(settings) - set(DEFAULTS))
        if unknown:
            return {"error": f"Unknown settings: {unknown}", "error_code": "VALIDATION_ERROR"}

        try:
            # Validate by building a config from the candidate values alone
            PipelineConfig(
                base_dir=config.base_dir,
                use_environment=False,
                use_config_file=False,
                **settings
            )
        except ValueError as e:
            return {"error": str(e), "error_code": "VALIDATION_ERROR"}

        if not save_pipeline_config(settings):
            return {"error": "Failed to write config file", "error_code": "PERSIST_FAILED"}
        return {"success": True, "saved": settings, "restart_required": True}
