"""Upload tools: transcode images into optimized derivatives"""

import logging
from typing import Any, Dict, List, Optional

import requests
from mcp.server.fastmcp import FastMCP

from managers.asset_pipeline import AssetPipeline
from models.asset import BatchResult
from tools.helpers import decode_uploads, error_response

logger = logging.getLogger("MCP_Server")


def _batch_response(batch: BatchResult) -> Dict[str, Any]:
    if not batch.results:
        return {
            "success": False,
            "error": " ".join(batch.errors) if batch.errors else "Failed to process all files",
            "error_code": "TRANSCODE_FAILED",
        }

    response: Dict[str, Any] = {
        "success": True,
        "results": [result.to_dict() for result in batch.results],
    }
    if batch.errors:
        response["warnings"] = batch.errors
    return response


def register_optimize_tools(
    mcp: FastMCP,
    pipeline: AssetPipeline
):
    """Register upload/optimize tools with the MCP server"""
    development = pipeline.config.is_development

    @mcp.tool()
    def optimize_images(
        files: List[Dict[str, str]],
        width: Optional[int] = None,
        quality: Optional[int] = None,
        format: Optional[str] = None
    ) -> dict:
        """Optimize uploaded images into JPEG and/or WebP derivatives.

        Originals are archived under originals/YYYY/MM/DD and derivatives are
        written to optimized/YYYY/MM/DD. Files are processed independently:
        one failing file is reported in "warnings" without cancelling others.

        Args:
            files: List of {"filename": "photo.png", "data": "<base64>"}
            width: Target width (default 1600, 0 keeps native size, never upscales)
            quality: Encoder quality 1-100 (default 85)
            format: "webp" (default), "jpeg" or "both"

        Returns:
            Dict with per-derivative results (paths, sizes, savings; savings may
            be negative) and per-file warnings.
        """
        try:
            uploads = decode_uploads(files)
            batch = pipeline.optimize_uploads(uploads, width=width, quality=quality, format=format)
            return _batch_response(batch)
        except Exception as e:
            if not isinstance(e, ValueError):
                logger.exception("Optimization error")
            return error_response(e, development)

    @mcp.tool()
    def optimize_from_url(
        url: str,
        filename: Optional[str] = None,
        width: Optional[int] = None,
        quality: Optional[int] = None,
        format: Optional[str] = None
    ) -> dict:
        """Download an image and optimize it like an upload.

        Args:
            url: http(s) URL of the source image
            filename: Name to archive it under (default: last URL path segment)
        """
        if not url.startswith(("http://", "https://")):
            return {"error": "Only http(s) URLs are supported", "error_code": "VALIDATION_ERROR"}
        try:
            batch = pipeline.optimize_from_url(url, filename, width=width, quality=quality, format=format)
            return _batch_response(batch)
        except requests.RequestException as e:
            return {"error": f"Failed to fetch {url}: {e}", "error_code": "FETCH_FAILED"}
        except Exception as e:
            if not isinstance(e, ValueError):
                logger.exception(f"Optimization error for {url}")
            return error_response(e, development)
