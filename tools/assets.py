"""Asset management tools: listing, metadata, thumbnails, rename and delete"""

import logging
from typing import List, Optional

from mcp.server.fastmcp import FastMCP, Image as FastMCPImage

from asset_processor import mime_type_for
from managers.asset_pipeline import AssetPipeline
from models.asset import MetadataUpdate
from models.errors import AssetNotFoundError, ThumbnailError
from tools.helpers import error_response

logger = logging.getLogger("MCP_Server")


def register_asset_tools(
    mcp: FastMCP,
    pipeline: AssetPipeline
):
    """Register asset management tools with the MCP server"""
    development = pipeline.config.is_development

    @mcp.tool()
    def list_images() -> dict:
        """List every optimized image with its metadata record.

        Records missing on disk (e.g. files dropped in by hand) are created
        from the image's technical attributes on first listing.
        """
        try:
            records = pipeline.list_assets()
            return {
                "success": True,
                "images": [record.to_dict() for record in records],
                "count": len(records),
            }
        except Exception as e:
            logger.exception("Error listing images")
            return error_response(e, development)

    @mcp.tool()
    def get_image_metadata(path: str) -> dict:
        """Get the metadata record of one image.

        Args:
            path: Image path relative to the optimized directory
                (e.g. "2025/10/31/photo.webp"; an "optimized/" prefix is accepted)
        """
        try:
            return {"success": True, "metadata": pipeline.get_metadata(path).to_dict()}
        except Exception as e:
            if not isinstance(e, (ValueError, AssetNotFoundError)):
                logger.exception(f"Error getting metadata for {path}")
            return error_response(e, development)

    @mcp.tool()
    def update_image_metadata(
        path: str,
        title: Optional[str] = None,
        alt_text: Optional[str] = None,
        caption: Optional[str] = None,
        description: Optional[str] = None,
        keywords: Optional[List[str]] = None
    ) -> dict:
        """Update SEO metadata of one image.

        Only the fields you pass are changed; pass an empty string or empty
        list to clear a field. Title and alt text are capped at 200 characters,
        caption at 500, description at 1000, and keywords at 20 entries of 50
        characters each.
        """
        update = MetadataUpdate.from_dict({
            "title": title,
            "alt_text": alt_text,
            "caption": caption,
            "description": description,
            "keywords": keywords,
        })
        if update.is_empty():
            return {"error": "No metadata fields provided", "error_code": "VALIDATION_ERROR"}
        try:
            return {"success": True, "metadata": pipeline.update_metadata(path, update).to_dict()}
        except Exception as e:
            if not isinstance(e, (ValueError, AssetNotFoundError)):
                logger.exception(f"Error updating metadata for {path}")
            return error_response(e, development)

    @mcp.tool()
    def get_thumbnail(path: str, size: Optional[int] = None):
        """View a WebP thumbnail of an image inline.

        Args:
            path: Image path relative to the optimized directory
            size: Thumbnail width in pixels (default 400, never upscaled)
        """
        try:
            thumbnail = pipeline.get_thumbnail(path, size)
            return FastMCPImage(data=thumbnail, format="webp")
        except AssetNotFoundError as e:
            logger.warning(f"Image not found for thumbnail: {path}")
            return error_response(e, development)
        except ThumbnailError as e:
            logger.error(f"Thumbnail generation failed for {path}: {e}")
            return error_response(e, development)
        except Exception as e:
            if not isinstance(e, ValueError):
                logger.exception(f"Error generating preview for {path}")
            return error_response(e, development)

    @mcp.tool()
    def resolve_download(path: str) -> dict:
        """Resolve an image path to the absolute file to serve.

        If the path names no file, the optimized directory is searched for a
        file with the same name (for links created before date folders).
        """
        try:
            file_path = pipeline.resolve_download(path)
            return {
                "success": True,
                "file_path": str(file_path),
                "filename": file_path.name,
                "mime_type": mime_type_for(file_path),
            }
        except Exception as e:
            if not isinstance(e, (ValueError, AssetNotFoundError)):
                logger.exception(f"Error serving file {path}")
            return error_response(e, development)

    @mcp.tool()
    def rename_image(path: str, new_filename: str, use_seo: bool = False) -> dict:
        """Rename an image within its date folder.

        Args:
            path: Current image path relative to the optimized directory
            new_filename: New filename with an image extension (no folders)
            use_seo: Derive the name from the image's title or alt text instead
        """
        try:
            new_path = pipeline.rename(path, new_filename, use_seo=use_seo)
            return {"success": True, "new_path": new_path}
        except Exception as e:
            if not isinstance(e, (ValueError, OSError)):
                logger.exception(f"Error renaming image {path}")
            return error_response(e, development)

    @mcp.tool()
    def delete_image(path: str) -> dict:
        """Delete an optimized image together with its metadata."""
        try:
            return {"success": True, "deleted": pipeline.delete(path)}
        except Exception as e:
            if not isinstance(e, (ValueError, AssetNotFoundError)):
                logger.exception(f"Error deleting image {path}")
            return error_response(e, development)

    @mcp.tool()
    def bulk_delete_images(paths: List[str]) -> dict:
        """Delete several images. Failures are reported per path."""
        try:
            result = pipeline.bulk_delete(paths)
            return {"success": not result["errors"], **result}
        except Exception as e:
            logger.exception("Error in bulk delete")
            return error_response(e, development)

    @mcp.tool()
    def export_images() -> dict:
        """Export metadata rows for every image (title, alt text, caption,
        description, keywords, dimensions, size) ready for CSV formatting.
        """
        try:
            rows = pipeline.export_records()
            return {"success": True, "images": rows, "count": len(rows)}
        except Exception as e:
            logger.exception("Error exporting images")
            return error_response(e, development)

    @mcp.tool()
    def get_cache_stats() -> dict:
        """Thumbnail and metadata cache occupancy and hit rates."""
        return pipeline.cache.stats()
