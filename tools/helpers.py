"""Shared helper functions for tool implementations"""

import base64
import binascii
import logging
from typing import Any, Dict, List

from models.asset import Upload
from models.errors import AssetPipelineError, UploadRejectedError

logger = logging.getLogger("MCP_Server")

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


def sanitize_error(error: Exception, development: bool) -> str:
    """Message safe to show a caller.

    Pipeline errors carry caller-facing messages. Anything else is logged in
    full and replaced by a generic message outside development mode.
    """
    if isinstance(error, AssetPipelineError) or development:
        return str(error)
    logger.error(f"Internal error: {error!r}")
    return GENERIC_ERROR_MESSAGE


def error_response(error: Exception, development: bool) -> Dict[str, Any]:
    """Build the {"error", "error_code"} dict returned by tools"""
    if isinstance(error, AssetPipelineError):
        response: Dict[str, Any] = {"error": str(error), "error_code": error.error_code}
        if isinstance(error, UploadRejectedError) and error.errors:
            response["errors"] = error.errors
        return response
    if isinstance(error, ValueError):
        return {"error": str(error), "error_code": "VALIDATION_ERROR"}
    return {"error": sanitize_error(error, development), "error_code": "INTERNAL_ERROR"}


def decode_uploads(files: List[Dict[str, Any]]) -> List[Upload]:
    """Turn [{"filename", "data" (base64)}] payloads into Upload objects.

    Raises:
        UploadRejectedError: If an entry is malformed or not valid base64
    """
    uploads = []
    errors = []
    for index, entry in enumerate(files or []):
        filename = entry.get("filename") if isinstance(entry, dict) else None
        data = entry.get("data") if isinstance(entry, dict) else None
        if not isinstance(filename, str) or not isinstance(data, str):
            errors.append(f"File #{index + 1}: 'filename' and base64 'data' are required.")
            continue

        # Accept data URIs as well as bare base64
        if data.startswith("data:") and "," in data:
            data = data.split(",", 1)[1]
        try:
            uploads.append(Upload(filename=filename, data=base64.b64decode(data, validate=True)))
        except (binascii.Error, ValueError):
            errors.append(f"{filename}: data is not valid base64.")

    if errors:
        raise UploadRejectedError(" ".join(errors), errors=errors)
    return uploads
