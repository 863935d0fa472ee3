"""Tests for the MCP tool layer and its error helpers"""

import base64

import pytest
from mcp.server.fastmcp import Image as FastMCPImage

from models.errors import AssetNotFoundError, PathTraversalError, UploadRejectedError
from tools.assets import register_asset_tools
from tools.configuration import register_configuration_tools
from tools.helpers import GENERIC_ERROR_MESSAGE, decode_uploads, error_response, sanitize_error
from tools.optimize import register_optimize_tools


class RecordingMCP:
    """Collects functions registered with @mcp.tool()"""

    def __init__(self):
        self.tools = {}

    def tool(self):
        def decorator(fn):
            self.tools[fn.__name__] = fn
            return fn
        return decorator


@pytest.fixture
def tools(pipeline, config):
    mcp = RecordingMCP()
    register_asset_tools(mcp, pipeline)
    register_optimize_tools(mcp, pipeline)
    register_configuration_tools(mcp, config)
    return mcp.tools


def _payload(filename, data):
    return {"filename": filename, "data": base64.b64encode(data).decode("ascii")}


class TestHelpers:
    """Tests for sanitize_error, error_response and decode_uploads"""

    def test_sanitize_unexpected_error_in_production(self):
        """Test internal errors are hidden outside development"""
        assert sanitize_error(RuntimeError("db password wrong"), development=False) == GENERIC_ERROR_MESSAGE

    def test_sanitize_in_development(self):
        """Test internal errors are shown in development"""
        assert sanitize_error(RuntimeError("boom"), development=True) == "boom"

    def test_pipeline_errors_always_shown(self):
        """Test pipeline errors carry caller-facing messages"""
        assert sanitize_error(AssetNotFoundError("File not found"), development=False) == "File not found"

    def test_error_response_codes(self):
        """Test error codes by error kind"""
        assert error_response(PathTraversalError("bad"), False)["error_code"] == "PATH_TRAVERSAL_DETECTED"
        assert error_response(ValueError("bad"), False)["error_code"] == "VALIDATION_ERROR"
        assert error_response(RuntimeError("bad"), False) == {
            "error": GENERIC_ERROR_MESSAGE,
            "error_code": "INTERNAL_ERROR",
        }

    def test_error_response_lists_upload_errors(self):
        """Test per-file messages are included for rejected uploads"""
        response = error_response(UploadRejectedError("a b", errors=["a", "b"]), False)
        assert response["errors"] == ["a", "b"]

    def test_decode_uploads(self):
        """Test base64 and data URI payloads decode"""
        uploads = decode_uploads([
            _payload("a.png", b"abc"),
            {"filename": "b.png", "data": "data:image/png;base64," + base64.b64encode(b"xyz").decode()},
        ])
        assert [(u.filename, u.data) for u in uploads] == [("a.png", b"abc"), ("b.png", b"xyz")]

    def test_decode_uploads_invalid(self):
        """Test malformed entries are all reported"""
        with pytest.raises(UploadRejectedError) as exc_info:
            decode_uploads([{"filename": "a.png"}, {"filename": "b.png", "data": "!!notbase64!!"}])
        assert len(exc_info.value.errors) == 2


class TestAssetTools:
    """Tests for asset management tools"""

    def test_list_images_empty(self, tools):
        """Test listing an empty tree"""
        assert tools["list_images"]() == {"success": True, "images": [], "count": 0}

    def test_optimize_then_manage(self, tools, make_image):
        """Test upload, metadata update, thumbnail, rename and delete end to end"""
        result = tools["optimize_images"]([_payload("photo.png", make_image((300, 150)))], width=150)
        assert result["success"] is True
        path = result["results"][0]["relative_path"]

        updated = tools["update_image_metadata"](path, title="Sunset", keywords=["sky"])
        assert updated["metadata"]["title"] == "Sunset"

        thumbnail = tools["get_thumbnail"](path, 64)
        assert isinstance(thumbnail, FastMCPImage)

        renamed = tools["rename_image"](path, "sunset.webp")
        assert renamed["new_path"].endswith("/sunset.webp")

        download = tools["resolve_download"](renamed["new_path"])
        assert download["mime_type"] == "image/webp"
        assert download["filename"] == "sunset.webp"

        assert tools["update_image_metadata"](renamed["new_path"])["error_code"] == "VALIDATION_ERROR"
        assert tools["delete_image"](renamed["new_path"])["deleted"] == renamed["new_path"]
        assert tools["list_images"]()["count"] == 0

    def test_errors_returned_as_dicts(self, tools):
        """Test failures surface as error dicts with codes"""
        assert tools["get_image_metadata"]("../etc/passwd")["error_code"] == "PATH_TRAVERSAL_DETECTED"
        assert tools["get_thumbnail"]("2025/01/01/none.webp")["error_code"] == "NOT_FOUND"
        assert tools["resolve_download"]("optimized")["error_code"] == "EMPTY_PATH"
        assert tools["rename_image"]("2025/01/01/none.webp", "x.webp")["error_code"] == "NOT_FOUND"

    def test_bulk_delete(self, tools):
        """Test bulk delete reports failures without raising"""
        result = tools["bulk_delete_images"](["2025/01/01/none.webp"])
        assert result["success"] is False
        assert result["deleted"] == []

    def test_bulk_delete_null_byte(self, tools):
        """Test a null byte in one path still returns a per-path report"""
        result = tools["bulk_delete_images"](["2025/01/01/a\x00.webp", "2025/01/01/none.webp"])
        assert result["success"] is False
        assert set(result["errors"]) == {"2025/01/01/a\x00.webp", "2025/01/01/none.webp"}

    def test_cache_stats(self, tools):
        """Test cache statistics are exposed"""
        assert "thumbnails" in tools["get_cache_stats"]()


class TestOptimizeTools:
    """Tests for upload tools"""

    def test_rejected_upload(self, tools):
        """Test validation failures list every file"""
        result = tools["optimize_images"]([_payload("doc.bmp", b"x")])
        assert result["error_code"] == "UPLOAD_REJECTED"
        assert result["errors"][0].startswith("doc.bmp:")

    def test_all_files_failed(self, tools):
        """Test a batch where nothing could be transcoded is a failure"""
        result = tools["optimize_images"]([_payload("bad.png", b"garbage")])
        assert result["success"] is False
        assert result["error_code"] == "TRANSCODE_FAILED"

    def test_url_scheme_checked(self, tools):
        """Test only http(s) sources are fetched"""
        assert tools["optimize_from_url"]("file:///etc/passwd")["error_code"] == "VALIDATION_ERROR"


class TestConfigurationTools:
    """Tests for configuration tools"""

    def test_get_pipeline_config(self, tools, config):
        """Test effective settings are reported"""
        assert tools["get_pipeline_config"]()["max_file_size"] == config.max_file_size

    def test_save_rejects_unknown(self, tools):
        """Test unknown setting names are rejected"""
        assert tools["save_pipeline_settings"]({"colour": "red"})["error_code"] == "VALIDATION_ERROR"

    def test_save_rejects_invalid(self, tools):
        """Test invalid values are rejected before anything is written"""
        assert tools["save_pipeline_settings"]({"cache_ttl": -1})["error_code"] == "VALIDATION_ERROR"

    def test_save_persists(self, tools, tmp_path, monkeypatch):
        """Test valid settings are written to the config file"""
        monkeypatch.setattr("managers.config.get_config_dir", lambda: tmp_path / "cfg")
        result = tools["save_pipeline_settings"]({"cache_ttl": 120})
        assert result["success"] is True
        assert (tmp_path / "cfg" / "pipeline_config.json").exists()
