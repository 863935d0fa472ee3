"""Shared fixtures for asset pipeline tests"""

from io import BytesIO

import pytest
from PIL import Image

from managers.asset_pipeline import AssetPipeline
from managers.config import PipelineConfig


@pytest.fixture
def make_image():
    """Factory producing encoded image bytes synthesized with Pillow"""

    def _make(size=(500, 500), mode="RGB", fmt="PNG", color=(200, 30, 30)):
        buffer = BytesIO()
        Image.new(mode, size, color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def write_image(make_image):
    """Write a synthesized image to `path` (parents created) and return the path"""

    def _write(path, size=(120, 80), mode="RGB", fmt="PNG", color=(10, 120, 200)):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(make_image(size, mode, fmt, color))
        return path

    return _write


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(base_dir=tmp_path, use_environment=False, use_config_file=False)


@pytest.fixture
def pipeline(config):
    return AssetPipeline(config)
