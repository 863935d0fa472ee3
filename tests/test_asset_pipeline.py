"""Tests for AssetPipeline operations: listing, metadata, rename, delete, uploads

Run with pytest from project root:
    pytest tests/test_asset_pipeline.py -v
"""

import pytest

from managers.asset_pipeline import (
    AssetPipeline,
    format_bytes,
    generate_seo_filename,
    validate_new_filename,
)
from managers.config import PipelineConfig
from models.asset import MetadataUpdate, Upload
from models.errors import (
    AlreadyExistsError,
    AssetNotFoundError,
    EmptyPathError,
    PathTraversalError,
    UnsupportedTypeError,
    UploadRejectedError,
)


@pytest.fixture
def uploaded(pipeline, make_image):
    """Upload one PNG as WebP and return its canonical path"""
    batch = pipeline.optimize_uploads([Upload(filename="photo.png", data=make_image((400, 200)))], width=200)
    return batch.results[0].relative_path


class TestHelpers:
    """Tests for filename and size helpers"""

    def test_format_bytes(self):
        """Test human-readable sizes"""
        assert format_bytes(0) == "0 Bytes"
        assert format_bytes(512) == "512 Bytes"
        assert format_bytes(1536) == "1.5 KB"
        assert format_bytes(50 * 1024 * 1024) == "50 MB"

    def test_generate_seo_filename(self):
        """Test titles become lowercase hyphenated stems"""
        assert generate_seo_filename("IMG_001", "My Great  Photo!") == "my-great-photo"
        assert generate_seo_filename("IMG_001", None, "Alt -- text") == "alt-text"
        assert generate_seo_filename("img", None, None) == "img"
        assert len(generate_seo_filename("x", "a" * 300)) == 100

    def test_generate_seo_filename_fallback(self):
        """Test a title with no usable characters falls back to the base name"""
        assert generate_seo_filename("Base_Name", "!!!") == "base-name"

    @pytest.mark.parametrize("name, error", [
        ("", ValueError),
        (None, ValueError),
        ("../x.jpg", PathTraversalError),
        ("dir/x.jpg", PathTraversalError),
        ("dir\\x.jpg", PathTraversalError),
        ("noextension", UnsupportedTypeError),
        ("doc.pdf", UnsupportedTypeError),
        (".jpg", UnsupportedTypeError),
    ])
    def test_validate_new_filename_rejects(self, name, error):
        """Test rename targets must be bare image filenames"""
        with pytest.raises(error):
            validate_new_filename(name)

    def test_validate_new_filename_accepts(self):
        """Test a valid filename is returned trimmed"""
        assert validate_new_filename("  sunset.JPG ") == "sunset.JPG"


class TestListing:
    """Tests for list_assets and export_records"""

    def test_empty(self, pipeline):
        """Test an empty tree lists nothing"""
        assert pipeline.list_assets() == []

    def test_lists_uploaded(self, pipeline, uploaded):
        """Test uploaded derivatives are listed with their records"""
        records = pipeline.list_assets()
        assert [r.relative_path for r in records] == [uploaded]
        assert records[0].width == 200

    def test_missing_records_created_lazily(self, pipeline, config, write_image):
        """Test files dropped in by hand get a record on first listing"""
        write_image(config.optimized_dir / "2024" / "01" / "02" / "manual.png", size=(30, 20))

        records = pipeline.list_assets()
        assert [r.relative_path for r in records] == ["2024/01/02/manual.png"]
        assert records[0].width == 30
        assert pipeline.metadata_store.load("2024/01/02/manual.png") is not None

    def test_unsupported_files_skipped(self, pipeline, config, write_image):
        """Test non-image files under the derivative root are ignored"""
        (config.optimized_dir / "notes.txt").write_text("hello")
        write_image(config.optimized_dir / "a.png")
        assert [r.relative_path for r in pipeline.list_assets()] == ["a.png"]

    def test_export_fallbacks(self, pipeline, uploaded):
        """Test export fills title and alt text from the filename stem"""
        rows = pipeline.export_records()
        assert rows[0]["title"] == "photo"
        assert rows[0]["alt_text"] == "photo"
        assert rows[0]["caption"] == ""

        pipeline.update_metadata(uploaded, MetadataUpdate(title="Sunset"))
        rows = pipeline.export_records()
        assert rows[0]["title"] == "Sunset"
        assert rows[0]["alt_text"] == "Sunset"


class TestMetadata:
    """Tests for get_metadata and update_metadata"""

    def test_get_with_base_prefix(self, pipeline, uploaded):
        """Test prefixed and unprefixed paths return the same record"""
        plain = pipeline.get_metadata(uploaded)
        prefixed = pipeline.get_metadata(f"optimized/{uploaded}")
        assert plain.relative_path == prefixed.relative_path == uploaded

    def test_get_missing(self, pipeline):
        """Test metadata for a missing file raises AssetNotFoundError"""
        with pytest.raises(AssetNotFoundError):
            pipeline.get_metadata("2025/01/01/none.webp")

    def test_get_traversal(self, pipeline):
        """Test traversal is rejected before any lookup"""
        with pytest.raises(PathTraversalError):
            pipeline.get_metadata("../originals/photo.png")

    def test_update_visible_through_cache(self, pipeline, uploaded):
        """Test an update replaces the cached record"""
        pipeline.get_metadata(uploaded)
        pipeline.update_metadata(uploaded, MetadataUpdate(title="New", keywords=["sky"]))

        record = pipeline.get_metadata(uploaded)
        assert record.title == "New"
        assert record.keywords == ["sky"]


class TestReads:
    """Tests for get_thumbnail and resolve_download"""

    def test_thumbnail_default_size(self, pipeline, uploaded):
        """Test a thumbnail is produced with the configured default size"""
        assert pipeline.get_thumbnail(uploaded)[:4] == b"RIFF"

    def test_thumbnail_invalid_size(self, pipeline, uploaded):
        """Test non-positive sizes are rejected"""
        with pytest.raises(ValueError):
            pipeline.get_thumbnail(uploaded, 0)

    def test_thumbnail_missing(self, pipeline):
        """Test a missing source raises AssetNotFoundError"""
        with pytest.raises(AssetNotFoundError):
            pipeline.get_thumbnail("2025/01/01/none.webp")

    def test_download_direct(self, pipeline, config, uploaded):
        """Test a canonical path resolves to its file"""
        assert pipeline.resolve_download(uploaded) == (config.optimized_dir / uploaded).resolve()

    def test_download_by_filename_fallback(self, pipeline, config, uploaded):
        """Test a pre-date-folder link still finds the file by name"""
        found = pipeline.resolve_download("photo.webp")
        assert found == (config.optimized_dir / uploaded).resolve()

    def test_download_missing(self, pipeline):
        """Test an unknown file raises AssetNotFoundError"""
        with pytest.raises(AssetNotFoundError):
            pipeline.resolve_download("nothing.webp")

    def test_download_base_dir(self, pipeline):
        """Test the base directory itself cannot be served"""
        with pytest.raises(EmptyPathError):
            pipeline.resolve_download("optimized/")


class TestRename:
    """Tests for AssetPipeline.rename"""

    def test_rename_moves_file_and_metadata(self, pipeline, config, uploaded):
        """Test rename keeps the bucket and carries metadata over"""
        pipeline.update_metadata(uploaded, MetadataUpdate(title="Kept"))
        bucket = uploaded.rsplit("/", 1)[0]

        new_path = pipeline.rename(uploaded, "renamed.webp")

        assert new_path == f"{bucket}/renamed.webp"
        assert not (config.optimized_dir / uploaded).exists()
        assert (config.optimized_dir / new_path).exists()
        assert pipeline.metadata_store.load(uploaded) is None
        record = pipeline.get_metadata(new_path)
        assert record.title == "Kept"
        assert record.filename == "renamed.webp"

    def test_rename_invalidates_cache(self, pipeline, uploaded):
        """Test cached thumbnails of the old path are dropped"""
        pipeline.get_thumbnail(uploaded, 50)
        pipeline.rename(uploaded, "renamed.webp")
        assert not any(key.startswith(uploaded) for key in pipeline.cache.thumbnails.keys())

    def test_rename_with_seo(self, pipeline, uploaded):
        """Test use_seo derives the name from the title"""
        pipeline.update_metadata(uploaded, MetadataUpdate(title="Golden Hour at the Beach"))
        new_path = pipeline.rename(uploaded, "ignored.webp", use_seo=True)
        assert new_path.endswith("/golden-hour-at-the-beach.webp")

    def test_rename_existing_target(self, pipeline, make_image, uploaded):
        """Test renaming onto an existing file fails and leaves both intact"""
        batch = pipeline.optimize_uploads([Upload(filename="other.png", data=make_image((50, 50)))])
        other = batch.results[0].relative_path

        with pytest.raises(AlreadyExistsError):
            pipeline.rename(uploaded, other.rsplit("/", 1)[1])
        assert pipeline.get_metadata(uploaded).filename == "photo.webp"

    def test_rename_missing(self, pipeline):
        """Test renaming a missing file raises AssetNotFoundError"""
        with pytest.raises(AssetNotFoundError):
            pipeline.rename("2025/01/01/none.webp", "x.webp")

    def test_rename_rejects_directories(self, pipeline, uploaded):
        """Test the new name cannot move the file out of its bucket"""
        with pytest.raises(PathTraversalError):
            pipeline.rename(uploaded, "../escape.webp")


class TestDelete:
    """Tests for delete and bulk_delete"""

    def test_delete(self, pipeline, config, uploaded):
        """Test delete removes the file and record but keeps the original"""
        original = pipeline.get_metadata(uploaded).original_path

        assert pipeline.delete(uploaded) == uploaded
        assert not (config.optimized_dir / uploaded).exists()
        assert pipeline.metadata_store.load(uploaded) is None
        assert (config.originals_dir / original).exists()

    def test_delete_twice(self, pipeline, uploaded):
        """Test deleting a missing file raises AssetNotFoundError"""
        pipeline.delete(uploaded)
        with pytest.raises(AssetNotFoundError):
            pipeline.delete(uploaded)

    def test_bulk_delete_reports_per_item(self, pipeline, uploaded):
        """Test bulk delete continues past failures"""
        result = pipeline.bulk_delete([uploaded, "2025/01/01/none.webp", "../etc/passwd"])

        assert result["deleted"] == [uploaded]
        assert set(result["errors"]) == {"2025/01/01/none.webp", "../etc/passwd"}

    def test_bulk_delete_null_byte_path(self, pipeline, uploaded):
        """Test a path with an embedded null byte is reported, not raised"""
        bad = "2025/10/31/a\x00.webp"
        result = pipeline.bulk_delete([uploaded, bad])

        assert result["deleted"] == [uploaded]
        assert list(result["errors"]) == [bad]
        assert "null byte" in result["errors"][bad]


class TestUploads:
    """Tests for upload validation and URL ingestion"""

    def test_no_files(self, pipeline):
        """Test an empty batch is rejected"""
        with pytest.raises(UploadRejectedError):
            pipeline.optimize_uploads([])

    def test_too_many_files(self, tmp_path, make_image):
        """Test the per-request file limit"""
        config = PipelineConfig(
            base_dir=tmp_path, use_environment=False, use_config_file=False, max_files_per_request=2
        )
        uploads = [Upload(filename=f"{i}.png", data=make_image((10, 10))) for i in range(3)]
        with pytest.raises(UploadRejectedError, match="Too many files"):
            AssetPipeline(config).optimize_uploads(uploads)

    def test_invalid_types_and_sizes_aggregated(self, tmp_path, make_image):
        """Test every invalid file is reported and nothing is written"""
        config = PipelineConfig(
            base_dir=tmp_path, use_environment=False, use_config_file=False, max_file_size=100
        )
        pipeline = AssetPipeline(config)
        uploads = [
            Upload(filename="doc.bmp", data=b"x"),
            Upload(filename="big.png", data=make_image((200, 200), color=(1, 2, 3)) + b"\0" * 200),
            Upload(filename="empty.png", data=b""),
        ]

        with pytest.raises(UploadRejectedError) as exc_info:
            pipeline.optimize_uploads(uploads)

        assert len(exc_info.value.errors) == 3
        assert exc_info.value.errors[0].startswith("doc.bmp:")
        assert pipeline.list_assets() == []

    def test_unknown_format(self, pipeline, make_image):
        """Test an unsupported output format is a ValueError"""
        with pytest.raises(ValueError):
            pipeline.optimize_uploads([Upload(filename="a.png", data=make_image((10, 10)))], format="tiff")

    def test_both_formats(self, pipeline, make_image):
        """Test 'both' produces two listed derivatives"""
        batch = pipeline.optimize_uploads(
            [Upload(filename="pic.png", data=make_image((500, 500)))], width=100, format="both"
        )
        assert sorted(r.format for r in batch.results) == ["jpeg", "webp"]
        assert all(r.width <= 100 for r in batch.results)
        assert len(pipeline.list_assets()) == 2

    def test_optimize_from_url(self, pipeline, make_image, monkeypatch):
        """Test a remote image is fetched and named after the URL path"""
        data = make_image((60, 60))
        monkeypatch.setattr("managers.asset_pipeline.fetch_source_bytes", lambda url: data)

        batch = pipeline.optimize_from_url("https://example.com/img/cat%20photo.png")
        assert batch.results[0].name == "cat photo.webp"

    def test_optimize_from_url_validates_before_fetch(self, pipeline, monkeypatch):
        """Test an unsupported extension is rejected without downloading"""
        def fail_fetch(url):
            raise AssertionError("should not fetch")

        monkeypatch.setattr("managers.asset_pipeline.fetch_source_bytes", fail_fetch)
        with pytest.raises(UnsupportedTypeError):
            pipeline.optimize_from_url("https://example.com/file.pdf")
        with pytest.raises(UnsupportedTypeError):
            pipeline.optimize_from_url("https://example.com/")
