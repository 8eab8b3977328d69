"""
Tests for image models and codecs.

Tests cover:
- Photo creation and display raster derivation
- Loading photos from disk
- JPEG photo / PNG mask encoding
- Decoding bytes, base64 and data URLs
- Saving results
"""

import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from ZR_Libs.ImageEditingLib.image_codec import decode_image, encode_mask, encode_photo, save_image
from ZR_Libs.ImageEditingLib.image_models import Photo, derive_display_image, load_photo


class TestPhoto:
    """Test the Photo model."""

    def test_from_image_copies_and_converts(self):
        """Test that the source image is copied into RGB."""
        source = Image.new("RGBA", (40, 20), (1, 2, 3, 255))
        photo = Photo.from_image(source)

        assert photo.image is not source
        assert photo.image.mode == "RGB"
        assert photo.size == (40, 20)

    def test_display_downscaled_for_large_photo(self):
        """Test that the display raster is bounded while the photo is not."""
        photo = Photo.from_image(Image.new("RGB", (3072, 1536)))

        assert photo.size == (3072, 1536)
        assert photo.display.size == (1536, 768)

    def test_display_is_separate_copy_for_small_photo(self):
        """Test that the display raster is never the full image object."""
        photo = Photo.from_image(Image.new("RGB", (30, 30)))
        assert photo.display is not photo.image
        assert photo.display.size == photo.size

    def test_zero_size_rejected(self):
        """Test that an empty raster is not a photo."""
        with pytest.raises(ValueError):
            Photo.from_image(Image.new("RGB", (0, 10)))

    def test_derive_display_invalid_max_side(self):
        """Test that max_side must be positive."""
        with pytest.raises(ValueError):
            derive_display_image(Image.new("RGB", (10, 10)), max_side=0)

    def test_load_photo(self, tmp_path):
        """Test loading a photo from disk."""
        path = tmp_path / "room.png"
        Image.new("RGB", (25, 15), (200, 10, 10)).save(path)

        photo = load_photo(path)
        assert photo.size == (25, 15)
        assert photo.path == path

    def test_load_photo_unsupported_extension(self, tmp_path):
        """Test that unknown file types are refused."""
        with pytest.raises(ValueError):
            load_photo(tmp_path / "notes.txt")


class TestCodec:
    """Test encoding and decoding."""

    def test_encode_photo_is_jpeg(self):
        """Test that photos travel as JPEG."""
        data = encode_photo(Image.new("RGBA", (20, 20), (10, 200, 30, 255)))
        with Image.open(io.BytesIO(data)) as decoded:
            assert decoded.format == "JPEG"
            assert decoded.size == (20, 20)

    def test_encode_mask_is_lossless_png(self):
        """Test that masks travel as PNG with exact values."""
        mask = Image.new("L", (16, 16), 0)
        mask.paste(255, (0, 0, 8, 16))
        data = encode_mask(mask)

        with Image.open(io.BytesIO(data)) as decoded:
            assert decoded.format == "PNG"
            assert decoded.mode == "L"
            assert decoded.tobytes() == mask.tobytes()

    def test_decode_raw_bytes(self):
        """Test decoding raw PNG bytes into RGB."""
        buffer = io.BytesIO()
        Image.new("RGBA", (5, 4), (9, 8, 7, 255)).save(buffer, format="PNG")

        image = decode_image(buffer.getvalue())
        assert image.mode == "RGB"
        assert image.size == (5, 4)
        assert image.getpixel((0, 0)) == (9, 8, 7)

    def test_decode_base64_and_data_url(self):
        """Test decoding base64 text with and without a data URL prefix."""
        buffer = io.BytesIO()
        Image.new("RGB", (3, 3), (1, 2, 3)).save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")

        assert decode_image(encoded).size == (3, 3)
        assert decode_image(f"data:image/png;base64,{encoded}").size == (3, 3)

    @pytest.mark.parametrize("payload", [b"", b"not an image", "%%%not-base64%%%"])
    def test_decode_rejects_bad_payload(self, payload):
        """Test that undecodable payloads raise ValueError."""
        with pytest.raises(ValueError):
            decode_image(payload)

    def test_save_image(self, tmp_path):
        """Test that results are written with the output prefix."""
        saved = save_image(Image.new("RGB", (4, 4)), tmp_path, "living_room.jpg")

        assert saved == tmp_path / "retouched_living_room.png"
        assert saved.exists()

    def test_save_image_missing_directory(self, tmp_path):
        """Test that a missing output directory is an OSError."""
        with pytest.raises(OSError):
            save_image(Image.new("RGB", (4, 4)), tmp_path / "missing", "a.png")

    def test_save_image_path_is_file(self, tmp_path):
        """Test that a file path is not accepted as a directory."""
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(OSError):
            save_image(Image.new("RGB", (4, 4)), Path(target), "a.png")


class TestPackageExports:
    """Test the ImageEditingLib public names."""

    def test_exports_resolve(self):
        """Test that every exported name exists and no unused aliases are exported."""
        import ZR_Libs.ImageEditingLib as image_lib

        for name in image_lib.__all__:
            assert hasattr(image_lib, name), name
        assert "RgbColor" not in image_lib.__all__
        assert not hasattr(image_lib, "RgbColor")
