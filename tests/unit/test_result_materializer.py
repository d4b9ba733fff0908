"""Tests for ResultMaterializer: copying provider results into R2."""

import io
import re
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from PIL import Image, UnidentifiedImageError

from src.services.result_materializer import (
    MaterializationError,
    ResultMaterializer,
    generate_result_key,
    normalize_image_bytes,
)


def _image_bytes(fmt: str = "JPEG", size=(8, 8), mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color=(200, 30, 30) if mode == "RGB" else 128).save(buf, format=fmt)
    return buf.getvalue()


def _storage():
    storage = MagicMock()
    storage.upload_bytes = AsyncMock(side_effect=lambda data, key, content_type: f"https://cdn.example.com/{key}")
    storage.delete = AsyncMock()
    storage.key_from_url = MagicMock(side_effect=lambda url: url.removeprefix("https://cdn.example.com/"))
    return storage


def _materializer(handler, storage=None) -> ResultMaterializer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResultMaterializer(storage if storage is not None else _storage(), client)


class TestGenerateResultKey:
    def test_format(self):
        key = generate_result_key()
        assert re.fullmatch(r"generated/\d{13}-[0-9a-z]{6}\.png", key)

    def test_keys_differ(self):
        assert len({generate_result_key() for _ in range(20)}) == 20


class TestNormalizeImageBytes:
    def test_reencodes_as_png(self):
        png = normalize_image_bytes(_image_bytes("JPEG"))
        assert Image.open(io.BytesIO(png)).format == "PNG"

    def test_converts_palette_images(self):
        png = normalize_image_bytes(_image_bytes("PNG", mode="L"))
        assert Image.open(io.BytesIO(png)).mode == "RGBA"

    def test_rejects_garbage(self):
        with pytest.raises(UnidentifiedImageError):
            normalize_image_bytes(b"definitely not an image")


class TestSaveResultImage:
    async def test_downloads_and_stores_png(self):
        storage = _storage()
        materializer = _materializer(
            lambda request: httpx.Response(200, content=_image_bytes("WEBP")), storage,
        )

        url = await materializer.save_result_image("https://tempfile.kie.ai/r.webp")

        assert re.fullmatch(r"https://cdn\.example\.com/generated/\d{13}-[0-9a-z]{6}\.png", url)
        call = storage.upload_bytes.await_args
        assert call.kwargs["content_type"] == "image/png"
        assert Image.open(io.BytesIO(call.args[0])).format == "PNG"

    async def test_http_error_status_raises(self):
        materializer = _materializer(lambda request: httpx.Response(404))
        with pytest.raises(MaterializationError, match="404"):
            await materializer.save_result_image("https://tempfile.kie.ai/gone.png")

    async def test_empty_body_raises(self):
        materializer = _materializer(lambda request: httpx.Response(200, content=b""))
        with pytest.raises(MaterializationError):
            await materializer.save_result_image("https://tempfile.kie.ai/r.png")

    async def test_non_image_raises(self):
        materializer = _materializer(lambda request: httpx.Response(200, content=b"<html>expired</html>"))
        with pytest.raises(MaterializationError, match="not a valid image"):
            await materializer.save_result_image("https://tempfile.kie.ai/r.png")

    async def test_upload_failure_raises(self):
        storage = _storage()
        storage.upload_bytes = AsyncMock(side_effect=RuntimeError("R2 down"))
        materializer = _materializer(lambda request: httpx.Response(200, content=_image_bytes()), storage)
        with pytest.raises(MaterializationError, match="Failed to store"):
            await materializer.save_result_image("https://tempfile.kie.ai/r.png")

    async def test_missing_storage_raises(self):
        materializer = ResultMaterializer(None, httpx.AsyncClient())
        with pytest.raises(MaterializationError, match="not configured"):
            await materializer.save_result_image("https://tempfile.kie.ai/r.png")


class TestDiscard:
    async def test_deletes_stored_copy(self):
        storage = _storage()
        materializer = _materializer(lambda request: httpx.Response(200), storage)
        await materializer.discard("https://cdn.example.com/generated/1-abcdef.png")
        storage.delete.assert_awaited_once_with("generated/1-abcdef.png")

    async def test_delete_errors_are_logged_not_raised(self):
        storage = _storage()
        storage.delete = AsyncMock(side_effect=RuntimeError("R2 down"))
        materializer = _materializer(lambda request: httpx.Response(200), storage)
        await materializer.discard("https://cdn.example.com/generated/1-abcdef.png")
