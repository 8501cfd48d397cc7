import base64
from io import BytesIO
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from companion_artist import CompanionArtist, detect_mime_type, load_avatar, to_data_uri
from companion_errors import ProfileImageReadFailure


def _png_bytes(color="red"):
    buffer = BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_data_uri_detects_png():
    png = _png_bytes()
    uri = to_data_uri(png)
    assert uri.startswith("data:image/png;base64,")
    assert base64.b64decode(uri.split(",", 1)[1]) == png


def test_non_png_is_treated_as_jpeg():
    assert detect_mime_type(b"\xff\xd8\xff\xe0") == "image/jpeg"


def test_load_avatar_keeps_original_format(tmp_path):
    path = tmp_path / "me.jpg"
    Image.new("RGB", (8, 8), "blue").save(str(path), format="JPEG")
    assert load_avatar(str(path)).startswith("data:image/jpeg;base64,")


@pytest.mark.parametrize("name, content", [
    ("missing.png", None),
    ("notes.png", b"definitely not a picture"),
])
def test_load_avatar_failures(tmp_path, name, content):
    path = tmp_path / name
    if content is not None:
        path.write_bytes(content)
    with pytest.raises(ProfileImageReadFailure):
        load_avatar(str(path))


@pytest.mark.asyncio
async def test_creations_are_saved_to_gallery(tmp_path):
    png = _png_bytes("green")
    part = SimpleNamespace(inline_data=SimpleNamespace(data=png))
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))]))

    artist = CompanionArtist(client=client, output_dir=str(tmp_path / "art"))
    assert await artist.create_image("a green square") == png

    recent = artist.get_recent_images()
    assert len(recent) == 1
    assert recent[0]["prompt"] == "a green square"
    assert list((tmp_path / "art").glob("luna_*.png"))
