"""
Companion Artist Module
=======================
Gives Luna the ability to paint what the user asks for.

Uses Gemini's image model ("Nano Banana") through the google-genai SDK.
Images come back as raw bytes; they are shown in the conversation as data
URIs and, when a gallery directory is configured, also saved as PNG files.

This module also reads the user's profile picture, since that is the other
place where an image file has to become a data URI.
"""

import base64
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional

from google import genai
from google.genai import types
from PIL import Image, UnidentifiedImageError

from companion_errors import ImageBackendFailure, ProfileImageReadFailure
from companion_gemini import SAFETY_SETTINGS, call_with_retry, first_inline_data


PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'


def detect_mime_type(image_bytes: bytes) -> str:
    # PNG files start with a fixed signature; everything else is treated as JPEG
    if image_bytes[:8] == PNG_SIGNATURE:
        return "image/png"
    return "image/jpeg"


def to_data_uri(image_bytes: bytes, mime_type: str = None) -> str:
    """Encode image bytes as a `data:<mime>;base64,...` reference."""
    mime_type = mime_type or detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def load_avatar(path: str) -> str:
    """
    Read a profile picture from disk as a data URI.

    Args:
        path: Image file chosen by the user

    Returns:
        data URI of the image in its original format

    Raises:
        ProfileImageReadFailure: if the file is missing or not an image
    """
    try:
        raw = Path(path).expanduser().read_bytes()
        with Image.open(BytesIO(raw)) as img:
            img.verify()
            image_format = img.format or "PNG"
    except (OSError, UnidentifiedImageError, SyntaxError) as e:
        print(f"⚠️  Could not read profile picture {path}: {e}")
        raise ProfileImageReadFailure(str(e)) from e

    mime_type = Image.MIME.get(image_format, f"image/{image_format.lower()}")
    return to_data_uri(raw, mime_type)


class CompanionArtist:
    """
    Turns an image request into picture bytes.
    """

    def __init__(self,
                 client: genai.Client,
                 model: str = "gemini-2.5-flash-image",
                 output_dir: Optional[str] = None,
                 max_retries: int = 3):
        """
        Args:
            client: Shared google-genai client
            model: Image generation model
            output_dir: Gallery directory for saved creations (None = don't save)
            max_retries: Attempts per call while the API is overloaded
        """
        self.client = client
        self.model = model
        self.max_retries = max_retries
        self.output_dir = Path(output_dir) if output_dir else None
        if self.output_dir:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        self._recent_images: List[Dict[str, str]] = []
        self._max_recent = 10

    def _enhance_prompt(self, prompt: str) -> str:
        return (
            "A high-quality, artistic image. Prioritize any specified visual styles "
            "(e.g., 'photorealistic', 'cartoon', 'oil painting') from the following "
            f"description: \"{prompt}\""
        )

    async def create_image(self, prompt: str) -> bytes:
        """
        Generate an image for the subject the user asked for.

        Args:
            prompt: Subject phrase, e.g. "sunset over mountains"

        Returns:
            Encoded image bytes (PNG from Gemini)

        Raises:
            ImageBackendFailure: on API errors or when the response holds no image
        """
        print(f"🎨 Generating image: \"{prompt[:60]}{'...' if len(prompt) > 60 else ''}\"")
        try:
            response = await call_with_retry(
                lambda: self.client.aio.models.generate_content(
                    model=self.model,
                    contents=self._enhance_prompt(prompt),
                    config=types.GenerateContentConfig(
                        response_modalities=["TEXT", "IMAGE"],
                        safety_settings=SAFETY_SETTINGS,
                    ),
                ),
                max_retries=self.max_retries,
            )
        except Exception as e:
            print(f"   ❌ Image generation failed: {e}")
            raise ImageBackendFailure("Failed to generate image from AI.") from e

        image_bytes = first_inline_data(response)
        if not image_bytes:
            print("   ❌ No image data in response")
            raise ImageBackendFailure("No image data found in the response.")

        if self.output_dir:
            self._save_to_gallery(image_bytes, prompt)
        return image_bytes

    def _save_to_gallery(self, image_bytes: bytes, prompt: str):
        """Keep a copy of the creation on disk. Failures are only logged."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        filepath = self.output_dir / f"luna_{timestamp}.png"
        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img.save(str(filepath))
        except (OSError, UnidentifiedImageError) as e:
            print(f"   ⚠️ Could not save image to gallery: {e}")
            return

        self._recent_images.append({"path": str(filepath), "prompt": prompt, "timestamp": timestamp})
        if len(self._recent_images) > self._max_recent:
            self._recent_images.pop(0)
        print(f"   ✅ Image saved: {filepath}")

    def get_recent_images(self) -> List[Dict[str, str]]:
        return list(self._recent_images)
