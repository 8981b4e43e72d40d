"""TokenAccountant — per-modality token estimates with a character fallback."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
import struct

from genbridge.core.errors import TokenizationFailure
from genbridge.core.models import GenerationRequest, Part, TokenBreakdown

logger = logging.getLogger(__name__)

IMAGE_PATCH_PX = 28
IMAGE_MIN_TOKENS = 4
IMAGE_MAX_TOKENS = 16_384
IMAGE_DEFAULT_TOKENS = 1_024
IMAGE_SPECIAL_TOKENS = 2
AUDIO_BYTES_PER_SECOND = 32_000  # 16 kHz, 16-bit mono
AUDIO_TOKENS_PER_SECOND = 25
CHARS_PER_TOKEN = 4


def _image_size(raw: bytes) -> tuple[int, int] | None:
    """Read width/height from a PNG, GIF or JPEG header without decoding."""
    if raw[:8] == b"\x89PNG\r\n\x1a\n" and len(raw) >= 24:
        return struct.unpack(">II", raw[16:24])
    if raw[:6] in (b"GIF87a", b"GIF89a") and len(raw) >= 10:
        return struct.unpack("<HH", raw[6:10])
    if raw[:2] == b"\xff\xd8":
        i = 2
        while i + 9 < len(raw):
            if raw[i] != 0xFF:
                i += 1
                continue
            marker = raw[i + 1]
            length = struct.unpack(">H", raw[i + 2:i + 4])[0]
            if 0xC0 <= marker <= 0xCF and marker not in (0xC4, 0xC8, 0xCC):
                height, width = struct.unpack(">HH", raw[i + 5:i + 9])
                return width, height
            i += 2 + length
    return None


def _part_length(part: Part) -> int:
    if part.text is not None:
        return len(part.text)
    return len(json.dumps(part.model_dump(exclude_defaults=True), default=str))


class TokenAccountant:
    """Estimates request size.

    The precise path needs ``tiktoken`` and its encoding files; when either
    is unavailable (or anything else goes wrong) the estimate degrades to
    ``ceil(chars / 4)`` attributed to text.
    """

    def __init__(self, encoding_name: str = "cl100k_base", encoding=None) -> None:
        self._encoding_name = encoding_name
        self._encoding = encoding

    def estimate(self, request: GenerationRequest) -> TokenBreakdown:
        try:
            return self._estimate_precise(request)
        except Exception as exc:
            logger.warning("Precise token count failed, using character estimate: %s", exc)
            return self.fallback_estimate(request)

    # -- primary -------------------------------------------------------------

    def _encoder(self):
        if self._encoding is None:
            try:
                import tiktoken

                self._encoding = tiktoken.get_encoding(self._encoding_name)
            except Exception as exc:
                raise TokenizationFailure(f"cannot load encoding {self._encoding_name}: {exc}") from exc
        return self._encoding

    def _estimate_precise(self, request: GenerationRequest) -> TokenBreakdown:
        texts: list[str] = []
        other: list[str] = []
        image_tokens = audio_tokens = 0

        if request.system_instruction:
            texts.append(request.system_instruction)
        for content in request.contents:
            for part in content.parts:
                if part.inline_data is not None:
                    mime = part.inline_data.mime_type.lower()
                    if mime.startswith("image/"):
                        image_tokens += self._image_tokens(part.inline_data.data)
                    elif mime.startswith("audio/"):
                        audio_tokens += self._audio_tokens(part.inline_data.data)
                    else:
                        other.append(part.inline_data.mime_type)
                elif part.function_call is not None:
                    other.append(json.dumps(part.function_call.model_dump()))
                elif part.function_response is not None:
                    other.append(json.dumps(part.function_response.model_dump(), default=str))
                elif part.text:
                    texts.append(part.text)

        if not texts and not other:
            text_tokens = other_tokens = 0
        else:
            encoding = self._encoder()
            text_tokens = sum(len(encoding.encode(t, disallowed_special=())) for t in texts)
            other_tokens = sum(len(encoding.encode(o, disallowed_special=())) for o in other)

        return TokenBreakdown(
            text_tokens=text_tokens,
            image_tokens=image_tokens,
            audio_tokens=audio_tokens,
            other_tokens=other_tokens,
        )

    @staticmethod
    def _decode(data: str) -> bytes:
        try:
            return base64.b64decode(data, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise TokenizationFailure(f"invalid base64 payload: {exc}") from exc

    def _image_tokens(self, data: str) -> int:
        size = _image_size(self._decode(data))
        if size is None:
            return IMAGE_DEFAULT_TOKENS
        width, height = size
        patches = math.ceil(width / IMAGE_PATCH_PX) * math.ceil(height / IMAGE_PATCH_PX)
        return min(max(patches, IMAGE_MIN_TOKENS), IMAGE_MAX_TOKENS) + IMAGE_SPECIAL_TOKENS

    def _audio_tokens(self, data: str) -> int:
        seconds = len(self._decode(data)) / AUDIO_BYTES_PER_SECOND
        return max(1, math.ceil(seconds * AUDIO_TOKENS_PER_SECOND))

    # -- fallback ------------------------------------------------------------

    @staticmethod
    def fallback_estimate(request: GenerationRequest) -> TokenBreakdown:
        try:
            chars = len(request.system_instruction or "")
            for content in request.contents:
                chars += sum(_part_length(part) for part in content.parts)
            return TokenBreakdown(text_tokens=math.ceil(chars / CHARS_PER_TOKEN))
        except Exception:
            logger.exception("Character token estimate failed")
            return TokenBreakdown()
