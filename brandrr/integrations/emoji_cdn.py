"""Emoji glyph lookup against a Twemoji-style PNG CDN."""

from __future__ import annotations

import base64
import logging

import httpx

from brandrr.config import Settings, settings

logger = logging.getLogger(__name__)

VARIATION_SELECTOR_16 = 0xFE0F


def emoji_codepoint_candidates(emoji: str) -> list[str]:
    """Return CDN file stems for an emoji, with and without U+FE0F.

    The sequence as given comes first. The second stem strips U+FE0F, or adds
    it after the first codepoint when the input carries none.
    """
    cleaned = (emoji or "").strip()
    if not cleaned:
        return []

    full = [ord(char) for char in cleaned]
    if VARIATION_SELECTOR_16 in full:
        alternate = [codepoint for codepoint in full if codepoint != VARIATION_SELECTOR_16]
    else:
        alternate = [full[0], VARIATION_SELECTOR_16, *full[1:]]

    candidates: list[str] = []
    for sequence in (full, alternate):
        if not sequence:
            continue
        stem = "-".join(f"{codepoint:x}" for codepoint in sequence)
        if stem not in candidates:
            candidates.append(stem)
    return candidates


class EmojiResolver:
    """Resolve emoji characters to inline PNG data URIs.

    Lookups that fail on every candidate resolve to None; callers render
    without the glyph.
    """

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self._transport = transport
        self._cache: dict[str, str | None] = {}

    async def fetch_data_uri(self, emoji: str | None) -> str | None:
        if not emoji:
            return None
        if emoji in self._cache:
            return self._cache[emoji]

        data_uri: str | None = None
        timeout = httpx.Timeout(self.settings.emoji_fetch_timeout_seconds)
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for stem in emoji_codepoint_candidates(emoji):
                url = f"{self.settings.emoji_cdn_base_url}/{stem}.png"
                try:
                    response = await client.get(url)
                except httpx.HTTPError as exc:
                    logger.info(
                        "Emoji fetch failed",
                        extra={"codepoints": stem, "error": str(exc)},
                    )
                    continue
                if response.status_code == 200 and response.content:
                    encoded = base64.b64encode(response.content).decode("ascii")
                    data_uri = f"data:image/png;base64,{encoded}"
                    break
                logger.info(
                    "Emoji glyph not available",
                    extra={"codepoints": stem, "status_code": response.status_code},
                )

        self._cache[emoji] = data_uri
        return data_uri
