"""
Fax card rendering.

Cards are laid out as a vertical stack of full-width blocks (text lines,
rules, QR codes) on 384px thermal paper, then flattened into one image.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

import qrcode
from PIL import Image, ImageDraw, ImageFont

from twitchfax.schemas.events import MessageFragment

PAPER_WIDTH = 384
PADDING = 20
SPACING = 15
FONT_SIZE = 32
SMALL_FONT_SIZE = 20
CLOCK_FONT_SIZE = 72
UNDERLINE_HEIGHT = 4
UNDERLINE_MARGIN = 10
DASH_LENGTH = 8
DASH_GAP = 4
QR_SIZE = 256

INK = (0, 0, 0)
PAPER = (255, 255, 255)
ACCENT = (145, 70, 255)

URL_PATTERN = re.compile(r"https?://\S+")

Font = ImageFont.FreeTypeFont | ImageFont.ImageFont


class FontProvider(Protocol):
    def load(self, size: int) -> Font: ...


def line_height(font: Font) -> int:
    _, _, _, bottom = font.getbbox("Ag")
    return int(bottom) + 4


def wrap_text(text: str, font: Font, max_width: int) -> list[str]:
    """Wrap ``text`` character by character, preferring to break at spaces."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for char in paragraph:
            candidate = current + char
            if current and font.getlength(candidate) > max_width:
                cut = current.rfind(" ")
                if cut > 0:
                    lines.append(current[:cut])
                    current = current[cut + 1:] + char
                else:
                    lines.append(current)
                    current = char.lstrip()
            else:
                current = candidate
        lines.append(current)
    return lines


def split_fragments(fragments: Iterable[MessageFragment]) -> list[tuple[str, str]]:
    """Flatten message fragments into ("text", str) and ("url", str) items."""
    items: list[tuple[str, str]] = []
    buffer = ""
    for fragment in fragments:
        if fragment.type != "text":
            buffer += fragment.text
            continue
        position = 0
        for match in URL_PATTERN.finditer(fragment.text):
            buffer += fragment.text[position:match.start()]
            if buffer.strip():
                items.append(("text", buffer.strip()))
            buffer = ""
            items.append(("url", match.group(0)))
            position = match.end()
        buffer += fragment.text[position:]
    if buffer.strip():
        items.append(("text", buffer.strip()))
    return items


def to_monochrome(image: Image.Image, *, dither: bool, black_point: int) -> Image.Image:
    """Convert to 1-bit; pixels at or below ``black_point`` become ink."""
    gray = image.convert("L")
    if dither:
        shift = 128 - black_point
        gray = gray.point(lambda value: max(0, min(255, value + shift)))
        return gray.convert("1", dither=Image.Dither.FLOYDSTEINBERG)
    return gray.point(lambda value: 255 if value > black_point else 0).convert(
        "1", dither=Image.Dither.NONE
    )


def stack(blocks: Sequence[Image.Image], spacing: int = SPACING) -> Image.Image:
    height = PADDING * 2 + sum(block.height for block in blocks) + spacing * max(0, len(blocks) - 1)
    canvas = Image.new("RGB", (PAPER_WIDTH, height), PAPER)
    y = PADDING
    for block in blocks:
        canvas.paste(block, (0, y))
        y += block.height + spacing
    return canvas


class FaxRenderer:
    """Render fax cards with the uploaded custom font."""

    def __init__(self, fonts: FontProvider) -> None:
        self._fonts = fonts

    def _text_block(
        self,
        text: str,
        *,
        size: int = FONT_SIZE,
        align: str = "left",
        fill: tuple[int, int, int] = INK,
    ) -> Image.Image:
        font = self._fonts.load(size)
        lines = wrap_text(text, font, PAPER_WIDTH - PADDING * 2)
        step = line_height(font)
        block = Image.new("RGB", (PAPER_WIDTH, step * len(lines)), PAPER)
        draw = ImageDraw.Draw(block)
        for index, line in enumerate(lines):
            width = font.getlength(line)
            if align == "center":
                x = (PAPER_WIDTH - width) / 2
            elif align == "right":
                x = PAPER_WIDTH - PADDING - width
            else:
                x = PADDING
            draw.text((x, index * step), line, font=font, fill=fill)
        return block

    def _underline(self, color: tuple[int, int, int]) -> Image.Image:
        block = Image.new("RGB", (PAPER_WIDTH, UNDERLINE_HEIGHT), PAPER)
        ImageDraw.Draw(block).rectangle(
            (UNDERLINE_MARGIN, 0, PAPER_WIDTH - UNDERLINE_MARGIN - 1, UNDERLINE_HEIGHT - 1),
            fill=color,
        )
        return block

    def _dashed_line(self, color: tuple[int, int, int]) -> Image.Image:
        block = Image.new("RGB", (PAPER_WIDTH, 2), PAPER)
        draw = ImageDraw.Draw(block)
        x = UNDERLINE_MARGIN
        while x < PAPER_WIDTH - UNDERLINE_MARGIN:
            end = min(x + DASH_LENGTH, PAPER_WIDTH - UNDERLINE_MARGIN) - 1
            draw.rectangle((x, 0, end, 1), fill=color)
            x += DASH_LENGTH + DASH_GAP
        return block

    def _qr_block(self, data: str) -> Image.Image:
        qr = qrcode.QRCode(border=1, error_correction=qrcode.constants.ERROR_CORRECT_M)
        qr.add_data(data)
        qr.make(fit=True)
        code = qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")
        code = code.resize((QR_SIZE, QR_SIZE), Image.Resampling.NEAREST)
        block = Image.new("RGB", (PAPER_WIDTH, QR_SIZE), PAPER)
        block.paste(code, ((PAPER_WIDTH - QR_SIZE) // 2, 0))
        return block

    def _footer(self, timestamp: Optional[datetime]) -> Image.Image:
        moment = timestamp or datetime.now()
        return self._text_block(
            moment.strftime("%Y-%m-%d %H:%M"), size=SMALL_FONT_SIZE, align="right"
        )

    def render_message(
        self,
        user_name: str,
        fragments: Sequence[MessageFragment],
        *,
        timestamp: Optional[datetime] = None,
        color: bool = True,
    ) -> Image.Image:
        """Render a user's message: name, rule, body text and QR codes for links."""
        accent = ACCENT if color else INK
        blocks = [self._text_block(user_name), self._underline(accent)]
        for kind, value in split_fragments(fragments):
            if kind == "url":
                blocks.append(self._text_block(value, size=SMALL_FONT_SIZE))
                blocks.append(self._qr_block(value))
            else:
                blocks.append(self._text_block(value))
        blocks.append(self._dashed_line(accent))
        blocks.append(self._footer(timestamp))
        return stack(blocks)

    def render_titled(
        self,
        title: str,
        user_name: str,
        extra: str = "",
        details: str = "",
        *,
        timestamp: Optional[datetime] = None,
        color: bool = True,
    ) -> Image.Image:
        """Render a centred title card for follow/cheer/raid style events."""
        accent = ACCENT if color else INK
        blocks = [
            self._text_block(title, align="center", fill=accent),
            self._text_block(user_name, align="center"),
            self._underline(accent),
        ]
        if extra:
            blocks.append(self._text_block(extra, align="center"))
        if details:
            blocks.append(self._dashed_line(accent))
            blocks.append(self._text_block(details))
        blocks.append(self._dashed_line(accent))
        blocks.append(self._footer(timestamp))
        return stack(blocks)

    def render_clock(
        self,
        now: datetime,
        leaderboard: Sequence[dict] = (),
        *,
        color: bool = True,
    ) -> Image.Image:
        """Render the hourly clock card with this week's bits leaderboard."""
        accent = ACCENT if color else INK
        blocks = [
            self._text_block(now.strftime("%Y-%m-%d (%a)"), align="center"),
            self._text_block(now.strftime("%H:%M"), size=CLOCK_FONT_SIZE, align="center"),
            self._underline(accent),
        ]
        if leaderboard:
            blocks.append(self._text_block("Bits leaderboard", size=SMALL_FONT_SIZE, align="center"))
            for entry in leaderboard:
                blocks.append(
                    self._text_block(
                        f"{entry.get('rank', '')}. {entry.get('user_name', '')}  {entry.get('score', 0)}",
                        size=SMALL_FONT_SIZE,
                    )
                )
            blocks.append(self._dashed_line(accent))
        return stack(blocks)

    def render_preview(self, text: str) -> Image.Image:
        return stack([self._text_block(text), self._dashed_line(INK)])


__all__ = [
    "FaxRenderer",
    "FontProvider",
    "PAPER_WIDTH",
    "URL_PATTERN",
    "split_fragments",
    "stack",
    "to_monochrome",
    "wrap_text",
]
