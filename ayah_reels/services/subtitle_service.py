"""Per-verse subtitle overlays.

Each overlay is a transparent PNG the size of the output canvas with the
source-language lines stacked above the translation lines, centred as one
block. Lines are wrapped greedily inside a 5% side margin.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, features

from ayah_reels.core.storage import ensure_dir
from ayah_reels.models.schemas import SubtitleStyle

logger = logging.getLogger(__name__)

MARGIN_RATIO = 0.05
GAP_RATIO = 0.05
MAX_BLOCK_RATIO = 0.9
SOURCE_LINE_HEIGHT = 1.5
TRANSLATION_LINE_HEIGHT = 1.2
SHRINK_STEP = 0.9
MIN_FONT_SIZE = 8

SYSTEM_FONTS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
]

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


@lru_cache(maxsize=64)
def load_font(font_file: str | None, size: int) -> FontType:
    if font_file:
        path = Path(font_file)
        if path.is_file():
            try:
                return ImageFont.truetype(str(path), size=size)
            except OSError as exc:
                logger.warning("Could not load font %s (%s); using fallback font", path, exc)
        else:
            logger.warning("Font not found at %s; using fallback font", path)
    for candidate in SYSTEM_FONTS:
        if Path(candidate).is_file():
            try:
                return ImageFont.truetype(candidate, size=size)
            except OSError:
                continue
    return ImageFont.load_default(size=size)


def text_width(font: FontType, text: str, direction: str | None = None) -> float:
    if direction:
        return font.getlength(text, direction=direction)
    return font.getlength(text)


def _split_long_word(word: str, font: FontType, max_width: float, direction: str | None) -> list[str]:
    pieces: list[str] = []
    current = ""
    for char in word:
        if current and text_width(font, current + char, direction) >= max_width:
            pieces.append(current)
            current = char
        else:
            current += char
    if current:
        pieces.append(current)
    return pieces


def wrap_text(text: str, font: FontType, max_width: float, direction: str | None = None) -> list[str]:
    """Greedy word wrap: extend the line while it stays under ``max_width``."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        if text_width(font, word, direction) >= max_width:
            if current:
                lines.append(current)
            pieces = _split_long_word(word, font, max_width, direction)
            lines.extend(pieces[:-1])
            current = pieces[-1]
            continue
        candidate = f"{current} {word}" if current else word
        if not current or text_width(font, candidate, direction) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


@dataclass
class TextBlock:
    lines: list[str]
    font_size: int
    line_height: float
    stroke_width: int
    direction: str | None = None
    font_path: str | None = None

    @property
    def height(self) -> float:
        return len(self.lines) * self.line_height


@dataclass
class SubtitleLayout:
    width: int
    height: int
    max_line_width: float
    top: float
    gap: float
    source: TextBlock
    translation: TextBlock
    line_widths: list[float] = field(default_factory=list)

    @property
    def content_height(self) -> float:
        gap = self.gap if self.source.lines and self.translation.lines else 0.0
        return self.source.height + gap + self.translation.height


def _rtl_direction() -> str | None:
    return "rtl" if features.check_feature("raqm") else None


class SubtitleRenderer:
    def _block(self, text: str, font_path: str | None, size: int, line_ratio: float, max_width: float, direction: str | None) -> TextBlock:
        font = load_font(font_path, size)
        stroke = max(1, size // 20)
        lines = wrap_text(text, font, max_width - 2 * stroke, direction)
        return TextBlock(
            lines=lines,
            font_size=size,
            line_height=size * line_ratio,
            stroke_width=stroke,
            direction=direction,
            font_path=font_path,
        )

    def layout(self, source_text: str, translation_text: str, style: SubtitleStyle) -> SubtitleLayout:
        margin = style.width * MARGIN_RATIO
        max_width = style.width - 2 * margin
        gap = style.height * GAP_RATIO
        source_size = style.source_font_size
        translation_size = style.translation_font_size
        direction = _rtl_direction()

        while True:
            source = self._block(source_text, style.source_font_path, source_size, SOURCE_LINE_HEIGHT, max_width, direction)
            translation = self._block(
                translation_text,
                style.translation_font_path,
                translation_size,
                TRANSLATION_LINE_HEIGHT,
                max_width,
                None,
            )
            layout = SubtitleLayout(
                width=style.width,
                height=style.height,
                max_line_width=max_width,
                top=0.0,
                gap=gap,
                source=source,
                translation=translation,
            )
            fits = layout.content_height <= style.height * MAX_BLOCK_RATIO
            if fits or (source_size <= MIN_FONT_SIZE and translation_size <= MIN_FONT_SIZE):
                break
            source_size = max(MIN_FONT_SIZE, int(source_size * SHRINK_STEP))
            translation_size = max(MIN_FONT_SIZE, int(translation_size * SHRINK_STEP))

        layout.top = (style.height - layout.content_height) / 2
        for block in (source, translation):
            font = load_font(block.font_path, block.font_size)
            layout.line_widths.extend(text_width(font, line, block.direction) + 2 * block.stroke_width for line in block.lines)
        return layout

    def render(self, source_text: str, translation_text: str, output_path: Path, style: SubtitleStyle) -> Path:
        layout = self.layout(source_text, translation_text, style)
        canvas = Image.new("RGBA", (style.width, style.height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(canvas)
        center_x = style.width / 2

        y = layout.top
        blocks = [(layout.source, style.source_color), (layout.translation, style.translation_color)]
        for index, (block, color) in enumerate(blocks):
            if index == 1 and layout.source.lines and block.lines:
                y += layout.gap
            font = load_font(block.font_path, block.font_size)
            extra = {"direction": block.direction} if block.direction else {}
            for line in block.lines:
                position = (center_x, y + block.line_height / 2)
                draw.text(
                    position,
                    line,
                    font=font,
                    fill=style.outline_color,
                    anchor="mm",
                    stroke_width=block.stroke_width,
                    stroke_fill=style.outline_color,
                    **extra,
                )
                draw.text(position, line, font=font, fill=color, anchor="mm", **extra)
                y += block.line_height

        ensure_dir(output_path.parent)
        canvas.save(output_path, "PNG")
        return output_path
