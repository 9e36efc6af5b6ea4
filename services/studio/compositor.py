"""Frame compositing: capture a sentence card and letterbox it onto a fixed-size canvas."""

from __future__ import annotations

import textwrap
from typing import Protocol, runtime_checkable

from PIL import Image, ImageColor, ImageDraw, ImageFont

from shared.enums import NoticeLevel
from shared.media_utils import image_from_data_uri, is_data_uri
from shared.models import PipelineNotice, StorySentence
from shared.utils import setup_logging

from .events import NoticeCallback, publish_notice

logger = setup_logging("studio-compositor")

DEFAULT_BACKGROUND = "rgb(255, 255, 255)"
ERROR_FRAME_COLOR = "#E0E0E0"
PLACEHOLDER_TILE_COLOR = "#EEEEEE"


@runtime_checkable
class RenderableSurface(Protocol):
    """Something that can be drawn to a bitmap, with a background and an enclosing surface."""

    background_color: str | None
    parent: "RenderableSurface | None"

    async def capture(self, *, scale: float, background: str) -> Image.Image | None: ...


def _is_transparent(color: str | None) -> bool:
    if not color or color.strip().lower() == "transparent":
        return True
    try:
        rgba = ImageColor.getrgb(color)
    except ValueError:
        logger.warning("Unrecognised background color %r treated as transparent", color)
        return True
    return len(rgba) == 4 and rgba[3] == 0


def resolve_background_color(surface: RenderableSurface | None, default: str = DEFAULT_BACKGROUND) -> str:
    """First non-transparent background walking up from ``surface``, else ``default``."""
    node = surface
    while node is not None:
        if not _is_transparent(node.background_color):
            return node.background_color  # type: ignore[return-value]
        node = node.parent
    return default


def letterbox(source_size: tuple[int, int], target_size: tuple[int, int]) -> tuple[int, int, int, int]:
    """
    Fit ``source_size`` inside ``target_size`` keeping its aspect ratio, centred.

    Returns:
        (x, y, width, height) of the placed source on the target
    """
    source_width, source_height = source_size
    target_width, target_height = target_size
    source_aspect = source_width / source_height
    target_aspect = target_width / target_height

    if source_aspect > target_aspect:
        draw_width = target_width
        draw_height = round(target_width / source_aspect)
    else:
        draw_height = target_height
        draw_width = round(target_height * source_aspect)

    x = (target_width - draw_width) // 2
    y = (target_height - draw_height) // 2
    return x, y, draw_width, draw_height


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


class PageSurface:
    """The page a card sits on; contributes only a background."""

    def __init__(self, background_color: str | None = DEFAULT_BACKGROUND, parent: RenderableSurface | None = None) -> None:
        self.background_color = background_color
        self.parent = parent

    async def capture(self, *, scale: float, background: str) -> Image.Image | None:
        return None


class SentenceCardSurface:
    """A sentence card: its illustration above a wrapped caption."""

    def __init__(
        self,
        sentence: StorySentence,
        *,
        width: int = 480,
        height: int = 420,
        background_color: str | None = "transparent",
        parent: RenderableSurface | None = None,
    ) -> None:
        self.sentence = sentence
        self.width = width
        self.height = height
        self.background_color = background_color
        self.parent = parent if parent is not None else PageSurface()

    def _illustration(self, box: tuple[int, int]) -> Image.Image:
        if is_data_uri(self.sentence.image_url):
            try:
                return image_from_data_uri(self.sentence.image_url).convert("RGB")
            except ValueError as exc:
                logger.warning("Illustration for %s unreadable: %s", self.sentence.id, exc)
        tile = Image.new("RGB", box, PLACEHOLDER_TILE_COLOR)
        draw = ImageDraw.Draw(tile)
        draw.text((box[0] // 2, box[1] // 2), f"{box[0]}x{box[1]}", fill="#888888", anchor="mm", font=_load_font(20))
        return tile

    async def capture(self, *, scale: float, background: str) -> Image.Image | None:
        width, height = round(self.width * scale), round(self.height * scale)
        if width <= 0 or height <= 0:
            return None

        card = Image.new("RGB", (width, height), background)
        padding = round(12 * scale)
        caption_height = round(height * 0.28)
        image_box = (width - 2 * padding, height - caption_height - 2 * padding)

        illustration = self._illustration(image_box)
        x, y, w, h = letterbox(illustration.size, image_box)
        if w > 0 and h > 0:
            card.paste(illustration.resize((w, h)), (padding + x, padding + y))

        font = _load_font(max(10, round(16 * scale)))
        draw = ImageDraw.Draw(card)
        chars_per_line = max(10, int(image_box[0] / (9 * scale)))
        caption = textwrap.fill(self.sentence.text, width=chars_per_line)
        draw.multiline_text(
            (width // 2, height - caption_height // 2 - padding // 2),
            caption,
            fill="black",
            font=font,
            anchor="mm",
            align="center",
        )
        return card


class FrameCompositor:
    """Draws captured surfaces onto a ``width`` x ``height`` canvas."""

    def __init__(
        self,
        width: int = 600,
        height: int = 400,
        capture_scale: float = 1.0,
        notify: NoticeCallback | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self.capture_scale = capture_scale
        self.notify = notify

    def error_frame(self, index: int) -> Image.Image:
        frame = Image.new("RGB", (self.width, self.height), ERROR_FRAME_COLOR)
        ImageDraw.Draw(frame).text(
            (self.width // 2, self.height // 2),
            f"Error rendering frame {index + 1}",
            fill="red",
            font=_load_font(20),
            anchor="mm",
        )
        return frame

    def _skipped(self, index: int, reason: str, sentence_id: str | None) -> None:
        publish_notice(
            self.notify,
            PipelineNotice(
                level=NoticeLevel.WARNING,
                title="Frame Skipped",
                message=f"Frame {index + 1} skipped: {reason}.",
                sentence_id=sentence_id,
            ),
            logger,
        )

    async def compose(
        self,
        surface: RenderableSurface | None,
        index: int,
        sentence_id: str | None = None,
    ) -> Image.Image | None:
        """
        Capture ``surface`` and letterbox it onto a fresh canvas.

        Returns None for a missing surface, a zero-sized capture or a capture
        that letterboxes to nothing, so the caller can skip the frame. A
        capture that raises yields an error frame.
        """
        if surface is None:
            self._skipped(index, "no surface to capture", sentence_id)
            return None

        background = resolve_background_color(surface)
        try:
            captured = await surface.capture(scale=self.capture_scale, background=background)
        except Exception as exc:
            logger.error("Capture failed for frame %d: %s", index + 1, exc)
            publish_notice(
                self.notify,
                PipelineNotice(
                    level=NoticeLevel.WARNING,
                    title="Frame Render Error",
                    message=f"Frame {index + 1} could not be captured ({exc}). Using an error frame.",
                    sentence_id=sentence_id,
                ),
                logger,
            )
            return self.error_frame(index)

        if captured is None or captured.width == 0 or captured.height == 0:
            self._skipped(index, "captured image is empty", sentence_id)
            return None

        canvas = Image.new("RGB", (self.width, self.height), background)
        x, y, width, height = letterbox(captured.size, canvas.size)
        if width == 0 or height == 0:
            self._skipped(index, f"{captured.width}x{captured.height} capture scales to zero size", sentence_id)
            return None
        canvas.paste(captured.convert("RGB").resize((width, height)), (x, y))
        return canvas
