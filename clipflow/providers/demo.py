import asyncio
import colorsys
import random
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from clipflow.providers.base import ClipData, ProviderKind, split_prompt_into_scenes
from clipflow.utils.logging_setup import setup_logger
from clipflow.utils.reference_images import ReferenceImage

logger = setup_logger(__name__)

FRAME_SIZE = (320, 180)
MAX_FRAMES = 240


def _slugify(text: str, max_len: int = 30) -> str:
    s = re.sub(r"[^a-zA-Z0-9_-]+", "_", text.strip())[:max_len]
    return s.strip("_") or "clip"


def _hsl(hue: float, saturation: float, lightness: float) -> Tuple[int, int, int]:
    r, g, b = colorsys.hls_to_rgb((hue % 360) / 360.0, lightness, saturation)
    return int(r * 255), int(g * 255), int(b * 255)


def _centered_text(draw: ImageDraw.ImageDraw, text: str, y: int, font) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (FRAME_SIZE[0] - (right - left)) // 2
    draw.text((x, y - (bottom - top) // 2), text, fill="white", font=font)


def _frame(index: int, prompt: str, progress: float, font) -> Image.Image:
    hue = index * 137.5
    w, h = FRAME_SIZE
    img = Image.new("RGB", FRAME_SIZE, _hsl(hue, 0.7, 0.5))
    draw = ImageDraw.Draw(img)

    # Diagonal bands drift with progress so the clip visibly plays.
    shift = int(progress * w)
    for band, lightness in enumerate((0.4, 0.3)):
        x0 = (shift + band * w // 2) % w
        draw.polygon(
            [(x0, 0), (x0 + w // 3, 0), (x0 + w // 3 - h // 2, h), (x0 - h // 2, h)],
            fill=_hsl(hue + 60 * (band + 1), 0.7, lightness),
        )

    _centered_text(draw, f"Clip {index + 1}", h // 2 - 20, font)
    _centered_text(draw, prompt[:40], h // 2 + 10, font)

    bar_w, bar_h = int(w * 0.6), 4
    bar_x, bar_y = (w - bar_w) // 2, h - 24
    draw.rectangle([bar_x, bar_y, bar_x + bar_w, bar_y + bar_h], fill=(200, 200, 200))
    draw.rectangle([bar_x, bar_y, bar_x + int(bar_w * progress), bar_y + bar_h], fill="white")
    return img


def render_placeholder_clip(
    prompt: str,
    duration: int,
    index: int,
    out_dir: Path,
    fps: int = 2,
) -> Tuple[Path, Path]:
    """Render an animated GIF clip and a JPEG thumbnail; return both paths."""
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
    base = out_dir / f"{stamp}_{index:02d}_{_slugify(prompt)}"

    font = ImageFont.load_default()
    frame_count = max(2, min(MAX_FRAMES, int(duration * fps)))
    frames = [_frame(index, prompt, i / (frame_count - 1), font) for i in range(frame_count)]
    frame_ms = int(duration * 1000 / frame_count)

    clip_path = base.with_suffix(".gif")
    frames[0].save(
        clip_path,
        save_all=True,
        append_images=frames[1:],
        duration=frame_ms,
        loop=0,
    )
    thumb_path = base.with_suffix(".jpg")
    frames[0].save(thumb_path, "JPEG", quality=80)
    return clip_path, thumb_path


class DemoProvider:
    """
    Offline provider used when no remote endpoint is configured.

    Clips are rendered locally under results_dir and returned as file:// URLs.
    Reference images are accepted and ignored.
    """

    kind = ProviderKind.DEMO

    def __init__(self, results_dir: Path, delay_sec: float = 1.0, fps: int = 2):
        self.results_dir = Path(results_dir)
        self.delay_sec = delay_sec
        self.fps = fps

    def is_configured(self) -> bool:
        return True

    async def derive_segments(
        self,
        prompt: str,
        clip_count: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> List[str]:
        return split_prompt_into_scenes(prompt, clip_count)

    async def generate_clip(
        self,
        prompt: str,
        duration: int,
        index: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> ClipData:
        if self.delay_sec > 0:
            await asyncio.sleep(self.delay_sec + random.random() * 2 * self.delay_sec)
        clip_path, thumb_path = await asyncio.to_thread(
            render_placeholder_clip, prompt, duration, index, self.results_dir / "demo", self.fps
        )
        logger.info(f"Rendered demo clip {index} at {clip_path}")
        return ClipData(
            url=clip_path.resolve().as_uri(),
            thumbnail_url=thumb_path.resolve().as_uri(),
            duration=duration,
            prompt=prompt,
        )
