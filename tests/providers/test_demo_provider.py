import asyncio
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

from PIL import Image

from clipflow.providers.base import ProviderKind, VideoProvider
from clipflow.providers.demo import DemoProvider, render_placeholder_clip


def _path(uri):
    return Path(url2pathname(urlparse(uri).path))


def test_render_placeholder_clip_writes_gif_and_thumbnail(tmp_path):
    clip_path, thumb_path = render_placeholder_clip("Scene 1: sunset over the bay", 3, 0, tmp_path, fps=2)

    assert clip_path.suffix == ".gif"
    assert thumb_path.suffix == ".jpg"
    with Image.open(clip_path) as gif:
        assert gif.size == (320, 180)
        assert gif.n_frames >= 2
    assert thumb_path.stat().st_size > 0


def test_demo_provider_returns_local_clip(tmp_path):
    provider = DemoProvider(tmp_path, delay_sec=0, fps=1)

    assert isinstance(provider, VideoProvider)
    assert provider.kind == ProviderKind.DEMO
    assert provider.is_configured() is True

    clip = asyncio.run(provider.generate_clip("Scene 2: waves", 4, 1))

    assert clip.url.startswith("file://")
    assert clip.thumbnail_url.startswith("file://")
    assert clip.duration == 4
    assert clip.prompt == "Scene 2: waves"
    assert _path(clip.url).exists()
    assert _path(clip.url).parent == (tmp_path / "demo").resolve()


def test_demo_provider_derives_one_prompt_per_clip(tmp_path):
    provider = DemoProvider(tmp_path, delay_sec=0)
    prompts = asyncio.run(provider.derive_segments("sunset", 3))
    assert prompts == [
        "Scene 1: sunset",
        "Scene 2: Continuation of the story",
        "Scene 3: Continuation of the story",
    ]
