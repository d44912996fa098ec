"""Shared fixtures: an in-memory session store and a scriptable clip provider."""

import asyncio

import pytest

from clipflow.exceptions import ProviderRequestError
from clipflow.orchestration.orchestrator import GenerationOrchestrator
from clipflow.providers.base import ClipData, ProviderKind, split_prompt_into_scenes
from clipflow.providers.reconciler import ProviderContext
from clipflow.sessions.store import SessionStore


class FakeProvider:
    """
    Provider double.

    failures maps index -> message and is consumed on use, so a later retry
    of that index succeeds unless a new failure is queued. block(index)
    makes the next call for that index wait until released.
    """

    def __init__(self, kind=ProviderKind.GROK, configured=True):
        self.kind = kind
        self.configured = configured
        self.failures = {}
        self.calls = []
        self.derive_error = None
        self._gates = {}

    def is_configured(self):
        return self.configured

    def block(self, index):
        started, release = asyncio.Event(), asyncio.Event()
        self._gates[index] = (started, release)
        return started, release

    async def derive_segments(self, prompt, clip_count, reference_images=None):
        await asyncio.sleep(0)
        if self.derive_error is not None:
            raise self.derive_error
        return split_prompt_into_scenes(prompt, clip_count)

    async def generate_clip(self, prompt, duration, index, reference_images=None):
        self.calls.append((prompt, duration, index, list(reference_images or [])))
        gate = self._gates.pop(index, None)
        if gate is not None:
            started, release = gate
            started.set()
            await release.wait()
        await asyncio.sleep(0)
        failure = self.failures.pop(index, None)
        if failure is not None:
            raise ProviderRequestError(failure)
        return ClipData(
            url=f"https://cdn.example.com/clip_{index}.mp4",
            duration=duration,
            prompt=prompt,
        )

    def called_indices(self):
        return [call[2] for call in self.calls]


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def session_store():
    store = SessionStore.open(":memory:")
    yield store
    store.close()


@pytest.fixture
def fake_provider():
    return FakeProvider(ProviderKind.GROK)


@pytest.fixture
def provider_context(fake_provider):
    return ProviderContext(
        {ProviderKind.GROK: fake_provider, ProviderKind.DEMO: FakeProvider(ProviderKind.DEMO)},
        active=ProviderKind.GROK,
    )


@pytest.fixture
def orchestrator(session_store, provider_context):
    return GenerationOrchestrator(session_store, provider_context)
