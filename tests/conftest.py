"""Shared test fixtures for object_finder tests."""

import asyncio
import time

import numpy as np
import cv2
import pytest

from object_finder.catalog import Catalog, CatalogObject
from object_finder.embedding import EmbeddingExtractor
from object_finder.errors import SourceUnavailable


class FixedModel:
    """Model stand-in that always returns the same vector."""

    def __init__(self, vector, delay: float = 0.0):
        self.vector = np.asarray(vector, dtype=np.float32)
        self.delay = delay
        self.calls = 0

    def infer(self, batch):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.vector.reshape(1, -1)


class ChannelMeanModel:
    """Model stand-in whose features are the per-channel means of the batch."""

    def infer(self, batch):
        return batch.mean(axis=(2, 3))


class FakeSource:
    """Frame source that plays back a list of frames, repeating the last one."""

    def __init__(self, frames, deny: bool = False):
        self.frames = list(frames)
        self.deny = deny
        self.acquired = 0
        self.released = 0
        self.reads = 0

    def acquire(self):
        if self.deny:
            raise SourceUnavailable("Permission denied")
        self.acquired += 1

    def read(self):
        self.reads += 1
        if len(self.frames) > 1:
            return self.frames.pop(0)
        return self.frames[0] if self.frames else None

    def release(self):
        self.released += 1


def make_object(object_id, name, features, description=""):
    return CatalogObject(
        id=object_id,
        name=name,
        description=description,
        features=tuple(np.asarray(f, dtype=np.float32) for f in features),
    )


@pytest.fixture
def ready_frame():
    """A small, fully decoded RGB frame."""
    return np.full((32, 32, 3), 128, dtype=np.uint8)


@pytest.fixture
def empty_frame():
    """A frame from a video element that is not producing pixels yet."""
    return np.zeros((0, 0, 3), dtype=np.uint8)


@pytest.fixture
def mug_catalog():
    return Catalog([make_object(1, "Mug", [[1, 0, 0]], "Blue coffee mug")])


@pytest.fixture
def mixed_catalog():
    return Catalog([
        make_object(1, "Mug", [[1, 0, 0]]),
        make_object(2, "Lamp", [[0, 1, 0], [0.1, 0.9, 0.1]]),
        make_object(3, "Cup", [[0.99, 0.05, 0]]),
        make_object(4, "Bare", []),
    ])


@pytest.fixture
def extractor_for():
    """Build an extractor whose model always yields the given vector."""
    def factory(vector, delay: float = 0.0):
        return EmbeddingExtractor(model=FixedModel(vector, delay=delay))
    return factory


@pytest.fixture
def wait_until():
    """Await a condition inside the running loop, failing after a timeout."""
    async def waiter(predicate, timeout: float = 2.0):
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.001)
    return waiter


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img
