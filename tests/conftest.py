"""
Pytest Configuration and Fixtures

Fake collaborators for the refinement engine and shared sample data.
"""

import asyncio
import random
from typing import Optional

import pytest

from image_refiner.engine import RefinementEngine
from image_refiner.modes import EMOJI_MODE, IMAGE_MODE
from image_refiner.schemas import ImageAnalysis, ImprovementDirection


def make_analysis(count: int = 3, is_optimal: bool = False) -> ImageAnalysis:
    """Analysis with ``count`` numbered improvement directions."""
    return ImageAnalysis(
        description="A cartoon frog mid-jump",
        is_optimal=is_optimal,
        improvement_directions=[
            ImprovementDirection(
                title=f"Direction {i}",
                description=f"Improve aspect {i}",
                prompt=f"image mode: a jumping frog, variation {i}",
            )
            for i in range(count)
        ],
    )


class FakeEnhancer:
    def __init__(self, result: str = "image mode: a jumping frog, dynamic pose", error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def enhance(self, prompt, output_mode, image_description=None, improvements=None):
        self.calls.append((prompt, output_mode.id))
        if self.error:
            raise self.error
        return self.result


class FakeGenerator:
    """Returns queued URLs (or raises queued exceptions) in call order."""

    def __init__(self, results: Optional[list] = None):
        self.results = list(results or [])
        self.calls = []

    async def generate(self, prompt, output_mode, seed):
        self.calls.append((prompt, output_mode.id, seed))
        result = self.results.pop(0) if self.results else f"https://img.test/{len(self.calls)}.png"
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        pass


class BlockingGenerator(FakeGenerator):
    """Holds every generation until ``release`` is set."""

    def __init__(self, results: Optional[list] = None):
        super().__init__(results)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate(self, prompt, output_mode, seed):
        self.started.set()
        await self.release.wait()
        return await super().generate(prompt, output_mode, seed)


class FakeCritic:
    """Returns queued analyses (or raises queued exceptions) in call order."""

    def __init__(self, results: Optional[list] = None):
        self.results = list(results or [])
        self.calls = []

    async def critique(self, image_url, prompt, output_mode):
        self.calls.append((image_url, prompt, output_mode.id))
        result = self.results.pop(0) if self.results else make_analysis()
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        pass


@pytest.fixture
def image_mode():
    return IMAGE_MODE


@pytest.fixture
def emoji_mode():
    return EMOJI_MODE


@pytest.fixture
def enhancer():
    return FakeEnhancer()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def critic():
    return FakeCritic()


@pytest.fixture
def engine(enhancer, generator, critic):
    return RefinementEngine(
        enhancer=enhancer,
        generator=generator,
        critic=critic,
        rng=random.Random(42),
    )
