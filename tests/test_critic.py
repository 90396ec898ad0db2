"""
Tests for the Image Critic

Tests for image_refiner/critic.py with a mocked HTTP transport and fake
chat models.
"""

import asyncio
import base64
import json

import httpx
import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from image_refiner.critic import (
    ImageCritic,
    fallback_analysis,
    normalize_response,
    parse_analysis,
)
from image_refiner.exceptions import (
    CritiqueTimeout,
    InvalidCritiqueShape,
    TransportFailure,
    UnsupportedMediaType,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"

VALID_CRITIQUE = {
    "description": "A green frog caught mid-leap",
    "isOptimal": False,
    "improvementDirections": [
        {
            "title": f"Direction {i}",
            "description": f"Improve aspect {i}",
            "prompt": f"image mode: frog variation {i}",
        }
        for i in range(3)
    ],
}


class FailingModel:
    async def ainvoke(self, messages):
        raise RuntimeError("502 Bad Gateway")


class SlowModel:
    async def ainvoke(self, messages):
        await asyncio.sleep(5)


def image_transport(content_type="image/png", status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status, headers=headers, content=PNG_BYTES)

    return httpx.MockTransport(handler)


def make_critic(response=None, model=None, transport=None, **kwargs) -> ImageCritic:
    if model is None:
        model = FakeListChatModel(responses=[response])
    client = httpx.AsyncClient(transport=transport or image_transport())
    return ImageCritic(model=model, http_client=client, **kwargs)


class TestParsing:
    """Tests for response normalization and parsing."""

    def test_normalize_collapses_whitespace(self):
        assert normalize_response('  {"a":\n\t"b",\r\n   "c": 1}  ') == '{"a": "b", "c": 1}'

    def test_normalize_strips_control_characters(self):
        assert normalize_response("frog\x00\x07 jump") == "frog jump"

    def test_parse_valid_critique(self):
        analysis = parse_analysis(json.dumps(VALID_CRITIQUE))

        assert analysis.description == "A green frog caught mid-leap"
        assert analysis.is_optimal is False
        assert len(analysis.improvement_directions) == 3
        assert analysis.improvement_directions[1].prompt == "image mode: frog variation 1"
        assert not analysis.is_fallback

    def test_parse_rejects_wrong_direction_count(self):
        data = dict(VALID_CRITIQUE, improvementDirections=VALID_CRITIQUE["improvementDirections"][:2])

        with pytest.raises(InvalidCritiqueShape):
            parse_analysis(json.dumps(data))

    def test_parse_rejects_direction_without_prompt(self):
        directions = [dict(d) for d in VALID_CRITIQUE["improvementDirections"]]
        del directions[0]["prompt"]

        with pytest.raises(InvalidCritiqueShape):
            parse_analysis(json.dumps(dict(VALID_CRITIQUE, improvementDirections=directions)))

    def test_parse_rejects_non_object(self):
        with pytest.raises(InvalidCritiqueShape):
            parse_analysis("[1, 2, 3]")

    def test_fallback_analysis(self):
        analysis = fallback_analysis("Looks great!", "image mode: frog")

        assert analysis.description == "Looks great!"
        assert analysis.is_optimal is False
        assert analysis.is_fallback
        assert len(analysis.improvement_directions) == 1
        assert analysis.improvement_directions[0].prompt == "image mode: frog"


class TestFetchImage:
    """Tests for downloading and validating images."""

    @pytest.mark.asyncio
    async def test_returns_media_type_and_base64(self):
        critic = make_critic("{}")

        media_type, data = await critic.fetch_image("https://img.test/1.png")

        assert media_type == "image/png"
        assert base64.b64decode(data) == PNG_BYTES

    @pytest.mark.asyncio
    async def test_content_type_parameters_ignored(self):
        critic = make_critic("{}", transport=image_transport("image/webp; charset=binary"))

        media_type, _ = await critic.fetch_image("https://img.test/1.webp")

        assert media_type == "image/webp"

    @pytest.mark.asyncio
    async def test_missing_content_type_defaults_to_jpeg(self):
        critic = make_critic("{}", transport=image_transport(content_type=None))

        media_type, _ = await critic.fetch_image("https://img.test/1")

        assert media_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_unsupported_media_type(self):
        critic = make_critic("{}", transport=image_transport("image/svg+xml"))

        with pytest.raises(UnsupportedMediaType) as exc_info:
            await critic.fetch_image("https://img.test/1.svg")

        assert exc_info.value.content_type == "image/svg+xml"

    @pytest.mark.asyncio
    async def test_http_error_is_transport_failure(self):
        critic = make_critic("{}", transport=image_transport(status=404))

        with pytest.raises(TransportFailure):
            await critic.fetch_image("https://img.test/missing.png")

    @pytest.mark.asyncio
    async def test_fetch_timeout_is_transport_failure(self, image_mode):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        critic = make_critic("{}", transport=httpx.MockTransport(handler))

        with pytest.raises(TransportFailure) as exc_info:
            await critic.critique("https://img.test/slow.png", "prompt", image_mode)

        assert exc_info.value.stage == "critique"
        assert "Timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_fetch_timeout_caps_slow_body(self):
        async def trickle():
            for _ in range(20):
                await asyncio.sleep(0.05)
                yield b"x" * 8

        def handler(request):
            return httpx.Response(200, headers={"content-type": "image/png"}, content=trickle())

        critic = make_critic("{}", transport=httpx.MockTransport(handler), fetch_timeout=0.2)

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(TransportFailure) as exc_info:
            await critic.fetch_image("https://img.test/slow.png")

        assert loop.time() - started < 0.9
        assert "Timed out" in exc_info.value.message


class TestCritique:
    """Tests for the full critique call."""

    @pytest.mark.asyncio
    async def test_valid_response(self, image_mode):
        critic = make_critic(json.dumps(VALID_CRITIQUE, indent=2))

        analysis = await critic.critique("https://img.test/1.png", "prompt", image_mode)

        assert len(analysis.improvement_directions) == 3
        assert not analysis.is_fallback

    @pytest.mark.asyncio
    async def test_missing_directions_falls_back(self, image_mode):
        critic = make_critic('{"description": "foo"}')

        analysis = await critic.critique("https://img.test/1.png", "the prompt", image_mode)

        assert analysis.is_fallback
        assert analysis.is_optimal is False
        assert analysis.description == '{"description": "foo"}'
        assert len(analysis.improvement_directions) == 1
        assert analysis.improvement_directions[0].prompt == "the prompt"

    @pytest.mark.asyncio
    async def test_non_json_falls_back(self, image_mode):
        critic = make_critic("Sorry,\n\nI cannot   produce JSON today.")

        analysis = await critic.critique("https://img.test/1.png", "the prompt", image_mode)

        assert analysis.is_fallback
        assert analysis.description == "Sorry, I cannot produce JSON today."

    @pytest.mark.asyncio
    async def test_provider_error_is_transport_failure(self, image_mode):
        critic = make_critic(model=FailingModel())

        with pytest.raises(TransportFailure) as exc_info:
            await critic.critique("https://img.test/1.png", "prompt", image_mode)

        assert "502" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_empty_response_is_transport_failure(self, image_mode):
        critic = make_critic("   ")

        with pytest.raises(TransportFailure):
            await critic.critique("https://img.test/1.png", "prompt", image_mode)

    @pytest.mark.asyncio
    async def test_response_timeout(self, image_mode):
        critic = make_critic(model=SlowModel(), response_timeout=0.01)

        with pytest.raises(CritiqueTimeout) as exc_info:
            await critic.critique("https://img.test/1.png", "prompt", image_mode)

        assert exc_info.value.timeout == 0.01

    @pytest.mark.asyncio
    async def test_unsupported_media_type_skips_model(self, image_mode):
        critic = make_critic(model=FailingModel(), transport=image_transport("text/html"))

        with pytest.raises(UnsupportedMediaType):
            await critic.critique("https://img.test/page", "prompt", image_mode)
