import asyncio
import io

import pytest
from PIL import Image

from app.services import inference
from app.services.inference import HuggingFaceDetector, InferenceClient, RoboflowDetector


def png(size):
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


def test_image_ok():
    assert inference.image_ok(png((64, 48)))
    assert not inference.image_ok(png((4, 4)))
    assert not inference.image_ok(b"not an image")


def test_client_requires_session():
    client = InferenceClient(huggingface_key="k")
    with pytest.raises(RuntimeError):
        client._require_session()


def test_degrades_without_key_or_bytes():
    async def run():
        async with InferenceClient(huggingface_key="") as client:
            assert client.session is not None
            assert await client.embed_text("black wallet") is None
            assert await client.embed_image(None) is None
            assert await HuggingFaceDetector(client, "m").detect("u", None) == []
            assert await RoboflowDetector(client, api_key="").detect("u", b"x") == []
        return client

    client = asyncio.run(run())
    assert client.session is None


def test_post_failure_becomes_empty_result(monkeypatch):
    async def failing_post(service, url, **kwargs):
        raise inference.ExternalServiceUnavailable(f"{service} http 503")

    async def run():
        async with InferenceClient(huggingface_key="k") as client:
            monkeypatch.setattr(client, "_post", failing_post)
            return (
                await client.embed_text("black wallet"),
                await client.embed_image(b"bytes"),
                await HuggingFaceDetector(client, "m").detect("u", b"bytes"),
                await RoboflowDetector(client, api_key="rk").detect("u", b"bytes"),
            )

    assert asyncio.run(run()) == (None, None, [], [])


def test_build_detectors(monkeypatch):
    monkeypatch.setattr(inference.settings, "DETECTOR_MODELS", "a/one, b/two,")
    detectors = inference.build_detectors(InferenceClient())
    assert [d.name for d in detectors] == ["a/one", "b/two", inference.ROBOFLOW_MODEL_NAME]
