from __future__ import annotations

import asyncio
import json

import httpx

from courtside.services.notifier import CompletionNotifier


def test_disabled_without_url() -> None:
    notifier = CompletionNotifier("")
    assert notifier.enabled is False
    assert asyncio.run(notifier.recording_completed({"recording_id": "abc"})) is False


def test_posts_payload() -> None:
    received: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(204)

    notifier = CompletionNotifier("http://app.test/hooks/recordings", transport=httpx.MockTransport(handler))
    assert asyncio.run(notifier.recording_completed({"recording_id": "abc", "key": "recordings/abc.mp4"})) is True
    assert received == [{"recording_id": "abc", "key": "recordings/abc.mp4"}]


def test_failure_reported_not_raised() -> None:
    notifier = CompletionNotifier(
        "http://app.test/hooks/recordings",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    assert asyncio.run(notifier.recording_completed({"recording_id": "abc"})) is False
