"""
Tests for the client-side delivery queue.
"""

import datetime
import json

import httpx

from secwatch.client import transport as transport_module
from secwatch.client.transport import TransportQueue

ENDPOINT = "http://ingest.test/ingest/csp-report"


def recording_client(sent, fail_on=()):
    def handler(request: httpx.Request) -> httpx.Response:
        event = json.loads(request.content)["csp-report"]
        if event["eventType"] in fail_on:
            return httpx.Response(503)
        sent.append(event)
        return httpx.Response(204)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_fifo_delivery_wrapped_as_csp_report():
    sent = []
    queue = TransportQueue(ENDPOINT, client=recording_client(sent), send_delay=0)

    for name in ("first", "second", "third"):
        queue.enqueue({"eventType": name})
    assert queue.is_processing

    await queue.drain()

    assert [e["eventType"] for e in sent] == ["first", "second", "third"]
    assert len(queue) == 0
    assert queue.is_processing is False


async def test_failed_sends_are_dropped():
    sent = []
    queue = TransportQueue(ENDPOINT, client=recording_client(sent, fail_on={"bad"}), send_delay=0)

    queue.enqueue({"eventType": "bad"})
    queue.enqueue({"eventType": "good"})
    await queue.drain()

    assert [e["eventType"] for e in sent] == ["good"]
    assert len(queue) == 0


async def test_network_errors_are_dropped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    queue = TransportQueue(
        ENDPOINT,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        send_delay=0,
    )
    queue.enqueue({"eventType": "lost"})

    await queue.drain()

    assert len(queue) == 0


async def test_single_drain_task():
    sent = []
    queue = TransportQueue(ENDPOINT, client=recording_client(sent), send_delay=0)

    queue.enqueue({"eventType": "a"})
    task = queue._drain_task
    queue.enqueue({"eventType": "b"})

    assert queue._drain_task is task
    await queue.drain()
    assert [e["eventType"] for e in sent] == ["a", "b"]


def test_enqueue_outside_a_loop_waits_for_drain():
    queue = TransportQueue(ENDPOINT, client=recording_client([]))

    queue.enqueue({"eventType": "later"})

    assert len(queue) == 1
    assert queue.is_processing is False
    queue.clear()
    assert len(queue) == 0


async def test_close_releases_owned_client_only():
    owned = TransportQueue(ENDPOINT)
    await owned.close()
    assert owned._client.is_closed

    shared = recording_client([])
    borrowed = TransportQueue(ENDPOINT, client=shared)
    await borrowed.close()
    assert not shared.is_closed
    await shared.aclose()


async def test_unencodable_event_is_dropped():
    sent = []
    queue = TransportQueue(ENDPOINT, client=recording_client(sent), send_delay=0)

    queue.enqueue({"eventType": "stamped", "payload": {"when": datetime.datetime(2026, 10, 19)}})
    queue.enqueue({"eventType": "good"})
    await queue.drain()

    assert [e["eventType"] for e in sent] == ["good"]
    assert len(queue) == 0
    assert queue.is_processing is False


async def test_pause_between_sends_only(monkeypatch):
    timeline = []

    async def fake_sleep(delay):
        timeline.append(("sleep", delay))

    def handler(request):
        timeline.append(("send", json.loads(request.content)["csp-report"]["eventType"]))
        return httpx.Response(204)

    monkeypatch.setattr(transport_module.asyncio, "sleep", fake_sleep)
    queue = TransportQueue(ENDPOINT, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    for name in ("a", "b", "c"):
        queue.enqueue({"eventType": name})
    await queue.drain()

    assert timeline == [
        ("send", "a"), ("sleep", 0.1),
        ("send", "b"), ("sleep", 0.1),
        ("send", "c"),
    ]
