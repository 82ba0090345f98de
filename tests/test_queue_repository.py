"""
Tests for `repositories/queue_repository.py`.

Runs the adapter against a recorded Supabase client double; no network.
"""

from __future__ import annotations

import pytest
from postgrest.exceptions import APIError

from domain.errors import QueueError
from repositories.contracts import QueueMessage
from repositories.queue_repository import SupabaseWorkQueue, clamp, dead_letter_queue_name
from fakes import FakeClock, FakeResponse, FakeSupabaseClient


def _row(msg_id: int, read_ct: int = 1, body=None) -> dict:
    return {
        "msg_id": msg_id,
        "read_ct": read_ct,
        "enqueued_at": "2025-03-01T10:00:00.123456+00:00",
        "vt": "2025-03-01T10:05:00+00:00",
        "message": body if body is not None else {"id": f"rec-{msg_id}"},
    }


def _queue(client, clock=None, sleeps=None, **kwargs) -> SupabaseWorkQueue:
    clock = clock or FakeClock()

    def sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)
        clock.advance(seconds)

    return SupabaseWorkQueue(client, sleep=sleep, clock=clock, **kwargs)


def test_clamp() -> None:
    assert clamp(0, 1, 10) == 1
    assert clamp(5, 1, 10) == 5
    assert clamp(11, 1, 10) == 10


def test_dead_letter_queue_name() -> None:
    assert dead_letter_queue_name("billing") == "billing_dlq"


def test_send_returns_message_id() -> None:
    client = FakeSupabaseClient([FakeResponse([42])])

    message_id = _queue(client).send("billing", {"id": "rec-1"})

    assert message_id == "42"
    (query,) = client.executed
    assert client.schemas == ["pgmq_public"]
    assert query.target == "send"
    assert query.params == {"queue_name": "billing", "message": {"id": "rec-1"}, "sleep_seconds": 0}


def test_send_without_id_is_an_error() -> None:
    client = FakeSupabaseClient([FakeResponse([])])

    with pytest.raises(QueueError):
        _queue(client).send("billing", {"id": "rec-1"})


def test_receive_maps_rows_to_messages() -> None:
    client = FakeSupabaseClient([FakeResponse([_row(1), _row(2, read_ct=2)])])

    messages = _queue(client, visibility_timeout_seconds=120).receive("billing", 5, 0)

    assert [m.message_id for m in messages] == ["1", "2"]
    assert messages[0].body == {"id": "rec-1"}
    assert messages[1].receive_count == 2
    assert messages[0].enqueued_at.microsecond == 123456
    assert client.executed[0].params == {"queue_name": "billing", "sleep_seconds": 120, "n": 5}


def test_receive_clamps_batch_size() -> None:
    client = FakeSupabaseClient([FakeResponse([_row(1)])])

    _queue(client).receive("billing", 50, 99)

    assert client.executed[0].params["n"] == 10


def test_receive_polls_until_a_message_arrives() -> None:
    client = FakeSupabaseClient([FakeResponse([]), FakeResponse([]), FakeResponse([_row(7)])])
    sleeps = []

    messages = _queue(client, sleeps=sleeps, poll_interval_seconds=1.0).receive("billing", 10, 5)

    assert [m.message_id for m in messages] == ["7"]
    assert sleeps == [1.0, 1.0]


def test_receive_gives_up_after_the_wait() -> None:
    client = FakeSupabaseClient([FakeResponse([])] * 10)
    sleeps = []

    messages = _queue(client, sleeps=sleeps, poll_interval_seconds=1.5).receive("billing", 10, 2)

    assert messages == []
    assert sleeps == [1.5, 0.5]
    assert len(client.executed) == 3


def test_receive_without_wait_reads_once() -> None:
    client = FakeSupabaseClient([FakeResponse([])])

    assert _queue(client).receive("billing", 10, 0) == []
    assert len(client.executed) == 1


def test_messages_past_the_receive_limit_are_dead_lettered() -> None:
    client = FakeSupabaseClient([
        FakeResponse([_row(1, read_ct=4), _row(2, read_ct=1)]),
        FakeResponse([99]),
        FakeResponse([True]),
    ])

    messages = _queue(client, max_receive_count=3).receive("billing", 10, 0)

    assert [m.message_id for m in messages] == ["2"]
    read, send, delete = client.executed
    assert send.target == "send"
    assert send.params["queue_name"] == "billing_dlq"
    assert send.params["message"] == {"id": "rec-1"}
    assert delete.target == "delete"
    assert delete.params == {"queue_name": "billing", "message_id": 1}


def test_dead_letter_target_can_be_overridden() -> None:
    client = FakeSupabaseClient([
        FakeResponse([_row(1, read_ct=2)]),
        FakeResponse([5]),
        FakeResponse([True]),
    ])

    _queue(client, max_receive_count=1, dead_letter_queues={"billing": "billing_failures"}).receive("billing")

    assert client.executed[1].params["queue_name"] == "billing_failures"


def test_delete_of_unknown_message_is_an_error() -> None:
    client = FakeSupabaseClient([FakeResponse([False])])

    with pytest.raises(QueueError):
        _queue(client).delete("billing", QueueMessage(message_id="3", body={}))


def test_api_errors_become_queue_errors() -> None:
    client = FakeSupabaseClient([APIError({"message": "queue does not exist", "code": "42P01"})])

    with pytest.raises(QueueError) as excinfo:
        _queue(client).receive("missing", 10, 0)

    assert "missing" in str(excinfo.value)
