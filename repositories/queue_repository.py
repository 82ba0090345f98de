"""
Work queue repository (Supabase Queues).

Supabase Queues are pgmq queues exposed through RPC functions in the
`pgmq_public` schema:
- send(queue_name, message, sleep_seconds) -> message id
- read(queue_name, sleep_seconds, n)       -> messages; sleep_seconds is the
                                              visibility timeout
- delete(queue_name, message_id)           -> boolean

pgmq has no native dead-letter target, so this adapter applies the redrive
policy on receive: a message handed out more than `max_receive_count` times is
forwarded to the dead-letter queue and deleted instead of being returned.
pgmq_public.read does not long-poll either; `wait_seconds` is honoured by
re-reading on a short interval until something arrives or the wait elapses.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Mapping, Optional

from postgrest.exceptions import APIError
from supabase import Client  # type: ignore[import-not-found]

from domain.errors import QueueError
from domain.time import parse_utc_datetime
from repositories.contracts import QueueMessage

logger = logging.getLogger(__name__)

_QUEUE_SCHEMA = "pgmq_public"

MAX_MESSAGES_PER_RECEIVE = 10
MAX_WAIT_SECONDS = 20


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def dead_letter_queue_name(queue_name: str) -> str:
    return f"{queue_name}_dlq"


class SupabaseWorkQueue:
    """WorkQueue backed by Supabase Queues (pgmq)."""

    def __init__(
        self,
        client: Client,
        visibility_timeout_seconds: int = 300,
        max_receive_count: int = 3,
        poll_interval_seconds: float = 1.0,
        dead_letter_queues: Optional[Mapping[str, str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._visibility_timeout = visibility_timeout_seconds
        self._max_receive_count = max_receive_count
        self._poll_interval = poll_interval_seconds
        self._dead_letter_queues = dict(dead_letter_queues or {})
        self._sleep = sleep
        self._clock = clock

    def _rpc(self, function: str, params: Mapping[str, Any]) -> Any:
        try:
            response = self._client.schema(_QUEUE_SCHEMA).rpc(function, dict(params)).execute()
        except APIError as e:
            raise QueueError(f"Queue {function} failed for {params.get('queue_name')}: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise QueueError(f"Queue {function} failed for {params.get('queue_name')}: {error}")
        return getattr(response, "data", None)

    def send(self, queue_name: str, payload: Mapping[str, Any]) -> str:
        """
        Enqueue a JSON payload.

        Returns:
            The message id assigned by the queue
        """

        data = self._rpc(
            "send",
            {"queue_name": queue_name, "message": dict(payload), "sleep_seconds": 0},
        )
        message_id = _first_scalar(data)
        if message_id is None:
            raise QueueError(f"Queue send to {queue_name} returned no message id")
        logger.debug("Sent message %s to queue %s", message_id, queue_name)
        return str(message_id)

    def receive(self, queue_name: str, max_messages: int = 10, wait_seconds: int = 0) -> List[QueueMessage]:
        """
        Receive up to `max_messages` (1..10), waiting up to `wait_seconds` (0..20).

        Messages past the receive limit are dead-lettered and not returned.
        """

        max_messages = clamp(max_messages, 1, MAX_MESSAGES_PER_RECEIVE)
        wait_seconds = clamp(wait_seconds, 0, MAX_WAIT_SECONDS)
        deadline = self._clock() + wait_seconds

        while True:
            rows = self._rpc(
                "read",
                {
                    "queue_name": queue_name,
                    "sleep_seconds": self._visibility_timeout,
                    "n": max_messages,
                },
            ) or []

            messages: List[QueueMessage] = []
            for row in rows:
                message = _row_to_message(row)
                if message.receive_count > self._max_receive_count:
                    self._dead_letter(queue_name, message)
                    continue
                messages.append(message)

            if messages:
                return messages

            remaining = deadline - self._clock()
            if remaining <= 0:
                return []
            self._sleep(min(self._poll_interval, remaining))

    def delete(self, queue_name: str, message: QueueMessage) -> None:
        data = self._rpc(
            "delete",
            {"queue_name": queue_name, "message_id": int(message.message_id)},
        )
        if _first_scalar(data) is False:
            raise QueueError(f"Message {message.message_id} not found in queue {queue_name}")

    def _dead_letter(self, queue_name: str, message: QueueMessage) -> None:
        target = self._dead_letter_queues.get(queue_name) or dead_letter_queue_name(queue_name)
        logger.warning(
            "Message %s exceeded %s receives on %s, moving to %s",
            message.message_id, self._max_receive_count, queue_name, target,
        )
        self.send(target, message.body)
        self.delete(queue_name, message)


def _first_scalar(data: Any) -> Any:
    """Unwrap an RPC result that may be a scalar, a list, or a list of single-key rows."""

    if isinstance(data, list):
        if not data:
            return None
        data = data[0]
    if isinstance(data, Mapping) and len(data) == 1:
        return next(iter(data.values()))
    return data


def _row_to_message(row: Mapping[str, Any]) -> QueueMessage:
    enqueued = row.get("enqueued_at")
    return QueueMessage(
        message_id=str(row["msg_id"]),
        body=row.get("message") or {},
        receive_count=int(row.get("read_ct") or 1),
        enqueued_at=parse_utc_datetime(enqueued) if enqueued else None,
    )


__all__ = [
    "SupabaseWorkQueue",
    "clamp",
    "dead_letter_queue_name",
    "MAX_MESSAGES_PER_RECEIVE",
    "MAX_WAIT_SECONDS",
]
