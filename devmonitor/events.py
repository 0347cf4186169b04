"""
Event fan-out for directory mutations.

The directory publishes a named event after every successful mutation.
Delivery is best-effort and at most once per subscriber: a subscriber
that raises, a full subscriber queue, or an unreachable webhook loses
the event. Nothing is buffered for subscribers that are not connected.
"""

import queue
import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from .logger import StructuredLogger, get_logger
from .retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    exponential_backoff,
    should_retry_http_status,
)

Subscriber = Callable[[str, Any], None]

SESSION_CREATED = "session:created"
SESSION_UPDATED = "session:updated"
SESSION_DELETED = "session:deleted"
SESSION_MODE_CHANGED = "session:mode-changed"
SESSION_STATUS_CHANGED = "session:status-changed"
ARTIFACT_CREATED = "artifact:created"
ARTIFACT_UPDATED = "artifact:updated"
ARTIFACT_DELETED = "artifact:deleted"
DECISION_CREATED = "decision:created"
TOOL_CALL_CREATED = "tool-call:created"
TOOL_CALL_UPDATED = "tool-call:updated"
ERROR_CONTEXT_CREATED = "error-context:created"
ERROR_CONTEXT_UPDATED = "error-context:updated"


class EventBus:
    """In-process publish/subscribe hub."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._logger = logger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def subscribe(self, callback: Subscriber) -> Subscriber:
        """Register callback(event, data). Returns the callback for unsubscribe."""
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Subscriber) -> bool:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                return False
        return True

    def subscribe_queue(self, maxsize: int = 1000) -> "QueueSubscription":
        """Subscribe with a bounded queue; events are dropped when it is full."""
        subscription = QueueSubscription(self, maxsize=maxsize)
        self.subscribe(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, data: Any) -> int:
        """
        Deliver an event to every current subscriber.

        Args:
            event: Event name, e.g. "artifact:updated"
            data: JSON-serialisable payload

        Returns:
            Number of subscribers that accepted the event
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for callback in subscribers:
            try:
                callback(event, data)
            except Exception as e:
                self.logger.record_event_dropped()
                self.logger.warning(
                    "Dropping event for subscriber",
                    event=event,
                    subscriber=repr(callback),
                    error=str(e),
                )
                continue
            delivered += 1

        self.logger.record_event_published()
        self.logger.debug("Event published", event=event, delivered=delivered)
        return delivered


class SubscriberQueueFull(Exception):
    pass


class QueueSubscription:
    """Bounded queue subscriber, e.g. one per connected dashboard viewer."""

    def __init__(self, bus: EventBus, maxsize: int = 1000):
        self._bus = bus
        self._queue: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=maxsize)

    def __call__(self, event: str, data: Any) -> None:
        try:
            self._queue.put_nowait({"event": event, "data": data})
        except queue.Full:
            raise SubscriberQueueFull(f"Subscriber queue full, dropping {event}")

    def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next event, or None when nothing arrives within the timeout."""
        try:
            return self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[Dict[str, Any]]:
        events = []
        while True:
            item = self.get()
            if item is None:
                return events
            events.append(item)

    def close(self) -> None:
        """Disconnect. Events published afterwards are never seen."""
        self._bus.unsubscribe(self)


class WebhookError(Exception):
    """Raised when a webhook rejects an event or cannot be reached."""
    pass


class WebhookSubscriber:
    """
    Forward events to an HTTP endpoint as {"event": ..., "data": ...} JSON.

    Transient failures (connection errors, timeouts, retryable status codes)
    are retried with exponential backoff. After repeated failures the
    circuit opens and events are dropped until the recovery timeout passes.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        max_retries: int = 2,
        base_delay: float = 0.5,
        breaker: Optional[CircuitBreaker] = None,
        logger: Optional[StructuredLogger] = None,
        http_session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._logger = logger
        self._http = http_session or requests.Session()

        backoff_kwargs = {}
        if sleep is not None:
            backoff_kwargs["sleep"] = sleep
        self._post_with_retry = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, WebhookError),
            on_retry=self._on_retry,
            **backoff_kwargs,
        )(self._post)

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def __repr__(self) -> str:
        return f"WebhookSubscriber({self.url!r})"

    def _on_retry(self, attempt: int, exc: Exception, delay: float) -> None:
        self.logger.debug("Retrying webhook delivery", url=self.url, attempt=attempt, delay=delay, error=str(exc))

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        resp = self._http.post(self.url, json=payload, timeout=self.timeout)
        if should_retry_http_status(resp.status_code):
            raise WebhookError(f"Webhook returned retryable status {resp.status_code}")
        return resp

    def __call__(self, event: str, data: Any) -> None:
        payload = {"event": event, "data": data}
        try:
            resp = self.breaker.call(self._post_with_retry, payload)
        except CircuitOpenError:
            self.logger.record_webhook_delivery(False)
            raise
        except (RetryError, requests.exceptions.RequestException) as e:
            # RequestException here is a non-transient one, e.g. InvalidURL
            self.logger.record_webhook_delivery(False)
            self.logger.warning("Webhook delivery failed", url=self.url, event=event, error=str(e))
            raise

        if resp.status_code >= 400:
            self.logger.record_webhook_delivery(False)
            raise WebhookError(f"Webhook rejected {event} with status {resp.status_code}")
        self.logger.record_webhook_delivery(True)
