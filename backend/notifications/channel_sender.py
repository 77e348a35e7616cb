"""
Channel sender interface and concurrent channel fan-out.

Each channel (in-app, email, push) is a ChannelSender. The ChannelDispatcher
runs the senders for one notification concurrently, waits for all of them
(bounded by the channel timeout) and converts every outcome, including
exceptions and timeouts, into a SendResult.
"""

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import timedelta
from functools import partial
from typing import Callable

from models import Channel, Notification, SendResult, UserProfile
from notifications.errors import ChannelError

LateResultCallback = Callable[[Channel, SendResult], None]


class ChannelSender(ABC):
    """Delivers a notification through one channel."""

    channel: Channel
    # Synchronous senders do no I/O and run inline instead of on the pool
    synchronous: bool = False

    @abstractmethod
    def send(self, user: UserProfile, notification: Notification) -> SendResult:
        """Attempt delivery and report the outcome.

        Implementations should return SendResult.failed(...) for provider
        errors; raising ChannelError is accepted as well.
        """


class InAppSender(ChannelSender):
    """In-app delivery: the stored notification row is already visible to
    the user's inbox queries, so there is nothing left to transmit."""

    channel = Channel.IN_APP
    synchronous = True

    def send(self, user: UserProfile, notification: Notification) -> SendResult:
        return SendResult.sent()


def _result_from_exception(error: Exception) -> SendResult:
    if isinstance(error, ChannelError):
        return SendResult.failed(str(error), retryable=error.retryable)
    return SendResult.failed(f"{type(error).__name__}: {error}")


class _Attempt:
    """Records when a queued send actually started running."""

    def __init__(self):
        self.started = threading.Event()
        self.started_at = 0.0


def _timed_send(
    sender: ChannelSender,
    user: UserProfile,
    notification: Notification,
    attempt: _Attempt,
) -> SendResult:
    attempt.started_at = time.monotonic()
    attempt.started.set()
    return sender.send(user, notification)


def _forward_late_result(
    channel: Channel, on_late_result: LateResultCallback, future: Future
) -> None:
    if future.cancelled():
        return
    try:
        result = future.result()
    except Exception as e:
        result = _result_from_exception(e)
    on_late_result(channel, result)


class ChannelDispatcher:
    """Runs channel senders concurrently with per-attempt timeouts.

    Every channel gets its own worker pool, so a slow provider only queues
    its own sends. The timeout counts from the moment a send starts; time
    spent waiting for a free worker is bounded separately by
    `queue_timeout_seconds`.
    """

    def __init__(
        self,
        senders: list[ChannelSender],
        max_workers: int = 16,
        timeout_seconds: float = 10.0,
        queue_timeout_seconds: float | None = None,
    ):
        self.senders = {sender.channel: sender for sender in senders}
        self.timeout_seconds = timeout_seconds
        self.queue_timeout_seconds = (
            timeout_seconds if queue_timeout_seconds is None else queue_timeout_seconds
        )
        self._executors = {
            channel: ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix=f"{channel.value}-send"
            )
            for channel, sender in self.senders.items()
            if not sender.synchronous
        }

    @property
    def max_attempt_duration(self) -> timedelta:
        """Longest a dispatched send can stay unresolved: queue wait plus run time."""
        return timedelta(seconds=self.queue_timeout_seconds + self.timeout_seconds)

    def _run_inline(
        self, sender: ChannelSender, user: UserProfile, notification: Notification
    ) -> SendResult:
        try:
            return sender.send(user, notification)
        except Exception as e:
            return _result_from_exception(e)

    def dispatch(
        self,
        user: UserProfile,
        notification: Notification,
        channels: list[Channel],
        on_late_result: LateResultCallback | None = None,
    ) -> dict[Channel, SendResult]:
        """
        Send `notification` to `user` on every channel in `channels`.

        Returns once every channel has a result. A failing or hanging
        channel never affects the others.

        Args:
            on_late_result: Called with the real outcome of a send that
                finished after it was reported as timed out
        """
        results: dict[Channel, SendResult] = {}
        running: dict[Channel, tuple[Future, _Attempt]] = {}

        for channel in channels:
            sender = self.senders.get(channel)
            if sender is None:
                results[channel] = SendResult.failed(
                    f"No sender configured for channel {channel.value}"
                )
            elif sender.synchronous:
                results[channel] = self._run_inline(sender, user, notification)
            else:
                attempt = _Attempt()
                future = self._executors[channel].submit(
                    _timed_send, sender, user, notification, attempt
                )
                running[channel] = (future, attempt)

        # Deadlines are per channel, so waiting on them in turn is still concurrent
        for channel, (future, attempt) in running.items():
            results[channel] = self._await(channel, future, attempt, on_late_result)

        return results

    def _await(
        self,
        channel: Channel,
        future: Future,
        attempt: _Attempt,
        on_late_result: LateResultCallback | None,
    ) -> SendResult:
        if not attempt.started.wait(self.queue_timeout_seconds):
            if future.cancel():
                return SendResult.failed(
                    f"{channel.value} send queue full for "
                    f"{self.queue_timeout_seconds:g}s",
                    retryable=True,
                )
            # Cancel fails only once the send has started
            attempt.started.wait()

        remaining = attempt.started_at + self.timeout_seconds - time.monotonic()
        try:
            return future.result(timeout=max(remaining, 0.0))
        except FutureTimeoutError:
            if future.done():
                # Finished right at the deadline, or the sender raised TimeoutError
                error = future.exception()
                return future.result() if error is None else _result_from_exception(error)
            if on_late_result is not None:
                future.add_done_callback(
                    partial(_forward_late_result, channel, on_late_result)
                )
            return SendResult.failed(
                f"{channel.value} send timed out after {self.timeout_seconds:g}s",
                retryable=True,
            )
        except Exception as e:
            return _result_from_exception(e)

    def close(self) -> None:
        for executor in self._executors.values():
            executor.shutdown(wait=False, cancel_futures=True)
