"""
Subscription Module

This module turns a connection into a long-lived receive loop that delivers
published messages to a handler until every channel is unsubscribed or the
connection fails.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Set

from respclient.core.connection import Connection
from respclient.exceptions import ProtocolError, RespError, ResponseError, UsageError
from respclient.protocol.resp import Command, Reply, ReplyKind

logger = logging.getLogger(__name__)

CONFIRMATION_POLL_INTERVAL = 0.05

MessageHandler = Callable[[str, str], None]
ConfirmationHandler = Callable[[str, int], None]


class Subscription:
    """Delivers channel messages from a dedicated connection to a handler."""

    def __init__(self, connection: Connection,
                 on_message: Optional[MessageHandler] = None,
                 on_subscribe: Optional[ConfirmationHandler] = None,
                 on_unsubscribe: Optional[ConfirmationHandler] = None):
        """
        Initialize a subscription.

        Args:
            connection: An open connection used exclusively by this subscription
            on_message: Called with (channel, payload) for every message
            on_subscribe: Called with (channel, count) for every subscribe confirmation
            on_unsubscribe: Called with (channel, count) for every unsubscribe confirmation
        """
        self.connection = connection
        self.on_message = on_message
        self.on_subscribe = on_subscribe
        self.on_unsubscribe = on_unsubscribe

        self.channels: Set[str] = set()
        self.subscribed = threading.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def subscribe_to_channels(self, *channels: str) -> None:
        """
        Subscribe and block, delivering messages until the last channel is
        unsubscribed.

        Only a loop ended by the last unsubscribe confirmation hands the
        connection back for regular commands. Any error ending the loop,
        including one raised by a handler, fails the connection, since the
        server still considers it subscribed.

        Raises:
            UsageError: If no channel is given or the loop is already running
            ConnectionError: If the connection fails while waiting for messages
        """
        if not channels:
            raise UsageError("subscribe_to_channels() needs at least one channel")
        if self._running:
            raise UsageError("Subscription loop is already running")

        self.connection.send(Command.build("SUBSCRIBE", *channels, encoding=self.connection.encoding))
        self.connection.enter_subscription_mode()
        self._running = True
        logger.info(f"Subscribing to channels: {', '.join(channels)}")

        try:
            self._receive_loop()
        except BaseException as e:
            self.connection.fail(f"subscription loop ended with error: {e!r}")
            raise
        else:
            self.connection.leave_subscription_mode()
        finally:
            self._running = False
            self.subscribed.clear()
            logger.info("Subscription loop ended")

    def unsubscribe_from_channels(self, *channels: str) -> None:
        """
        Ask the server to unsubscribe from some channels, or from all of them
        when none are given. May be called from another thread; the loop ends
        once the confirmation for the last channel arrives.

        Raises:
            UsageError: If the loop has not confirmed a subscription yet
        """
        if not self._running or not self.subscribed.is_set():
            raise UsageError("Subscription loop is not running or not yet subscribed")
        self.connection.send(Command.build("UNSUBSCRIBE", *channels, encoding=self.connection.encoding))

    def run_in_thread(self, *channels: str) -> "SubscriptionThread":
        """Start the receive loop in an owned worker thread."""
        thread = SubscriptionThread(self, list(channels))
        thread.start()
        return thread

    def _receive_loop(self) -> None:
        while True:
            reply = self.connection.receive()
            kind, elements = self._unpack(reply)

            if kind == "message":
                channel, payload = self._text(elements[1]), self._text(elements[2])
                logger.debug(f"Message received on channel '{channel}'")
                if self.on_message:
                    self.on_message(channel, payload)

            elif kind == "subscribe":
                channel, count = self._text(elements[1]), self._count(elements[2])
                self.channels.add(channel)
                self.subscribed.set()
                if self.on_subscribe:
                    self.on_subscribe(channel, count)

            elif kind == "unsubscribe":
                channel, count = self._text(elements[1]), self._count(elements[2])
                if channel is not None:
                    self.channels.discard(channel)
                if self.on_unsubscribe:
                    self.on_unsubscribe(channel, count)
                if count == 0:
                    return

            else:
                logger.debug(f"Ignoring '{kind}' reply in subscription mode")

    def _unpack(self, reply: Reply):
        if reply.is_error:
            raise ResponseError(self._text(reply))
        if reply.kind is not ReplyKind.ARRAY or not reply.value:
            raise ProtocolError(f"Expected Array reply in subscription mode, got {reply.kind.label}")

        elements: List[Reply] = reply.value
        kind = self._text(elements[0])
        if kind in ("message", "subscribe", "unsubscribe") and len(elements) != 3:
            raise ProtocolError(f"Expected 3 elements in '{kind}' reply, got {len(elements)}")
        return kind, elements

    def _text(self, element: Reply) -> Optional[str]:
        if element.kind not in (ReplyKind.BULK_STRING, ReplyKind.SIMPLE_STRING, ReplyKind.ERROR):
            raise ProtocolError(f"Expected Bulk String reply, got {element.kind.label}")
        if element.value is None:
            return None
        return element.value.decode(self.connection.encoding)

    def _count(self, element: Reply) -> int:
        if element.kind is not ReplyKind.INTEGER:
            raise ProtocolError(f"Expected Integer reply, got {element.kind.label}")
        return element.value


class SubscriptionThread(threading.Thread):
    """
    An owned worker thread running a subscription loop.

    The thread is not a daemon: callers stop() and join it before exiting.
    Whatever ended the loop with an error is kept in ``exception``.
    """

    def __init__(self, subscription: Subscription, channels: List[str]):
        super().__init__(name=f"subscription-{','.join(channels)}")
        self.subscription = subscription
        self.channels = channels
        self.exception: Optional[Exception] = None

    def run(self) -> None:
        try:
            self.subscription.subscribe_to_channels(*self.channels)
        except Exception as e:
            self.exception = e
            logger.warning(f"Subscription to {', '.join(self.channels)} ended with error: {e}")

    def wait_until_subscribed(self, timeout: Optional[float] = None) -> bool:
        return self.subscription.subscribed.wait(timeout)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Unsubscribe from every channel and join the thread.

        UNSUBSCRIBE is only sent once the server has confirmed the
        subscription, so it can never overtake the SUBSCRIBE. If no
        confirmation arrives, or the loop does not finish within
        ``timeout``, the connection is closed, which ends it.
        """
        if self.is_alive() and self._wait_for_confirmation(timeout):
            try:
                self.subscription.unsubscribe_from_channels()
            except RespError as e:
                logger.warning(f"Unsubscribe failed, closing connection instead: {e}")
            self.join(timeout)

        if self.is_alive():
            self.subscription.connection.close()
            self.join(timeout)

    def _wait_for_confirmation(self, timeout: Optional[float]) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.is_alive():
            if self.subscription.subscribed.wait(CONFIRMATION_POLL_INTERVAL):
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
        return False
