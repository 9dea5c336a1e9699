import threading
import time

import pytest

from respclient import CommandClient, Subscription
from respclient.exceptions import ConnectionError, ProtocolError, UsageError


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def publisher(connect):
    return CommandClient(connect())


def test_messages_delivered_in_order_after_confirmation(connect, publisher) -> None:
    received = []
    publisher.publish("news", "before subscription")

    subscription = Subscription(connect(), on_message=lambda channel, message: received.append((channel, message)))
    worker = subscription.run_in_thread("news")
    try:
        assert worker.wait_until_subscribed(timeout=5)

        for i in range(20):
            publisher.publish("news", f"headline {i}")
        publisher.publish("sports", "ignored")

        assert _wait_for(lambda: len(received) == 20)
    finally:
        worker.stop()

    assert received == [("news", f"headline {i}") for i in range(20)]
    assert not worker.is_alive()
    assert worker.exception is None


def test_publish_counts_subscribers(connect, publisher) -> None:
    subscription = Subscription(connect())
    worker = subscription.run_in_thread("news")
    try:
        assert worker.wait_until_subscribed(timeout=5)
        assert publisher.publish("news", "my message") == 1
        assert publisher.publish("elsewhere", "my message") == 0
    finally:
        worker.stop()


def test_unsubscribe_from_all_ends_loop(connect) -> None:
    confirmations = []
    subscription = Subscription(
        connect(),
        on_subscribe=lambda channel, count: confirmations.append(("subscribe", channel, count)),
        on_unsubscribe=lambda channel, count: confirmations.append(("unsubscribe", channel, count)),
    )
    worker = subscription.run_in_thread("a", "b")
    assert _wait_for(lambda: len(confirmations) == 2)
    assert subscription.channels == {"a", "b"}

    subscription.unsubscribe_from_channels("a")
    assert _wait_for(lambda: len(confirmations) == 3)
    assert worker.is_alive()

    subscription.unsubscribe_from_channels()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert worker.exception is None
    assert confirmations == [
        ("subscribe", "a", 1),
        ("subscribe", "b", 2),
        ("unsubscribe", "a", 1),
        ("unsubscribe", "b", 0),
    ]
    assert not subscription.running
    assert subscription.channels == set()


def test_connection_reusable_after_unsubscribe(connect) -> None:
    connection = connect()
    subscription = Subscription(connection)
    worker = subscription.run_in_thread("news")
    assert worker.wait_until_subscribed(timeout=5)

    with pytest.raises(UsageError):
        CommandClient(connection).get("k")

    worker.stop()
    assert not connection.in_subscription_mode
    assert CommandClient(connection).ping()


def test_closing_connection_ends_loop_with_connection_error(connect) -> None:
    connection = connect()
    subscription = Subscription(connection)
    worker = subscription.run_in_thread("news")
    assert worker.wait_until_subscribed(timeout=5)

    connection.close()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert isinstance(worker.exception, ConnectionError)


def test_server_drop_ends_loop_with_connection_error(server, connect) -> None:
    subscription = Subscription(connect())
    worker = subscription.run_in_thread("news")
    assert worker.wait_until_subscribed(timeout=5)

    server.drop_clients()
    worker.join(timeout=5)

    assert isinstance(worker.exception, ConnectionError)


def test_blocking_subscribe_in_caller_thread(connect, publisher) -> None:
    received = []
    subscription = Subscription(connect())

    def on_message(channel: str, message: str) -> None:
        received.append(message)
        subscription.unsubscribe_from_channels()

    subscription.on_message = on_message

    def publish_when_ready() -> None:
        if subscription.subscribed.wait(timeout=5):
            publisher.publish("news", "only one")

    thread = threading.Thread(target=publish_when_ready)
    thread.start()
    subscription.subscribe_to_channels("news")
    thread.join(timeout=5)

    assert received == ["only one"]


def test_subscribe_requires_a_channel(connect) -> None:
    with pytest.raises(UsageError):
        Subscription(connect()).subscribe_to_channels()


def test_unexpected_reply_shape_fails_connection(scripted) -> None:
    connection, peer = scripted
    subscription = Subscription(connection)

    peer.reply(b"*3\r\n$9\r\nsubscribe\r\n$4\r\nnews\r\n:1\r\n:42\r\n")
    with pytest.raises(ProtocolError):
        subscription.subscribe_to_channels("news")

    assert not subscription.running
    assert not connection.is_connected
    with pytest.raises(ConnectionError):
        CommandClient(connection).get("k")


def test_handler_error_stops_thread_and_is_kept(connect, publisher) -> None:
    def on_message(channel: str, message: str) -> None:
        raise ValueError("bad payload")

    subscription = Subscription(connect(), on_message=on_message)
    worker = subscription.run_in_thread("news")
    assert worker.wait_until_subscribed(timeout=5)

    publisher.publish("news", "boom")
    worker.join(timeout=5)

    assert isinstance(worker.exception, ValueError)


def test_handler_error_leaves_connection_unusable(connect, publisher) -> None:
    def on_message(channel: str, message: str) -> None:
        raise ValueError("bad payload")

    connection = connect()
    worker = Subscription(connection, on_message=on_message).run_in_thread("news")
    assert worker.wait_until_subscribed(timeout=5)

    publisher.publish("news", "first")
    worker.join(timeout=5)
    publisher.publish("news", "second")

    with pytest.raises(ConnectionError):
        CommandClient(connection).get("k")


def test_stop_right_after_start_unsubscribes_cleanly(server, connect) -> None:
    connection = connect()
    worker = Subscription(connection).run_in_thread("news")
    worker.stop()

    assert not worker.is_alive()
    assert worker.exception is None
    assert not connection.in_subscription_mode
    assert CommandClient(connection).ping()
    assert server.subscriber_count("news") == 0


def test_stop_without_confirmation_closes_connection(scripted) -> None:
    connection, _ = scripted
    worker = Subscription(connection).run_in_thread("news")

    worker.stop(timeout=0.5)

    assert not worker.is_alive()
    assert isinstance(worker.exception, ConnectionError)
    assert not connection.is_connected


def test_unsubscribe_before_subscribing_is_usage_error(connect) -> None:
    subscription = Subscription(connect())
    with pytest.raises(UsageError):
        subscription.unsubscribe_from_channels("news")
