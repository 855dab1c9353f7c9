import threading

import pytest

from rmqclient.reply import (
    ReplyNotMatchedError,
    ReplyTimeoutError,
    RequestResponseFuture,
    RequestResponseFutureMap,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class Recorder:
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, message, error) -> None:
        self.calls.append((message, error))


def test_put_then_wait_returns_message():
    future = RequestResponseFuture("cid-1", 1.0)
    future.put_response_message("reply")
    assert future.wait_response_message("TopicA") == "reply"
    assert future.done


def test_wait_from_other_thread():
    future = RequestResponseFuture("cid-2", 2.0)
    timer = threading.Timer(0.05, future.put_response_message, args=("late",))
    timer.start()
    try:
        assert future.wait_response_message("TopicA") == "late"
    finally:
        timer.join()


def test_wait_times_out():
    future = RequestResponseFuture("cid-3", 0.02)
    with pytest.raises(ReplyTimeoutError) as info:
        future.wait_response_message("TopicA")
    assert "send request message to TopicA OK" in str(info.value)
    assert "timeout 20 ms" in str(info.value)


def test_is_timeout_follows_clock():
    clock = FakeClock()
    future = RequestResponseFuture("cid-4", 3.0, clock=clock)
    assert future.is_timeout() is False
    clock.now += 3.0
    assert future.is_timeout() is False
    clock.now += 0.5
    assert future.is_timeout() is True


def test_execute_request_callback_passes_message_and_error():
    recorder = Recorder()
    future = RequestResponseFuture("cid-5", 1.0, recorder)
    future.response_msg = "msg"
    future.execute_request_callback()
    assert recorder.calls == [("msg", None)]


def test_map_set_and_get():
    table = RequestResponseFutureMap()
    future = RequestResponseFuture("cid-6", 5.0)
    table.set_request_response_future(future)
    assert table.get("cid-6") is future
    assert table.get("missing") is None
    assert len(table) == 1


def test_set_response_unknown_id_raises():
    table = RequestResponseFutureMap()
    with pytest.raises(ReplyNotMatchedError):
        table.set_response_to_request_response_future("nobody", "reply")


def test_set_response_delivers_and_calls_back():
    recorder = Recorder()
    table = RequestResponseFutureMap()
    future = RequestResponseFuture("cid-7", 5.0, recorder)
    table.set_request_response_future(future)
    table.set_response_to_request_response_future("cid-7", "reply")
    assert future.response_msg == "reply"
    assert future.wait_response_message("TopicA") == "reply"
    assert recorder.calls == [("reply", None)]


def test_remove_runs_callback_without_error_when_in_time():
    clock = FakeClock()
    recorder = Recorder()
    table = RequestResponseFutureMap(clock=clock)
    future = RequestResponseFuture("cid-8", 5.0, recorder, clock=clock)
    table.set_request_response_future(future)
    table.remove("cid-8")
    assert table.get("cid-8") is None
    assert recorder.calls == [(None, None)]


def test_remove_after_timeout_sets_cause():
    clock = FakeClock()
    recorder = Recorder()
    table = RequestResponseFutureMap(clock=clock)
    future = RequestResponseFuture("cid-9", 1.0, recorder, clock=clock)
    table.set_request_response_future(future)
    clock.now += 2.0
    table.remove("cid-9")
    assert len(recorder.calls) == 1
    message, error = recorder.calls[0]
    assert message is None
    assert isinstance(error, ReplyTimeoutError)
    assert str(error) == "correlationId:cid-9 request timeout, no reply message"


def test_expired_entry_is_hidden_and_purged():
    clock = FakeClock()
    recorder = Recorder()
    table = RequestResponseFutureMap(clock=clock)
    old = RequestResponseFuture("old", 1.0, recorder, clock=clock)
    fresh = RequestResponseFuture("fresh", 10.0, clock=clock)
    table.set_request_response_future(old)
    table.set_request_response_future(fresh)
    clock.now += 2.0
    assert table.get("old") is None
    assert table.get("fresh") is fresh
    assert table.purge_expired() == ["old"]
    assert len(table) == 1
    assert isinstance(recorder.calls[0][1], ReplyTimeoutError)


def test_zero_timeout_uses_default_expiration():
    clock = FakeClock()
    table = RequestResponseFutureMap(default_expiration=60.0, clock=clock)
    future = RequestResponseFuture("cid-10", 0, clock=clock)
    table.set_request_response_future(future)
    clock.now += 30.0
    assert table.get("cid-10") is future
    clock.now += 31.0
    assert table.get("cid-10") is None