"""Tests for the authenticated request executor."""

import os
import sys
import threading

import pytest

os.environ.setdefault("LOG_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "_logs"))

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from authcall.errors import (
    ConnectionUnavailableError,
    NetworkCallError,
    NullResponseError,
    SessionInvalidError,
    TransportError,
    UserSuspendedError,
)
from authcall.executor import AuthenticatedRequestExecutor, RequestHooks, ResultListener, timer_scheduler
from authcall.net.http import TransportResponse
from authcall.retry import RetryPolicy


def _http_error(status, reason="", body=b""):
    return TransportError(f"HTTP {status}", TransportResponse(status_code=status, reason=reason, body=body))


def _no_response():
    return TransportError("connection refused")


class ScriptedCall:
    """Plays one scripted step per attempt; the last step repeats."""

    def __init__(self, *steps, on_attempt=None):
        self.steps = list(steps)
        self.attempts = 0
        self.connection_lost = 0
        self.api_keys = []
        self.on_attempt = on_attempt

    def _next(self, api_key):
        self.attempts += 1
        self.api_keys.append(api_key)
        if self.on_attempt:
            self.on_attempt(self.attempts)
        return self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]

    def sync(self, api_key):
        step = self._next(api_key)
        if isinstance(step, TransportError):
            raise step
        return step

    def async_(self, api_key, on_success, on_failure):
        step = self._next(api_key)
        if isinstance(step, TransportError):
            on_failure(step)
        else:
            on_success(step)

    def lost(self):
        self.connection_lost += 1

    def hooks(self):
        return RequestHooks(perform_sync=self.sync, perform_async=self.async_, on_connection_lost=self.lost)


class FakeSession:
    def __init__(self, reauth_error=None):
        self.reauth_error = reauth_error
        self.reregister_callbacks = []
        self.suspended_calls = []

    def re_register_with_same_user_details(self, on_complete=None):
        self.reregister_callbacks.append(on_complete)
        if on_complete is not None:
            on_complete(self.reauth_error)

    def set_suspended(self, suspended):
        self.suspended_calls.append(suspended)


class FakeConnectivity:
    def __init__(self, available=True):
        self.available = available
        self.checks = 0

    def is_connection_available(self):
        self.checks += 1
        return self.available

    def register_for_connection_restored(self, callback):
        pass


class RecordingListener(ResultListener):
    def __init__(self):
        self.events = []

    def success(self, result):
        self.events.append(("success", result))

    def error(self, error, validation_errors=None):
        self.events.append(("error", error))

    def user_suspended(self):
        self.events.append(("user_suspended", None))


def _executor(call, session=None, connectivity=None, max_retries=2, delay=0.1, backoff=1.0, **kwargs):
    delays = []

    def scheduler(delay_sec, fn):
        delays.append(delay_sec)
        fn()

    executor = AuthenticatedRequestExecutor(
        call.hooks(),
        session or FakeSession(),
        connectivity or FakeConnectivity(),
        retry_policy=RetryPolicy(max_retries=max_retries, delay_sec=delay, backoff=backoff),
        sleep=delays.append,
        scheduler=scheduler,
        **kwargs,
    )
    return executor, delays


class TestSynchronous:
    def test_success_returned_verbatim(self):
        result = {"id": 1}
        call = ScriptedCall(result)
        executor, delays = _executor(call)

        assert executor.perform_synchronous("key") is result
        assert call.attempts == 1
        assert call.api_keys == ["key"]
        assert delays == []

    def test_retryable_status_exhausts_budget(self):
        error = _http_error(503, "Service Unavailable")
        call = ScriptedCall(error)
        executor, delays = _executor(call, max_retries=2)

        with pytest.raises(NetworkCallError) as exc_info:
            executor.perform_synchronous("key")

        assert call.attempts == 3
        assert delays == [0.1, 0.1]
        assert exc_info.value.__cause__ is error
        assert "Service Unavailable" in str(exc_info.value)
        assert type(exc_info.value) is NetworkCallError

    def test_single_retry_then_success(self):
        call = ScriptedCall(_http_error(503), "ok")
        executor, delays = _executor(call, max_retries=1)

        assert executor.perform_synchronous("key") == "ok"
        assert call.attempts == 2
        assert delays == [0.1]

    def test_exponential_backoff_between_attempts(self):
        call = ScriptedCall(_http_error(502))
        executor, delays = _executor(call, max_retries=3, delay=0.1, backoff=2.0)

        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")

        assert call.attempts == 4
        assert delays == pytest.approx([0.1, 0.2, 0.4])

    def test_unauthorized_starts_reauth_without_replay(self):
        error = _http_error(401, "Unauthorized")
        call = ScriptedCall(error, "never")
        session = FakeSession()
        executor, delays = _executor(call, session=session)

        with pytest.raises(SessionInvalidError) as exc_info:
            executor.perform_synchronous("key")

        assert session.reregister_callbacks == [None]
        assert call.attempts == 1
        assert delays == []
        assert exc_info.value.__cause__ is error

    def test_forbidden_marks_account_suspended(self):
        call = ScriptedCall(_http_error(403, "Forbidden"))
        session = FakeSession()
        executor, delays = _executor(call, session=session)

        with pytest.raises(UserSuspendedError) as exc_info:
            executor.perform_synchronous("key")

        assert not isinstance(exc_info.value, NetworkCallError)
        assert session.suspended_calls == [True]
        assert call.attempts == 1
        assert delays == []

    def test_missing_response_is_null_response(self):
        error = _no_response()
        call = ScriptedCall(error)
        executor, delays = _executor(call)

        with pytest.raises(NullResponseError) as exc_info:
            executor.perform_synchronous("key")

        assert "Null response" in str(exc_info.value)
        assert exc_info.value.__cause__ is error
        assert call.attempts == 1
        assert delays == []

    def test_unclassified_status_not_retried(self):
        call = ScriptedCall(_http_error(404, "Not Found"))
        executor, delays = _executor(call)

        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")

        assert call.attempts == 1
        assert delays == []

    def test_no_connection_fails_fast(self):
        call = ScriptedCall("ok")
        executor, delays = _executor(call, connectivity=FakeConnectivity(available=False))

        with pytest.raises(ConnectionUnavailableError):
            executor.perform_synchronous("key")

        assert call.attempts == 0
        assert call.connection_lost == 1
        assert delays == []

    def test_retry_rechecks_connectivity(self):
        connectivity = FakeConnectivity()

        def drop_connection(attempt):
            connectivity.available = False

        call = ScriptedCall(_http_error(503), on_attempt=drop_connection)
        executor, delays = _executor(call, connectivity=connectivity)

        with pytest.raises(ConnectionUnavailableError):
            executor.perform_synchronous("key")

        assert call.attempts == 1
        assert connectivity.checks == 2
        assert call.connection_lost == 1

    def test_bad_request_body_logged(self, caplog):
        caplog.set_level("ERROR")
        call = ScriptedCall(_http_error(400, "Bad Request", body=b'{"field": "name is required"}'))
        executor, _ = _executor(call)

        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")

        assert any("status=400 reason=Bad Request" in r.getMessage() and "name is required" in r.getMessage() for r in caplog.records)

    def test_body_not_logged_for_other_statuses(self, caplog):
        caplog.set_level("ERROR")
        call = ScriptedCall(_http_error(404, "Not Found", body=b"secret-ish body"))
        executor, _ = _executor(call)

        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")

        assert not any("secret-ish body" in r.getMessage() for r in caplog.records)

    def test_diagnostic_statuses_configurable(self, caplog):
        caplog.set_level("ERROR")
        call = ScriptedCall(_http_error(422, "Unprocessable", body=b"bad enum"))
        executor, _ = _executor(call, diagnostic_statuses=(400, 422))

        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")

        [record] = [r for r in caplog.records if "bad enum" in r.getMessage()]
        assert "status=422 reason=Unprocessable" in record.getMessage()
        assert "Bad Request" not in record.getMessage()

    def test_budget_shared_across_invocations_of_same_executor(self):
        call = ScriptedCall(_http_error(503))
        executor, delays = _executor(call, max_retries=1)

        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")
        with pytest.raises(NetworkCallError):
            executor.perform_synchronous("key")

        assert call.attempts == 3
        assert delays == [0.1]


class TestAsynchronous:
    def test_success_delivered_once(self):
        call = ScriptedCall("ok")
        executor, _ = _executor(call)
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert listener.events == [("success", "ok")]

    def test_retryable_status_exhausts_budget(self):
        error = _http_error(503, "Service Unavailable")
        call = ScriptedCall(error)
        executor, delays = _executor(call, max_retries=1)
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert call.attempts == 2
        assert delays == [0.1]
        assert len(listener.events) == 1
        kind, failure = listener.events[0]
        assert kind == "error"
        assert type(failure) is NetworkCallError
        assert failure.__cause__ is error

    def test_reauth_success_replays_call(self):
        call = ScriptedCall(_http_error(401), {"id": 7})
        session = FakeSession()
        connectivity = FakeConnectivity()
        executor, delays = _executor(call, session=session, connectivity=connectivity)
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert listener.events == [("success", {"id": 7})]
        assert len(session.reregister_callbacks) == 1
        assert call.attempts == 2
        assert connectivity.checks == 2
        assert delays == []

    def test_reauth_failure_reports_error_without_replay(self):
        reauth_error = RuntimeError("registration rejected")
        call = ScriptedCall(_http_error(401), "never")
        executor, _ = _executor(call, session=FakeSession(reauth_error=reauth_error))
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert listener.events == [("error", reauth_error)]
        assert call.attempts == 1

    def test_repeated_unauthorized_after_replay_stops(self):
        call = ScriptedCall(_http_error(401))
        session = FakeSession()
        executor, _ = _executor(call, session=session)
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert call.attempts == 2
        assert len(session.reregister_callbacks) == 1
        assert len(listener.events) == 1
        assert isinstance(listener.events[0][1], SessionInvalidError)

    def test_forbidden_reports_suspension(self):
        call = ScriptedCall(_http_error(403))
        session = FakeSession()
        executor, delays = _executor(call, session=session)
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert listener.events == [("user_suspended", None)]
        assert session.suspended_calls == [True]
        assert call.attempts == 1
        assert delays == []

    def test_missing_response_is_null_response(self):
        call = ScriptedCall(_no_response())
        executor, _ = _executor(call)
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert len(listener.events) == 1
        assert isinstance(listener.events[0][1], NullResponseError)
        assert call.attempts == 1

    def test_no_connection_fails_fast(self):
        call = ScriptedCall("ok")
        executor, delays = _executor(call, connectivity=FakeConnectivity(available=False))
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert call.attempts == 0
        assert call.connection_lost == 1
        assert delays == []
        assert len(listener.events) == 1
        assert isinstance(listener.events[0][1], ConnectionUnavailableError)

    @pytest.mark.parametrize(
        "steps,connected",
        [
            (("ok",), True),
            ((_http_error(503),), True),
            ((_http_error(401), "ok"), True),
            ((_http_error(403),), True),
            ((_http_error(500),), True),
            ((_no_response(),), True),
            (("ok",), False),
        ],
    )
    def test_absent_listener_never_raises(self, steps, connected):
        call = ScriptedCall(*steps)
        executor, _ = _executor(call, connectivity=FakeConnectivity(available=connected))

        executor.perform_asynchronous("key", None)

    def test_duplicate_transport_callbacks_delivered_once(self):
        def double_success(api_key, on_success, on_failure):
            on_success("first")
            on_success("second")

        executor = AuthenticatedRequestExecutor(
            RequestHooks(perform_sync=lambda api_key: None, perform_async=double_success),
            FakeSession(),
            FakeConnectivity(),
        )
        listener = RecordingListener()

        executor.perform_asynchronous("key", listener)

        assert listener.events == [("success", "first")]

    def test_backoff_runs_on_timer_thread(self):
        done = threading.Event()
        caller = threading.current_thread()
        threads = []

        class Listener(ResultListener):
            def success(self, result):
                threads.append(threading.current_thread())
                done.set()

        call = ScriptedCall(_http_error(503), "ok")
        executor = AuthenticatedRequestExecutor(
            call.hooks(),
            FakeSession(),
            FakeConnectivity(),
            retry_policy=RetryPolicy(max_retries=1, delay_sec=0.01),
            scheduler=timer_scheduler,
        )

        executor.perform_asynchronous("key", Listener())

        assert done.wait(2.0)
        assert call.attempts == 2
        assert threads and threads[0] is not caller
