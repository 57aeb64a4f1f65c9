"""Tests for MultiClient health tracking, selection and retries."""

from __future__ import annotations

import io
import json
import threading
from typing import Iterable

import httpx
import pytest

from multiclient.client import MultiClient, ResultSink
from multiclient.client.hooks import set_header
from multiclient.exceptions import (
    ClientSuspendedError,
    DecodeError,
    InsufficientHealthyError,
    NoAddressesError,
    NoHealthyAddressError,
    RetryLimitExceededError,
    TransportError,
    UnsupportedMethodError,
)
from multiclient.models import BodyType, HealthCheckConfig, PoolConfig


POOL = ("http://a:1", "http://b:2", "http://c:3", "http://d:4")


class FakeProbe:
    """Probe that reports a fixed set of addresses as healthy and records calls."""

    def __init__(self, healthy: Iterable[str]) -> None:
        self.healthy = set(healthy)
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, address: str, config: HealthCheckConfig) -> bool:
        with self._lock:
            self.calls.append(address)
        return address in self.healthy


def _multi(*addresses: str, healthy: Iterable[str] = ()) -> MultiClient:
    multi = MultiClient(*addresses)
    multi.probe = FakeProbe(healthy)
    return multi


# ---------------------------------------------------------------------------
# Health checks
# ---------------------------------------------------------------------------


class TestCheckConnect:
    def test_stops_after_minimum(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.check_one()
        assert multi.probe.calls == ["http://a:1"]
        assert multi.healthy_addresses() == ["http://a:1"]

    def test_probes_in_pool_order(self) -> None:
        multi = _multi(*POOL, healthy=["http://b:2", "http://d:4"])
        multi.check_n(2)
        assert multi.probe.calls == list(POOL)
        assert multi.healthy_addresses() == ["http://b:2", "http://d:4"]

    def test_insufficient_installs_partial_snapshot(self) -> None:
        multi = _multi(*POOL, healthy=["http://c:3"])
        with pytest.raises(InsufficientHealthyError) as excinfo:
            multi.check_n(2)
        assert excinfo.value.wanted == 2
        assert excinfo.value.found == 1
        assert "want 2, have 1" in str(excinfo.value)
        assert multi.healthy_addresses() == ["http://c:3"]

    def test_snapshot_replaced_by_each_scan(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.check_all()
        assert multi.healthy_addresses() == list(POOL)

        multi.probe.healthy = {"http://d:4"}
        with pytest.raises(InsufficientHealthyError):
            multi.check_all()
        assert multi.healthy_addresses() == ["http://d:4"]

    @pytest.mark.parametrize("size, passing, ok", [(4, 3, True), (4, 2, False), (5, 3, True), (5, 2, False)])
    def test_quorum(self, size: int, passing: int, ok: bool) -> None:
        addresses = [f"http://n{i}:80" for i in range(size)]
        multi = _multi(*addresses, healthy=addresses[:passing])
        if ok:
            multi.check_quorum()
            assert len(multi.healthy_addresses()) == size // 2 + 1
        else:
            with pytest.raises(InsufficientHealthyError):
                multi.check_quorum()

    def test_check_all_requires_every_endpoint(self) -> None:
        multi = _multi(*POOL, healthy=POOL[:3])
        with pytest.raises(InsufficientHealthyError, match="want 4, have 3"):
            multi.check_all()

    def test_is_healthy_uses_probe(self) -> None:
        multi = _multi(*POOL, healthy=["http://a:1"])
        assert multi.is_healthy("http://a:1")
        assert not multi.is_healthy("http://b:2")

    def test_health_check_settings_reach_probe(self) -> None:
        seen: list[HealthCheckConfig] = []
        multi = MultiClient("http://a:1")
        multi.probe = lambda address, config: seen.append(config) or True
        multi.set_health_check_path("/health")
        multi.set_health_check_timeout(2.5)
        multi.check_one()
        assert seen[0].path == "/health"
        assert seen[0].timeout == 2.5


class TestParallelScan:
    def test_results_in_pool_order(self) -> None:
        multi = _multi(*POOL, healthy=["http://d:4", "http://b:2"])
        multi.probe_concurrency = 4
        multi.check_n(2)
        assert sorted(multi.probe.calls) == sorted(POOL)
        assert multi.healthy_addresses() == ["http://b:2", "http://d:4"]

    def test_truncated_to_minimum(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.probe_concurrency = 2
        multi.check_one()
        assert multi.healthy_addresses() == ["http://a:1"]

    def test_insufficient(self) -> None:
        multi = _multi(*POOL, healthy=[])
        multi.probe_concurrency = 3
        with pytest.raises(InsufficientHealthyError):
            multi.check_quorum()
        assert multi.healthy_addresses() == []

    def test_suspended(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.probe_concurrency = 3
        multi.suspend()
        with pytest.raises(ClientSuspendedError):
            multi.check_one()


class TestSuspendResume:
    def test_suspend_clears_snapshot(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.check_all()
        multi.suspend()

        assert not multi.is_active
        assert multi.healthy_addresses() == []
        multi.health_checks = True
        with pytest.raises(NoHealthyAddressError):
            multi.select_address()

    def test_checks_fail_while_suspended(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.suspend()
        with pytest.raises(ClientSuspendedError):
            multi.check_one()
        assert multi.probe.calls == []

    def test_resume_does_not_probe(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.suspend()
        multi.resume()
        assert multi.is_active
        assert multi.probe.calls == []
        multi.check_one()
        assert multi.healthy_addresses() == ["http://a:1"]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestSelectAddress:
    def test_whole_pool_without_health_checks(self) -> None:
        multi = _multi(*POOL)
        picks = {multi.select_address() for _ in range(200)}
        assert picks <= set(POOL)
        assert len(picks) > 1

    def test_empty_pool(self) -> None:
        with pytest.raises(NoAddressesError, match="No addresses found"):
            MultiClient().select_address()

    def test_only_healthy_with_health_checks(self) -> None:
        multi = _multi(*POOL, healthy=["http://b:2", "http://c:3"])
        multi.health_checks = True
        multi.check_n(2)
        picks = {multi.select_address() for _ in range(100)}
        assert picks <= {"http://b:2", "http://c:3"}

    def test_no_snapshot(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.health_checks = True
        with pytest.raises(NoHealthyAddressError, match="No healthy addresses found"):
            multi.select_address()

    def test_stale_snapshot_after_pool_shrinks(self) -> None:
        multi = _multi(*POOL, healthy=["http://d:4"])
        multi.health_checks = True
        multi.check_one()
        multi.set_addresses("http://a:1")

        assert multi.healthy_addresses() == []
        with pytest.raises(NoHealthyAddressError):
            multi.select_address()

    def test_concurrent_selection_during_scans(self) -> None:
        multi = _multi(*POOL, healthy=POOL)
        multi.health_checks = True
        multi.check_all()
        picks: list[str] = []
        errors: list[Exception] = []

        def select() -> None:
            for _ in range(50):
                try:
                    picks.append(multi.select_address())
                except Exception as exc:  # noqa: BLE001
                    errors.append(exc)

        def scan() -> None:
            for _ in range(20):
                multi.check_all()

        threads = [threading.Thread(target=select) for _ in range(4)]
        threads.append(threading.Thread(target=scan))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert set(picks) <= set(POOL)


# ---------------------------------------------------------------------------
# Requests and retries
# ---------------------------------------------------------------------------


class TestRequest:
    def test_get_into_sink(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host in {"a", "b"}
            assert request.url.path == "/users/1"
            return httpx.Response(200, json={"id": 1})

        multi = MultiClient("http://a:1", "http://b:2", client=mock_http(handler))
        sink = ResultSink()
        response = multi.get("/users/1", sink)
        assert response.status_code == 200
        assert sink.value == {"id": 1}

    def test_json_echo(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=request.content,
                                  headers={"content-type": "application/json"})

        multi = MultiClient("http://a:1", client=mock_http(handler))
        payload = {"name": "ada", "tags": ["x", "y"], "n": 3}
        sink = ResultSink()
        multi.post("/echo", payload, sink)
        assert sink.value == payload

    def test_default_body_type(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.content == b"a=1"
            return httpx.Response(204)

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.set_default_body_type(BodyType.FORM)
        assert multi.put("/form", {"a": 1}).status_code == 204

    def test_error_status_fills_failure_sink(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "boom"})

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.set_retry_limit(3)
        ok, failed = ResultSink(), ResultSink()
        response = multi.delete("/x", ok, failed)
        assert response.status_code == 500
        assert failed.value == {"error": "boom"}
        assert not ok.filled

    def test_head_skips_decoding(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "HEAD"
            return httpx.Response(200, headers={"content-type": "application/json"})

        multi = MultiClient("http://a:1", client=mock_http(handler))
        assert multi.head("/x").status_code == 200

    def test_headers_and_query_merge(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["x-env"] == "call"
            assert request.headers["x-team"] == "core"
            assert request.url.params["page"] == "2"
            assert request.url.params["limit"] == "10"
            return httpx.Response(200)

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.default_headers = {"X-Env": "default", "X-Team": "core"}
        multi.default_query = {"page": 1, "limit": 10}
        multi.get("/x", headers={"X-Env": "call"}, params={"page": 2})

    def test_header_merge_ignores_case(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers.get_list("x-token") == ["call"]
            return httpx.Response(200)

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.default_headers = {"X-Token": "default"}
        multi.get("/x", headers={"x-token": "call"})

    def test_hook_changes_method(self, mock_http) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(200)

        def to_post(descriptor) -> None:
            descriptor.method = "POST"

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.get("/x", None, None, to_post)
        assert methods == ["POST"]

    def test_hook_order(self, mock_http) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["x-late"] == "1"
            return httpx.Response(200)

        def immediate(request: httpx.Request) -> None:
            assert request.headers["x-default"] == "yes"
            assert request.url.params["q"] == "v"
            calls.append("immediate")

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.default_headers = {"X-Default": "yes"}
        multi.default_query = {"q": "v"}
        multi.early_hooks.append(lambda d: calls.append("early"))
        multi.late_hooks.append(lambda d: calls.append("late"))
        multi.late_hooks.append(set_header("X-Late", "1"))
        multi.immediate_hooks.append(immediate)

        multi.get("/x", None, None, lambda d: calls.append("call"),
                  immediate_hooks=(lambda r: calls.append("call-immediate"),))
        assert calls == ["early", "call", "late", "immediate", "call-immediate"]


class TestRetries:
    def test_retry_limit_attempts_then_last_error(self, mock_http) -> None:
        attempts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(str(request.url))
            raise httpx.ConnectError(f"refused #{len(attempts)}", request=request)

        multi = MultiClient(*POOL, client=mock_http(handler))
        multi.set_retry_limit(3)
        with pytest.raises(TransportError, match="refused #3"):
            multi.get("/x")
        assert len(attempts) == 3

    def test_recovers_on_later_attempt(self, mock_http) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) < 2:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"ok": True})

        multi = MultiClient(*POOL, client=mock_http(handler))
        multi.set_retry_limit(3)
        sink = ResultSink()
        multi.get("/x", sink)
        assert len(attempts) == 2
        assert sink.value == {"ok": True}

    def test_decode_errors_are_retried(self, mock_http) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(200, text="{broken", headers={"content-type": "application/json"})

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.set_retry_limit(2)
        with pytest.raises(DecodeError) as excinfo:
            multi.get("/x", ResultSink())
        assert len(attempts) == 2
        assert excinfo.value.response.status_code == 200

    def test_hook_failures_are_retried(self, mock_http) -> None:
        calls: list[int] = []

        def flaky(descriptor) -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("token refresh failed")

        multi = MultiClient("http://a:1", client=mock_http(lambda r: httpx.Response(200)))
        multi.set_retry_limit(2)
        assert multi.get("/x", None, None, flaky).status_code == 200
        assert len(calls) == 2

    def test_selection_error_not_retried(self, mock_http) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(200)

        multi = MultiClient(*POOL, client=mock_http(handler))
        multi.health_checks = True
        multi.set_retry_limit(5)
        with pytest.raises(NoHealthyAddressError):
            multi.get("/x")
        assert attempts == []

    def test_zero_retry_limit(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.set_retry_limit(0)
        with pytest.raises(RetryLimitExceededError, match="Exceeded retry limit"):
            multi.get("/x")

    def test_unsupported_method_not_retried(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.set_retry_limit(3)
        with pytest.raises(UnsupportedMethodError):
            multi.request("OPTIONS", "/x")

    def test_stream_payload_resent_on_retry(self, mock_http) -> None:
        bodies: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            if len(bodies) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        multi = MultiClient("http://a:1", client=mock_http(handler))
        multi.set_default_body_type(BodyType.RAW)
        multi.set_retry_limit(2)
        multi.post("/upload", io.BytesIO(b"chunk"))
        assert bodies == [b"chunk", b"chunk"]


# ---------------------------------------------------------------------------
# Construction from config
# ---------------------------------------------------------------------------


class TestFromConfig:
    def test_settings_applied(self, mock_http) -> None:
        pool = PoolConfig(
            name="users",
            addresses=["http://a:1", "http://b:2"],
            health_checks=True,
            health_check=HealthCheckConfig(path="/health", match="ok"),
            retry_limit=4,
            default_body_type=BodyType.XML,
            default_headers={"X-App": "test"},
            probe_concurrency=2,
        )
        client = mock_http(lambda r: httpx.Response(200, text="ok"))
        multi = MultiClient.from_config(pool, client=client)

        assert multi.addresses == ("http://a:1", "http://b:2")
        assert multi.health_checks is True
        assert multi.retry_limit == 4
        assert multi.default_body_type == BodyType.XML
        assert multi.default_headers == {"X-App": "test"}
        assert multi.probe_concurrency == 2

        multi.check_all()
        assert multi.healthy_addresses() == ["http://a:1", "http://b:2"]

        multi.close()
        assert not client.is_closed

    def test_health_check_copied(self) -> None:
        pool = PoolConfig(addresses=["http://a:1"], health_check=HealthCheckConfig(path="/h"))
        with MultiClient.from_config(pool) as multi:
            multi.set_health_check_path("/other")
        assert pool.health_check.path == "/h"

    def test_owned_client_closed(self) -> None:
        multi = MultiClient.from_config(PoolConfig(addresses=["http://a:1"]))
        transport = multi._client
        multi.close()
        assert transport.is_closed

    def test_payload_is_json_encoded_by_default(self, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=json.loads(request.content))

        multi = MultiClient.from_config(
            PoolConfig(addresses=["http://a:1"]), client=mock_http(handler)
        )
        sink = ResultSink()
        multi.patch("/x", [1, 2], sink)
        assert sink.value == [1, 2]
