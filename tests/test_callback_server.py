import httpx
import pytest

from sync_latency.callback_server import CallbackServer
from sync_latency.correlation import CorrelationEngine
from sync_latency.iterations import IterationRecord, IterationStore


@pytest.fixture
def server():
    store = IterationStore()
    store.append(IterationRecord(2)).stamp("upload_started_at", 1000.0)
    engine = CorrelationEngine(store, "web_sync_at", started_field="upload_started_at")
    srv = CallbackServer("127.0.0.1", 0, engine).start()
    srv.store = store
    yield srv
    srv.stop()


def url(srv, path):
    return f"http://127.0.0.1:{srv.port}{path}"


def test_ping_sets_flag(server):
    r = httpx.get(url(server, "/ping"))
    assert r.status_code == 200
    assert server.state.pinged.is_set()


def test_ready_and_empty_send_cors(server):
    for path, flag in (("/ready", server.state.ready), ("/empty", server.state.empty)):
        r = httpx.get(url(server, path))
        assert r.status_code == 200
        assert r.headers["Access-Control-Allow-Origin"] == "*"
        assert flag.is_set()


def test_sync_correlates_and_clears_empty(server):
    server.state.empty.set()
    r = httpx.get(url(server, "/sync"), params={"fileName": "iteration-2.txt", "ts": "1005000"})
    assert r.status_code == 200
    assert r.headers["Access-Control-Allow-Origin"] == "*"
    assert server.store.find_by_id(2).get("web_sync_at") == 1005.0
    assert not server.state.empty.is_set()


@pytest.mark.parametrize("params", [
    {"fileName": "iteration-2.txt"},
    {"fileName": "iteration-2.txt", "ts": "soon"},
    {"fileName": "iteration-2.txt", "ts": "0"},
    {"fileName": "iteration-2.txt", "ts": "1005000abc"},
    {"fileName": "random.txt", "ts": "1005000"},
    {"fileName": "iteration-42.txt", "ts": "1005000"},
    {"ts": "1005000"},
])
def test_bad_sync_signals_still_answer_200(server, params):
    r = httpx.get(url(server, "/sync"), params=params)
    assert r.status_code == 200
    assert server.store.find_by_id(2).has("web_sync_at") is False


def test_unknown_route(server):
    assert httpx.get(url(server, "/metrics")).status_code == 404
