import json
import threading
from unittest.mock import MagicMock

import pytest

from brewops_client import ApiError, BrewOpsClient, ClientState, SessionExpired


def _response(status=200, payload=None):
    payload = {} if payload is None else payload
    resp = MagicMock(status_code=status, reason="Error", content=json.dumps(payload).encode())
    resp.json.return_value = payload
    return resp


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def state(tmp_path):
    return ClientState(path=str(tmp_path / "state.json"))


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    s.request.return_value = _response(payload={"ok": True})
    return s


@pytest.fixture
def api(state, session, clock):
    return BrewOpsClient("http://factory.test/api", state=state, session=session, clock=clock)


def test_cache_key_format():
    assert BrewOpsClient.cache_key("http://x/api/items", {"b": 1, "a": 2}) == 'get:http://x/api/items:{"a": 2, "b": 1}'
    assert BrewOpsClient.cache_key("http://x/api/items") == "get:http://x/api/items:null"


def test_get_is_cached_for_five_minutes(api, session, clock):
    assert api.get("/suppliers") == {"ok": True}
    api.get("/suppliers")
    assert session.request.call_count == 1

    clock.now += 299
    api.get("/suppliers")
    assert session.request.call_count == 1

    clock.now += 2
    api.get("/suppliers")
    assert session.request.call_count == 2


def test_params_are_part_of_the_key(api, session):
    api.get("/deliveries", params={"page": 1})
    api.get("/deliveries", params={"page": 2})
    assert session.request.call_count == 2


def test_skip_cache(api, session):
    api.get("/inventory")
    api.get("/inventory", skip_cache=True)
    assert session.request.call_count == 2


def test_writes_are_never_cached(api, session):
    api.post("/inventory", {"inventoryid": "INV-1", "quantity": 5})
    api.post("/inventory", {"inventoryid": "INV-1", "quantity": 5})
    assert session.request.call_count == 2
    assert api.cache_stats() == {"cacheSize": 0, "pendingRequests": 0}


def test_cache_keeps_fifty_newest(api, session, clock):
    for i in range(55):
        clock.now += 1
        api.get(f"/items/{i}")
    assert api.cache_stats()["cacheSize"] == 50

    calls = session.request.call_count
    api.get("/items/54")
    assert session.request.call_count == calls
    api.get("/items/0")
    assert session.request.call_count == calls + 1


def test_clear_cache(api, session):
    api.get("/suppliers")
    api.clear_cache()
    api.get("/suppliers")
    assert session.request.call_count == 2


def test_identical_concurrent_gets_share_one_request(api, session):
    entered = threading.Event()
    release = threading.Event()

    def slow_request(*args, **kwargs):
        entered.set()
        release.wait(5)
        return _response(payload={"rows": [1, 2]})

    session.request.side_effect = slow_request
    results = []

    first = threading.Thread(target=lambda: results.append(api.get("/reports/dashboard")))
    first.start()
    entered.wait(5)
    assert api.cache_stats()["pendingRequests"] == 1

    second = threading.Thread(target=lambda: results.append(api.get("/reports/dashboard")))
    second.start()
    release.set()
    first.join(5)
    second.join(5)

    assert results == [{"rows": [1, 2]}, {"rows": [1, 2]}]
    assert session.request.call_count == 1
    assert api.cache_stats()["pendingRequests"] == 0


def test_401_forces_logout(api, session, state):
    state.set("jwtToken", "expired-token")
    state.set("lastLogin", "2024-01-01T00:00:00+00:00")
    session.request.return_value = _response(401, {"error": "Token expired"})

    with pytest.raises(SessionExpired):
        api.get("/dashboard/summary")

    assert state.get("jwtToken") is None
    assert state.get("lastLogin") is None
    assert api.is_authenticated is False


def test_error_responses_raise_api_error(api, session):
    session.request.return_value = _response(400, {"error": "Validation failed"})
    with pytest.raises(ApiError) as exc:
        api.post("/payments", {})
    assert exc.value.status == 400
    assert exc.value.message == "Validation failed"
    assert api.cache_stats()["pendingRequests"] == 0


def test_login_stores_token_and_sends_it(api, session, state, tmp_path):
    session.request.return_value = _response(payload={"ok": True, "jwtToken": "abc.def.ghi"})
    api.login("staff@brewops.lk", "Password123")

    assert state.get("jwtToken") == "abc.def.ghi"
    assert state.get("lastLogin")

    api.get("/auth/user")
    _, kwargs = session.request.call_args
    assert kwargs["headers"] == {"Authorization": "Bearer abc.def.ghi"}
    assert kwargs["timeout"] == 15

    reloaded = ClientState(path=str(tmp_path / "state.json"))
    assert reloaded.get("jwtToken") == "abc.def.ghi"


def test_refresh_inventory_quantity(api, session, state):
    session.request.return_value = _response(payload={"inventories": [], "totalQuantity": 8250.5, "isLow": True})
    assert api.refresh_inventory_quantity() == 8250.5
    assert state.get("inventoryQuantity") == 8250.5


def test_mark_notifications_viewed(api, state):
    api.mark_notifications_viewed()
    assert state.get("lastNotificationView")


def test_state_ignores_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken")
    assert ClientState(path=str(path)).get("jwtToken") is None


def test_cached_results_are_copies(api, session):
    session.request.return_value = _response(payload={"suppliers": [{"id": 1}]})
    first = api.get("/suppliers")
    first["suppliers"].append({"id": 2})

    second = api.get("/suppliers")
    second["suppliers"][0]["id"] = 99

    assert api.get("/suppliers") == {"suppliers": [{"id": 1}]}
    assert session.request.call_count == 1


def test_download_returns_raw_bytes_uncached(api, session):
    resp = _response()
    resp.content = b"%PDF-1.4 report"
    session.request.return_value = resp

    assert api.download("/reports/inventory/pdf", params={"period": "7d"}) == b"%PDF-1.4 report"
    api.download("/reports/inventory/pdf", params={"period": "7d"})

    assert session.request.call_count == 2
    args, kwargs = session.request.call_args
    assert args == ("GET", "http://factory.test/api/reports/inventory/pdf")
    assert kwargs["params"] == {"period": "7d"}
    assert api.cache_stats()["cacheSize"] == 0


def test_logout_clears_session_and_cache(api, session, state):
    state.set("jwtToken", "abc.def.ghi")
    state.set("lastLogin", "2024-01-01T00:00:00+00:00")
    api.get("/suppliers")
    assert api.cache_stats()["cacheSize"] == 1

    api.logout()

    assert api.is_authenticated is False
    assert state.get("lastLogin") is None
    assert api.cache_stats()["cacheSize"] == 0
    api.get("/suppliers")
    _, kwargs = session.request.call_args
    assert kwargs["headers"] == {}
