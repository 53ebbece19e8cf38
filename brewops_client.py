"""
Small HTTP client for the BrewOps API.

Wraps a ``requests.Session`` with the bearer token kept in a ClientState
file. Identical GETs that are in flight at the same time share one request,
and successful GET responses are cached for five minutes (at most 50
entries); every caller gets its own copy. A 401 from the server logs the
client out and raises SessionExpired.
"""
import copy
import json
import logging
import os
import threading
import time
from concurrent.futures import Future
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = os.getenv("BREWOPS_BACKEND_URL", "http://localhost:4323") + "/api"
DEFAULT_STATE_PATH = os.path.join(os.path.expanduser("~"), ".brewops", "client_state.json")

CACHE_TTL_SECONDS = 300
CACHE_MAX_ENTRIES = 50


class SessionExpired(Exception):
    """The server rejected the stored token; the user has to log in again."""


class ApiError(Exception):
    def __init__(self, status, message, payload=None):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message
        self.payload = payload or {}


class ClientState:
    """JSON file holding jwtToken, lastLogin, lastNotificationView and inventoryQuantity."""

    def __init__(self, path=DEFAULT_STATE_PATH):
        self.path = path
        self._lock = threading.Lock()
        self._data = self._load()

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable client state at %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self):
        if not self.path:
            return
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump(self._data, fh)

    def get(self, key, default=None):
        with self._lock:
            return self._data.get(key, default)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value
            self._save()

    def remove(self, *keys):
        with self._lock:
            for key in keys:
                self._data.pop(key, None)
            self._save()


class BrewOpsClient:
    def __init__(self, base_url=DEFAULT_BASE_URL, timeout=15, state=None, session=None, clock=time.time):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.state = state if state is not None else ClientState()
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._clock = clock
        self._lock = threading.Lock()
        self._cache = {}
        self._pending = {}

    # ---------- cache ----------
    @staticmethod
    def cache_key(url, params=None):
        return f"get:{url}:{json.dumps(params, sort_keys=True)}"

    def _cached(self, key):
        with self._lock:
            entry = self._cache.get(key)
        if entry and self._clock() - entry[0] < CACHE_TTL_SECONDS:
            return copy.deepcopy(entry[1])
        return None

    def _store(self, key, data):
        with self._lock:
            self._cache[key] = (self._clock(), copy.deepcopy(data))
            if len(self._cache) > CACHE_MAX_ENTRIES:
                newest = sorted(self._cache.items(), key=lambda kv: kv[1][0], reverse=True)
                self._cache = dict(newest[:CACHE_MAX_ENTRIES])

    def clear_cache(self):
        with self._lock:
            self._cache.clear()
            self._pending.clear()

    def cache_stats(self):
        with self._lock:
            return {"cacheSize": len(self._cache), "pendingRequests": len(self._pending)}

    # ---------- transport ----------
    def _headers(self):
        token = self.state.get("jwtToken")
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _send(self, method, url, params=None, json_body=None, raw=False):
        resp = self.session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=self._headers(),
            timeout=self.timeout,
        )
        if resp.status_code == 401:
            self.state.remove("jwtToken", "lastLogin")
            self.clear_cache()
            raise SessionExpired("Session expired. Please login again.")
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {}
            message = payload.get("error") if isinstance(payload, dict) else None
            raise ApiError(resp.status_code, message or resp.reason, payload)
        if raw:
            return resp.content
        return resp.json() if resp.content else {}

    def request(self, method, path, params=None, json_body=None, skip_cache=False, skip_dedup=False):
        method = method.upper()
        url = f"{self.base_url}/{path.lstrip('/')}"
        if method != "GET":
            return self._send(method, url, params=params, json_body=json_body)

        key = self.cache_key(url, params)
        if not skip_cache:
            hit = self._cached(key)
            if hit is not None:
                return hit

        owner = True
        with self._lock:
            future = self._pending.get(key) if not skip_dedup else None
            if future is not None:
                owner = False
            else:
                future = Future()
                if not skip_dedup:
                    self._pending[key] = future

        if not owner:
            return copy.deepcopy(future.result())

        try:
            data = self._send("GET", url, params=params)
        except Exception as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(data)
            if not skip_cache:
                self._store(key, data)
            return data
        finally:
            with self._lock:
                if self._pending.get(key) is future:
                    del self._pending[key]

    def get(self, path, params=None, **kwargs):
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path, json_body=None):
        return self.request("POST", path, json_body=json_body)

    def put(self, path, json_body=None):
        return self.request("PUT", path, json_body=json_body)

    def patch(self, path, json_body=None):
        return self.request("PATCH", path, json_body=json_body)

    def delete(self, path):
        return self.request("DELETE", path)

    def download(self, path, params=None):
        """Fetch a binary resource such as a PDF report; never cached."""
        return self._send("GET", f"{self.base_url}/{path.lstrip('/')}", params=params, raw=True)

    # ---------- session ----------
    def login(self, email, password):
        data = self.post("/auth/login", {"email": email, "password": password})
        self.state.set("jwtToken", data["jwtToken"])
        self.state.set("lastLogin", datetime.now(timezone.utc).isoformat())
        self.clear_cache()
        return data

    def logout(self):
        self.state.remove("jwtToken", "lastLogin")
        self.clear_cache()

    @property
    def is_authenticated(self):
        return bool(self.state.get("jwtToken"))

    # ---------- persisted helpers ----------
    def mark_notifications_viewed(self):
        self.state.set("lastNotificationView", datetime.now(timezone.utc).isoformat())

    def refresh_inventory_quantity(self):
        data = self.get("/inventory", skip_cache=True)
        quantity = data.get("totalQuantity", 0)
        self.state.set("inventoryQuantity", quantity)
        return quantity
