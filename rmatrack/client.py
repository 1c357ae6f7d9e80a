"""
HTTP client for the RMA tracker API, used by dashboards and scripts.

GET responses are cached for ``cache_ttl`` seconds keyed by path and query.
Every mutating call drops the cached entries under the paths it affects.
"""

from __future__ import annotations
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import quote, urlencode

import requests

DEFAULT_TTL = 30.0
DEFAULT_TIMEOUT = 10

# Path prefixes whose cached reads go stale after any RMA mutation
RMA_DEPENDENT_PREFIXES = ("/api/rma", "/api/analytics")


class TTLCache:
    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self.clock() - stored_at >= self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any):
        with self._lock:
            self._entries[key] = (self.clock(), value)

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; returns how many."""
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)


class ApiError(Exception):
    def __init__(self, status_code: int, payload: Any):
        self.status_code = status_code
        self.payload = payload
        detail = payload.get("details") if isinstance(payload, dict) else payload
        super().__init__(f"HTTP {status_code}: {detail}")


class RMAApiClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None,
                 cache_ttl: float = DEFAULT_TTL, timeout: float = DEFAULT_TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.cache = TTLCache(cache_ttl, clock=clock)
        self.timeout = timeout

    # ---- auth ----

    def login(self, username: str, password: str) -> Dict:
        self.cache.clear()
        return self._send("POST", "/auth/login", json={"username": username, "password": password})

    def logout(self):
        self.cache.clear()
        return self._send("POST", "/auth/logout")

    # ---- reads ----

    def list_rmas(self, **filters) -> Dict:
        return self._get("/api/rma", filters)

    def get_rma(self, rma_id: int) -> Dict:
        return self._get(f"/api/rma/{rma_id}")

    def get_rma_by_number(self, rma_number: str) -> Dict:
        return self._get(f"/api/rma/number/{quote(rma_number, safe='')}")

    def list_comments(self, rma_id: int) -> Dict:
        return self._get(f"/api/rma/{rma_id}/comments")

    def overdue_analysis(self, days: int = 30, status: str = "all") -> Dict:
        return self._get("/api/analytics/overdue", {"days": days, "status": status})

    def parts_analytics(self, sort_by: Optional[str] = None) -> Dict:
        return self._get("/api/analytics/parts", {"sortBy": sort_by} if sort_by else None)

    def sla_metrics(self) -> Dict:
        return self._get("/api/analytics/sla")

    def part_site_comments(self, part_name: str, part_number: str, site_id: str) -> Dict:
        return self._get(self._part_site_path(site_id), self._part_params(part_name, part_number))

    # ---- mutations ----

    def create_rma(self, payload: Dict) -> Dict:
        return self._mutate("POST", "/api/rma", RMA_DEPENDENT_PREFIXES, json=payload)

    def update_rma(self, rma_id: int, payload: Dict) -> Dict:
        return self._mutate("PUT", f"/api/rma/{rma_id}", RMA_DEPENDENT_PREFIXES, json=payload)

    def change_status(self, rma_id: int, status: str, notes: str = "") -> Dict:
        return self._mutate("POST", f"/api/rma/{rma_id}/status", RMA_DEPENDENT_PREFIXES,
                            json={"caseStatus": status, "notes": notes})

    def add_comment(self, rma_id: int, body: str, comment_type: str = "update", is_internal: bool = False) -> Dict:
        return self._mutate("POST", f"/api/rma/{rma_id}/comments", (f"/api/rma/{rma_id}/comments",),
                            json={"body": body, "commentType": comment_type, "isInternal": is_internal})

    def add_part_comment(self, part_name: str, part_number: str, site_id: str, payload: Dict) -> Dict:
        # latestComment is embedded in parts analytics
        return self._mutate("POST", self._part_site_path(site_id), ("/api/part-comments", "/api/analytics/parts"),
                            params=self._part_params(part_name, part_number), json=payload)

    def convert_dtr(self, dtr_id: int, notes: str = "") -> Dict:
        return self._mutate("POST", f"/api/dtr/{dtr_id}/convert-to-rma",
                            ("/api/dtr",) + RMA_DEPENDENT_PREFIXES, json={"additionalNotes": notes})

    def import_rmas(self, rows) -> Dict:
        return self._mutate("POST", "/api/import/rma", RMA_DEPENDENT_PREFIXES, json=rows)

    def invalidate(self, prefix: str) -> int:
        return self.cache.invalidate(prefix)

    # ---- plumbing ----

    @staticmethod
    def _part_site_path(site_id: str) -> str:
        return "/api/part-comments/site/{}".format(quote(str(site_id), safe=""))

    @staticmethod
    def _part_params(part_name: str, part_number: str) -> Dict[str, str]:
        return {"partName": part_name, "partNumber": part_number}

    @staticmethod
    def _cache_key(path: str, params: Optional[Dict]) -> str:
        if not params:
            return path
        return f"{path}?{urlencode(sorted(params.items()))}"

    def _get(self, path: str, params: Optional[Dict] = None) -> Any:
        key = self._cache_key(path, params)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        data = self._send("GET", path, params=params)
        self.cache.set(key, data)
        return data

    def _mutate(self, method: str, path: str, prefixes, **kwargs) -> Any:
        data = self._send(method, path, **kwargs)
        for prefix in prefixes:
            self.cache.invalidate(prefix)
        return data

    def _send(self, method: str, path: str, **kwargs) -> Any:
        response = self.session.request(method, self.base_url + path, timeout=self.timeout, **kwargs)
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        if response.status_code >= 400:
            raise ApiError(response.status_code, payload)
        return payload
