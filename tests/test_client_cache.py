import pytest

from rmatrack.client import ApiError, RMAApiClient, TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self):
        self.calls = []
        self.responses = {}

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs.get("params")))
        status, payload = self.responses.get((method, url), (200, {"url": url, "n": len(self.calls)}))
        return FakeResponse(status, payload)


def test_ttl_cache_expiry_and_prefix_invalidation():
    clock = FakeClock()
    cache = TTLCache(ttl=30, clock=clock)
    cache.set("/api/rma?status=all", 1)
    cache.set("/api/rma/5", 2)
    cache.set("/api/sites", 3)
    assert cache.get("/api/rma/5") == 2
    assert cache.invalidate("/api/rma") == 2
    assert cache.get("/api/rma/5") is None
    assert cache.get("/api/sites") == 3
    clock.now += 30
    assert cache.get("/api/sites") is None


@pytest.fixture
def client():
    session = FakeSession()
    clock = FakeClock()
    api = RMAApiClient("http://rma.local/", session=session, clock=clock)
    return api, session, clock


def test_reads_are_cached_until_ttl(client):
    api, session, clock = client
    first = api.overdue_analysis(days=45)
    second = api.overdue_analysis(days=45)
    assert first == second
    assert len(session.calls) == 1
    api.overdue_analysis(days=60)
    assert len(session.calls) == 2
    clock.now += 31
    api.overdue_analysis(days=45)
    assert len(session.calls) == 3


def test_mutation_invalidates_rma_and_analytics(client):
    api, session, _ = client
    api.list_rmas(status="all")
    api.overdue_analysis()
    api.sla_metrics()
    assert len(session.calls) == 3
    api.change_status(5, "Sent to CDS")
    api.list_rmas(status="all")
    api.overdue_analysis()
    api.sla_metrics()
    assert len(session.calls) == 7
    assert session.calls[3][0] == "POST"
    assert session.calls[3][1] == "http://rma.local/api/rma/5/status"


def test_part_comment_invalidates_parts_analytics(client):
    api, session, _ = client
    api.parts_analytics()
    api.add_part_comment("Lamp Assembly", "003-005678-01", "7", {"comment": "chased depot"})
    api.parts_analytics()
    assert len(session.calls) == 3
    assert session.calls[1][1] == "http://rma.local/api/part-comments/site/7"
    assert session.calls[1][2] == {"partName": "Lamp Assembly", "partNumber": "003-005678-01"}


def test_part_comment_with_slash_in_part_number(client):
    api, session, _ = client
    api.part_site_comments("Lamp", "N/A", "7")
    assert session.calls[0] == ("GET", "http://rma.local/api/part-comments/site/7", {"partName": "Lamp", "partNumber": "N/A"})


def test_errors_raise_api_error(client):
    api, session, _ = client
    session.responses[("GET", "http://rma.local/api/rma/99")] = (404, {"error": "NotFound", "details": "RMA 99 not found"})
    with pytest.raises(ApiError) as excinfo:
        api.get_rma(99)
    assert excinfo.value.status_code == 404
    assert "RMA 99 not found" in str(excinfo.value)
    assert len(api.cache) == 0
