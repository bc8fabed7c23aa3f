"""End-to-end tests for the JSON API against a mocked kintone."""

import httpx
import pytest
from fastapi.testclient import TestClient
from respx import MockRouter

from conftest import API_TOKEN, BASE_URL, RECORDS_URL
from kintone_search.config import FieldMapping, Settings
from kintone_search.main import create_app


def _record(rid: int, code: str) -> dict:
    return {
        "$id": {"type": "__ID__", "value": str(rid)},
        "商品コード": {"type": "SINGLE_LINE_TEXT", "value": code},
        "商品名": {"type": "SINGLE_LINE_TEXT", "value": f"Item {code}"},
        "上代": {"type": "NUMBER", "value": "1200"},
    }


def test_ping(client: TestClient):
    response = client.get("/api/ping")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_search_returns_records_and_next_offset(client: TestClient, respx_mock: MockRouter):
    """Three upstream records pass through unmodified with nextOffset = offset + limit."""

    records = [_record(1, "ABC-1"), _record(2, "ABC-2"), _record(3, "XABC")]
    route = respx_mock.get(RECORDS_URL).mock(
        return_value=httpx.Response(200, json={"records": records, "totalCount": "3"})
    )

    response = client.get("/api/search", params={"keyword": "ABC", "limit": 10, "offset": 0})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "totalCount": "3", "records": records, "nextOffset": 10}

    sent = route.calls.last.request
    assert sent.headers["X-Cybozu-API-Token"] == API_TOKEN
    assert sent.url.params["app"] == "7"
    assert sent.url.params["totalCount"] == "true"
    assert sent.url.params["query"] == (
        '商品コード like "ABC" or 商品名 like "ABC" order by 更新日時 desc limit 10 offset 0'
    )
    projected = [value for key, value in sent.url.params.multi_items() if key.startswith("fields[")]
    assert projected == ["$id", "レコード番号", "商品コード", "商品名", "上代", "記号", "内箱入数", "ロケーション", "差引実"]


def test_search_next_offset_ignores_returned_count(client: TestClient, respx_mock: MockRouter):
    """nextOffset is computed from the request even when fewer records come back."""

    respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(200, json={"records": [], "totalCount": None}))

    body = client.get("/api/search", params={"limit": 25, "offset": 50}).json()

    assert body == {"ok": True, "records": [], "nextOffset": 75}


def test_search_defaults_and_empty_keyword(client: TestClient, respx_mock: MockRouter):
    """No keyword means no filter clause and the default paging."""

    route = respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(200, json={"records": []}))

    body = client.get("/api/search").json()

    assert body["nextOffset"] == 50
    assert route.calls.last.request.url.params["query"] == "order by 更新日時 desc limit 50 offset 0"


def test_search_numeric_keyword_matches_price(client: TestClient, respx_mock: MockRouter):
    route = respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(200, json={"records": []}))

    client.get("/api/search", params={"keyword": "1200"})

    assert "上代 = 1200" in route.calls.last.request.url.params["query"]


def test_search_propagates_upstream_status_and_body(client: TestClient, respx_mock: MockRouter):
    """kintone's error JSON is returned as the envelope error with its status code."""

    error = {"code": "GAIA_IQ11", "id": "abc", "message": "query is invalid"}
    respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(400, json=error))

    response = client.get("/api/search", params={"keyword": "x"})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": error}


def test_search_network_failure_is_500(client: TestClient, respx_mock: MockRouter):
    respx_mock.get(RECORDS_URL).mock(side_effect=httpx.ConnectError("connection refused"))

    response = client.get("/api/search")

    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "connection refused"}


def test_search_rejects_negative_paging(client: TestClient, respx_mock: MockRouter):
    """Invalid limit/offset is a client error and never reaches kintone."""

    response = client.get("/api/search", params={"limit": -1})

    assert response.status_code == 400
    assert response.json()["ok"] is False
    assert len(respx_mock.calls) == 0


def test_record_requires_id(client: TestClient, respx_mock: MockRouter):
    response = client.get("/api/record")

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "id is required"}
    assert len(respx_mock.calls) == 0


@pytest.mark.parametrize("record_id", ["1 or 1=1", "²", "١٢", "-1"])
def test_record_rejects_non_numeric_id(client: TestClient, respx_mock: MockRouter, record_id):
    """Only ASCII digits are accepted; Unicode digits are a 400, not a server error."""

    response = client.get("/api/record", params={"id": record_id})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "id must be numeric"}
    assert len(respx_mock.calls) == 0


def test_record_not_found_returns_null(client: TestClient, respx_mock: MockRouter):
    """A successful upstream call with no match is still ok:true."""

    route = respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(200, json={"records": []}))

    response = client.get("/api/record", params={"id": "42"})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "record": None}
    sent = route.calls.last.request.url.params
    assert sent["query"] == "$id = 42 limit 1"
    assert not [key for key in sent.keys() if key.startswith("fields")]


def test_record_returns_first_match(client: TestClient, respx_mock: MockRouter):
    record = _record(42, "ABC-42")
    respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(200, json={"records": [record]}))

    assert client.get("/api/record", params={"id": "42"}).json() == {"ok": True, "record": record}


def test_record_fields_comma_list_and_repeated(client: TestClient, respx_mock: MockRouter):
    """Only the requested field codes are projected upstream."""

    route = respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(200, json={"records": []}))

    client.get("/api/record?id=5&fields=商品名,上代&fields=DropBox")

    sent = route.calls.last.request.url.params
    assert [sent[f"fields[{idx}]"] for idx in range(3)] == ["商品名", "上代", "DropBox"]
    assert "fields[3]" not in sent


def test_record_upstream_auth_error(client: TestClient, respx_mock: MockRouter):
    error = {"code": "GAIA_NO01", "message": "Using this API token, you cannot run the specified API."}
    respx_mock.get(RECORDS_URL).mock(return_value=httpx.Response(403, json=error))

    response = client.get("/api/record", params={"id": "1"})

    assert response.status_code == 403
    assert response.json() == {"ok": False, "error": error}


def test_unknown_api_route_is_json_404(client: TestClient):
    for path in ("/api/unknown", "/api/search/extra", "/api"):
        response = client.get(path)
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Not Found"}


def test_frontend_is_served(client: TestClient):
    response = client.get("/")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert client.get("/app.js").status_code == 200


def test_guest_space_endpoint(respx_mock: MockRouter):
    """A guest space id switches the records endpoint path."""

    settings = Settings(base_url=BASE_URL, app_id="7", api_token=API_TOKEN, guest_space_id="3")
    route = respx_mock.get(f"{BASE_URL}/k/guest/3/v1/records.json").mock(
        return_value=httpx.Response(200, json={"records": []})
    )

    with TestClient(create_app(settings)) as client:
        assert client.get("/api/record", params={"id": "1"}).json() == {"ok": True, "record": None}
    assert route.called


def test_field_mapping_follows_overrides(respx_mock: MockRouter):
    """The frontend reads card field codes from the server instead of hardcoding them."""

    fields = FieldMapping(code="code", name="title", price="list_price")
    settings = Settings(base_url=BASE_URL, app_id="7", api_token=API_TOKEN, fields=fields)

    with TestClient(create_app(settings)) as client:
        body = client.get("/api/fields").json()

    assert body["ok"] is True
    assert body["fields"]["code"] == "code"
    assert body["fields"]["name"] == "title"
    assert body["fields"]["price"] == "list_price"
    assert body["fields"]["inner_quantity"] == "内箱入数"
    assert len(respx_mock.calls) == 0
