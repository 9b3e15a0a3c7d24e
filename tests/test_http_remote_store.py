import json

import pytest
import responses

from idlesave.cloud import WEB_PATH, HttpRemoteStore
from idlesave.errors import CloudError

BASE = "https://saves.example.test"
URL = f"{BASE}/users/u1/{WEB_PATH}.json"


def test_requires_base_url():
    with pytest.raises(CloudError):
        HttpRemoteStore("")


@responses.activate
def test_fetch_returns_stored_text():
    responses.add(responses.GET, URL, json="IdleSaveFormatAABabcEndOfSavefile", status=200)
    store = HttpRemoteStore(BASE + "/", auth_token="tok")

    assert store.fetch("u1", WEB_PATH) == "IdleSaveFormatAABabcEndOfSavefile"
    assert "auth=tok" in responses.calls[0].request.url


@responses.activate
def test_fetch_without_token_sends_no_auth_param():
    responses.add(responses.GET, URL, json="text", status=200)
    store = HttpRemoteStore(BASE)

    store.fetch("u1", WEB_PATH)

    assert "auth=" not in responses.calls[0].request.url


@responses.activate
@pytest.mark.parametrize(("status", "body"), [(200, "null"), (404, "")])
def test_missing_value_reads_as_none(status, body):
    responses.add(responses.GET, URL, body=body, status=status)

    assert HttpRemoteStore(BASE).fetch("u1", WEB_PATH) is None


@responses.activate
@pytest.mark.parametrize(
    ("status", "body"),
    [(500, json.dumps({"error": "boom"})), (401, json.dumps({"error": "Permission denied"})), (200, "{not json"), (200, "42")],
)
def test_bad_answers_raise_cloud_error(status, body):
    responses.add(responses.GET, URL, body=body, status=status)

    with pytest.raises(CloudError):
        HttpRemoteStore(BASE).fetch("u1", WEB_PATH)


@responses.activate
def test_unreachable_server_raises_cloud_error():
    with pytest.raises(CloudError):
        HttpRemoteStore(BASE).fetch("u1", WEB_PATH)


@responses.activate
def test_store_puts_json_string():
    responses.add(responses.PUT, URL, json="ok", status=200)
    store = HttpRemoteStore(BASE, auth_token="tok", timeout=3)

    store.store("u1", WEB_PATH, "IdleSaveFormatAABxyzEndOfSavefile")

    request = responses.calls[0].request
    assert json.loads(request.body) == "IdleSaveFormatAABxyzEndOfSavefile"
    assert "auth=tok" in request.url


@responses.activate
def test_store_failure_raises_cloud_error():
    responses.add(responses.PUT, URL, json={"error": "Permission denied"}, status=401)

    with pytest.raises(CloudError, match="401"):
        HttpRemoteStore(BASE).store("u1", WEB_PATH, "text")


@pytest.mark.parametrize("base", ["http://localhost:9000", BASE])
def test_retries_apply_to_plain_and_tls_urls(base):
    store = HttpRemoteStore(base)

    adapter = store.session.get_adapter(store._url("u1", WEB_PATH))

    assert adapter.max_retries.total == 3
    assert 503 in adapter.max_retries.status_forcelist
