import json

import httpx
import pytest

from wlh.errors import Conflict, NotFound, RemoteIOError
from wlh.objects import ConfigMap, ObjectMeta, OwnerReference
from wlh.store import HttpResourceStore, SqliteResourceStore


def _cm(name="cfg", data=None, rv=None):
    ref = OwnerReference(api_version="batch.volcano.sh/v1alpha1", kind="Job", name="job1", uid="u1", controller=True, block_owner_deletion=True)
    return ConfigMap(
        metadata=ObjectMeta(namespace="ns1", name=name, owner_references=(ref,), resource_version=rv),
        data=data if data is not None else {"k": "v"},
    )


# --- SQLite store ---


def test_sqlite_create_get(store):
    created = store.create(_cm())
    assert created.metadata.uid
    assert created.metadata.resource_version == "1"
    got = store.get("ns1", "cfg")
    assert got == created
    assert got.metadata.owner_references[0].uid == "u1"


def test_sqlite_create_existing_conflicts(store):
    store.create(_cm())
    with pytest.raises(Conflict):
        store.create(_cm())


def test_sqlite_update_bumps_version(store):
    created = store.create(_cm())
    created.data = {"k": "v2"}
    updated = store.update(created)
    assert updated.data == {"k": "v2"}
    assert updated.metadata.resource_version == "2"


def test_sqlite_update_stale_version_conflicts(store):
    first = store.create(_cm())
    store.update(_cm(data={"k": "a"}, rv=first.metadata.resource_version))
    with pytest.raises(Conflict):
        store.update(_cm(data={"k": "b"}, rv=first.metadata.resource_version))
    assert store.get("ns1", "cfg").data == {"k": "a"}


def test_sqlite_update_missing(store):
    with pytest.raises(NotFound):
        store.update(_cm())


def test_sqlite_delete(store):
    store.create(_cm())
    store.delete("ns1", "cfg")
    with pytest.raises(NotFound):
        store.get("ns1", "cfg")
    with pytest.raises(NotFound):
        store.delete("ns1", "cfg")


def test_sqlite_path_can_be_directory(tmp_path):
    s = SqliteResourceStore(str(tmp_path))
    assert s.db_path == str(tmp_path / "wlh.db")
    s.create(_cm())
    assert s.get("ns1", "cfg").data == {"k": "v"}


# --- HTTP store ---


class _FakeAPI:
    """Just enough of the API server for ConfigMaps."""

    def __init__(self):
        self.items = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        # api/v1/namespaces/<ns>/configmaps[/<name>]
        ns = parts[3]
        name = parts[5] if len(parts) > 5 else None
        if request.method == "POST":
            body = json.loads(request.content)
            key = (ns, body["metadata"]["name"])
            if key in self.items:
                return httpx.Response(409, json={"kind": "Status", "message": "already exists", "reason": "AlreadyExists", "code": 409})
            body["metadata"]["uid"] = "cm-uid"
            body["metadata"]["resourceVersion"] = "1"
            self.items[key] = body
            return httpx.Response(201, json=body)
        key = (ns, name)
        if key not in self.items:
            return httpx.Response(404, json={"kind": "Status", "message": f'configmaps "{name}" not found', "reason": "NotFound", "code": 404})
        if request.method == "GET":
            return httpx.Response(200, json=self.items[key])
        if request.method == "PUT":
            body = json.loads(request.content)
            if body["metadata"].get("resourceVersion") != self.items[key]["metadata"]["resourceVersion"]:
                return httpx.Response(409, json={"message": "the object has been modified", "code": 409})
            body["metadata"]["resourceVersion"] = str(int(body["metadata"]["resourceVersion"]) + 1)
            self.items[key] = body
            return httpx.Response(200, json=body)
        if request.method == "DELETE":
            del self.items[key]
            return httpx.Response(200, json={"kind": "Status", "status": "Success"})
        return httpx.Response(405)


@pytest.fixture
def api():
    return _FakeAPI()


@pytest.fixture
def http_store(api):
    with HttpResourceStore("http://api.test/", token="t0ken", transport=httpx.MockTransport(api.handler)) as s:
        yield s


def test_http_create_sends_wire_shape(api, http_store):
    created = http_store.create(_cm())
    assert created.metadata.uid == "cm-uid"

    req = api.requests[-1]
    assert req.method == "POST"
    assert req.url.path == "/api/v1/namespaces/ns1/configmaps"
    assert req.headers["Authorization"] == "Bearer t0ken"
    body = json.loads(req.content)
    assert body["apiVersion"] == "v1"
    assert body["kind"] == "ConfigMap"
    assert body["data"] == {"k": "v"}
    assert body["metadata"]["ownerReferences"] == [
        {
            "apiVersion": "batch.volcano.sh/v1alpha1",
            "kind": "Job",
            "name": "job1",
            "uid": "u1",
            "controller": True,
            "blockOwnerDeletion": True,
        }
    ]


def test_http_get_update_delete(http_store):
    http_store.create(_cm())
    cm = http_store.get("ns1", "cfg")
    cm.data = {"k": "v2"}
    updated = http_store.update(cm)
    assert updated.data == {"k": "v2"}
    assert updated.metadata.resource_version == "2"
    http_store.delete("ns1", "cfg")
    with pytest.raises(NotFound):
        http_store.get("ns1", "cfg")


def test_http_maps_conflict(http_store):
    http_store.create(_cm())
    with pytest.raises(Conflict) as exc:
        http_store.create(_cm())
    assert "already exists" in str(exc.value)
    with pytest.raises(Conflict):
        http_store.update(_cm(rv="0"))


def test_http_other_status_is_remote_io_error():
    transport = httpx.MockTransport(lambda req: httpx.Response(500, text="oops"))
    with HttpResourceStore("http://api.test", transport=transport) as s:
        with pytest.raises(RemoteIOError) as exc:
            s.get("ns1", "cfg")
    assert exc.value.status == 500


def test_http_transport_error_is_remote_io_error():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    with HttpResourceStore("http://api.test", transport=httpx.MockTransport(boom)) as s:
        with pytest.raises(RemoteIOError) as exc:
            s.delete("ns1", "cfg")
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


def test_http_invalid_payload():
    transport = httpx.MockTransport(lambda req: httpx.Response(200, json={"nope": True}))
    with HttpResourceStore("http://api.test", transport=transport) as s:
        with pytest.raises(RemoteIOError):
            s.get("ns1", "cfg")
