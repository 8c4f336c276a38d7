from __future__ import annotations

import os
import sqlite3
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

import httpx
from pydantic import ValidationError

from .api_models import ConfigMapModel, StatusModel
from .errors import Conflict, NotFound, RemoteIOError
from .objects import ConfigMap
from .settings import settings


class ResourceStore(Protocol):
    """The four calls the ConfigMap reconciler needs from a store."""

    def get(self, namespace: str, name: str) -> ConfigMap: ...

    def create(self, cm: ConfigMap) -> ConfigMap: ...

    def update(self, cm: ConfigMap) -> ConfigMap: ...

    def delete(self, namespace: str, name: str) -> None: ...


class HttpResourceStore:
    """ConfigMaps over the Kubernetes-style REST API.

    404 maps to NotFound, 409 to Conflict; every other failure, including
    transport errors, becomes RemoteIOError.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_s: float = settings.api_timeout_s,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
            follow_redirects=False,
            transport=transport,
        )

    def __enter__(self) -> "HttpResourceStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _path(namespace: str, name: str | None = None) -> str:
        path = f"/api/v1/namespaces/{namespace}/configmaps"
        if name is not None:
            path = f"{path}/{name}"
        return path

    def _request(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        try:
            resp = self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise RemoteIOError(f"{method} {path}: {type(e).__name__}: {e}") from e
        if resp.is_success:
            return resp
        try:
            detail = StatusModel.model_validate(resp.json()).message
        except (ValueError, ValidationError):
            detail = ""
        msg = f"{method} {path}: HTTP {resp.status_code}"
        if detail:
            msg = f"{msg}: {detail}"
        if resp.status_code == 404:
            raise NotFound(msg)
        if resp.status_code == 409:
            raise Conflict(msg)
        raise RemoteIOError(msg, status=resp.status_code)

    def _decode(self, resp: httpx.Response) -> ConfigMap:
        try:
            return ConfigMapModel.model_validate(resp.json()).to_configmap()
        except (ValueError, ValidationError) as e:
            raise RemoteIOError(f"Invalid ConfigMap payload: {e}") from e

    def get(self, namespace: str, name: str) -> ConfigMap:
        return self._decode(self._request("GET", self._path(namespace, name)))

    def create(self, cm: ConfigMap) -> ConfigMap:
        body = ConfigMapModel.from_configmap(cm).to_wire()
        return self._decode(self._request("POST", self._path(cm.namespace), json=body))

    def update(self, cm: ConfigMap) -> ConfigMap:
        body = ConfigMapModel.from_configmap(cm).to_wire()
        return self._decode(self._request("PUT", self._path(cm.namespace, cm.name), json=body))

    def delete(self, namespace: str, name: str) -> None:
        self._request("DELETE", self._path(namespace, name))


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SqliteResourceStore:
    """Single-file ConfigMap store for single-node use.

    Updates follow the API server's optimistic concurrency rule: a ConfigMap
    carrying a resource version that is no longer current is rejected with
    Conflict. A ConfigMap without one overwrites unconditionally.
    """

    def __init__(self, db_path: str = settings.store_db_path) -> None:
        self.db_path = self._resolve_db_path(db_path)
        self.init_db()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        p = os.path.abspath(db_path)
        # A bind-mounted path that did not exist may show up as a directory.
        if os.path.isdir(p):
            p = os.path.join(p, "wlh.db")
        parent = os.path.dirname(p)
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)
        return p

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS configmaps (
                  namespace TEXT NOT NULL,
                  name TEXT NOT NULL,
                  resource_version INTEGER NOT NULL,
                  body TEXT NOT NULL, -- ConfigMap JSON, API wire shape
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  PRIMARY KEY(namespace, name)
                );
                """
            )

    @staticmethod
    def _encode(cm: ConfigMap, resource_version: int) -> str:
        stored = replace(cm, metadata=replace(cm.metadata, resource_version=str(resource_version)))
        return ConfigMapModel.from_configmap(stored).model_dump_json(by_alias=True, exclude_none=True)

    @staticmethod
    def _decode(row: sqlite3.Row) -> ConfigMap:
        return ConfigMapModel.model_validate_json(row["body"]).to_configmap()

    def get(self, namespace: str, name: str) -> ConfigMap:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT body FROM configmaps WHERE namespace=? AND name=?", (namespace, name)
            ).fetchone()
        if row is None:
            raise NotFound(f'configmaps "{name}" not found in namespace "{namespace}"')
        return self._decode(row)

    def list_configmaps(self, namespace: str) -> list[ConfigMap]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT body FROM configmaps WHERE namespace=? ORDER BY name", (namespace,)
            ).fetchall()
        return [self._decode(r) for r in rows]

    def create(self, cm: ConfigMap) -> ConfigMap:
        meta = replace(cm.metadata, uid=cm.metadata.uid or str(uuid.uuid4()))
        cm = replace(cm, metadata=meta, data=dict(cm.data))
        now = utc_now()
        try:
            with self.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO configmaps (namespace, name, resource_version, body, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (meta.namespace, meta.name, 1, self._encode(cm, 1), now, now),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict(f'configmaps "{meta.name}" already exists') from e
        return self.get(meta.namespace, meta.name)

    def update(self, cm: ConfigMap) -> ConfigMap:
        meta = cm.metadata
        with self.connect() as conn:
            row = conn.execute(
                "SELECT resource_version FROM configmaps WHERE namespace=? AND name=?",
                (meta.namespace, meta.name),
            ).fetchone()
            if row is None:
                raise NotFound(f'configmaps "{meta.name}" not found in namespace "{meta.namespace}"')
            current = int(row["resource_version"])
            if meta.resource_version is not None and meta.resource_version != str(current):
                raise Conflict(
                    f'Operation cannot be fulfilled on configmaps "{meta.name}": '
                    "the object has been modified; please apply your changes to the latest version and try again"
                )
            nxt = current + 1
            cur = conn.execute(
                """
                UPDATE configmaps SET resource_version=?, body=?, updated_at=?
                WHERE namespace=? AND name=? AND resource_version=?
                """,
                (nxt, self._encode(cm, nxt), utc_now(), meta.namespace, meta.name, current),
            )
            if cur.rowcount != 1:
                raise Conflict(f'Operation cannot be fulfilled on configmaps "{meta.name}"')
        return self.get(meta.namespace, meta.name)

    def delete(self, namespace: str, name: str) -> None:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM configmaps WHERE namespace=? AND name=?", (namespace, name))
            if cur.rowcount == 0:
                raise NotFound(f'configmaps "{name}" not found in namespace "{namespace}"')
