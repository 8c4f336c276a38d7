import json

import pytest

import cli
from wlh.store import SqliteResourceStore


def _run(capsys, *argv):
    rc = cli.main(list(argv))
    out = capsys.readouterr().out
    return rc, json.loads(out) if out.strip() else None


def test_parse_data():
    assert cli._parse_data(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}
    with pytest.raises(ValueError):
        cli._parse_data(["novalue"])


def test_configmap_apply_then_delete(tmp_path, capsys):
    db = str(tmp_path / "cli.db")
    common = ["--namespace", "ns1", "--job", "job1", "--job-uid", "u1", "--name", "cfg", "--db", db]

    rc, out = _run(capsys, "configmap", "apply", *common, "--data", "k=v")
    assert rc == 0
    assert out == {"applied": "ns1/cfg"}

    rc, _ = _run(capsys, "configmap", "apply", *common, "--data", "k=v2")
    assert rc == 0
    cm = SqliteResourceStore(db).get("ns1", "cfg")
    assert cm.data == {"k": "v2"}
    assert cm.metadata.owner_references[0].uid == "u1"

    rc, out = _run(capsys, "configmap", "delete", *common)
    assert rc == 0
    assert out == {"deleted": "ns1/cfg"}
    assert SqliteResourceStore(db).list_configmaps("ns1") == []


def test_configmap_bad_data(tmp_path, capsys):
    rc, out = _run(
        capsys,
        "configmap", "apply",
        "--namespace", "ns1", "--job", "job1", "--job-uid", "u1", "--name", "cfg",
        "--db", str(tmp_path / "cli.db"),
        "--data", "oops",
    )
    assert rc == 1
    assert "key=value" in out["error"]


def test_healthz_bind_failure_exits_nonzero():
    assert cli.main(["healthz", "--bind", "not-an-address"]) == 1


def test_probe_unreachable(capsys):
    rc, out = _run(capsys, "probe", "--url", "http://127.0.0.1:1/healthz", "--timeout", "0.5")
    assert rc == 1
    assert out["healthy"] is False
