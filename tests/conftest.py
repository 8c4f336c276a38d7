import os as _os
import sys

import pytest

# Ensure project root is importable (so `import wlh` and `import cli` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from wlh.objects import Job, ObjectMeta  # noqa: E402
from wlh.store import SqliteResourceStore  # noqa: E402


@pytest.fixture
def job():
    return Job(metadata=ObjectMeta(namespace="ns1", name="job1", uid="u1"))


@pytest.fixture
def store(tmp_path):
    return SqliteResourceStore(str(tmp_path / "store.db"))
