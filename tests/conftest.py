import os
import sys
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# the module-level app is built on import, keep it out of the project tree
SESSION_PUBLIC_DIR = tempfile.mkdtemp(prefix="vis-ssr-")
os.environ.setdefault("PUBLIC_DIR", SESSION_PUBLIC_DIR)

from vis_ssr.config import Settings  # noqa: E402
from vis_ssr.charts.app import create_app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def remove_session_public_dir():
    yield
    shutil.rmtree(SESSION_PUBLIC_DIR, ignore_errors=True)


@pytest.fixture
def settings(tmp_path):
    return Settings(public_dir=tmp_path / "public")


@pytest.fixture
def images_dir(settings):
    return settings.images_dir


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def column_chart():
    return {
        "type": "column",
        "title": "Sales by region",
        "data": [
            {"category": "North", "value": 120},
            {"category": "South", "value": 80},
            {"category": "East", "value": 95},
        ],
    }
