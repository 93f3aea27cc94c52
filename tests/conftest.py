"""Test bootstrap.

Puts the flat modules under ``app/`` on the path and builds an isolated
app, database and blob root per test.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from app import create_app  # noqa: E402
from database import db  # noqa: E402
from entitlements import EntitlementCache  # noqa: E402
from errors import TransientIOError  # noqa: E402
from item_store import ItemStore  # noqa: E402
from object_store import FilesystemObjectStore  # noqa: E402
from quota import QuotaLimits, QuotaPolicy  # noqa: E402
from resource_manager import ResourceManager  # noqa: E402
from vault_store import VaultStore  # noqa: E402

OWNER = "owner-1"
OTHER_OWNER = "owner-2"


class FlakyObjectStore(FilesystemObjectStore):
    """Filesystem store that can simulate an unreachable backend."""

    def __init__(self, root):
        super().__init__(root)
        self.failing_keys = set()
        self.fail_list = False
        self.fail_put = False

    def list(self, prefix):
        if self.fail_list:
            raise TransientIOError("listing unavailable")
        return super().list(prefix)

    def put(self, key, data):
        if self.fail_put:
            raise TransientIOError("upload unavailable")
        return super().put(key, data)

    def remove(self, keys):
        keys = list(keys)
        results = super().remove([k for k in keys if k not in self.failing_keys])
        results.update({k: "simulated outage" for k in keys if k in self.failing_keys})
        return results


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def flask_app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-session-key",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'vault.db'}",
            "BLOB_ROOT": str(tmp_path / "app-blobs"),
            "RATELIMIT_ENABLED": False,
            "JWT_SECRET_KEY": "test-jwt-secret-key-long-enough-for-hs256",
            "FREE_MAX_VIDEOS": 3,
        }
    )
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def blobs(tmp_path):
    return FlakyObjectStore(tmp_path / "blobs")


@pytest.fixture
def vault_store(flask_app, blobs):
    return VaultStore(blobs)


@pytest.fixture
def item_store(flask_app, blobs):
    return ItemStore(blobs)


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def entitlements():
    cache = EntitlementCache(max_age_seconds=600)
    cache.update(OWNER, "free", refreshed_at=datetime.now(timezone.utc))
    return cache


@pytest.fixture
def manager(vault_store, item_store, entitlements, clock):
    policy = QuotaPolicy(QuotaLimits(free_max_videos=3, free_max_vaults=3))
    return ResourceManager(vault_store, item_store, policy, entitlements, capture_max_seconds=300, clock=clock)
