import os
import sys

import pytest


# Allow running pytest from either the repo root or from within `backend/`.
# Tests import `backend.*`, which requires the repo root on sys.path.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)


@pytest.fixture
def store():
    from backend.app.store import MemoryStore

    return MemoryStore()


@pytest.fixture
def quota(store):
    from backend.app.sync.quota import PlanQuota

    return PlanQuota(store, {})


@pytest.fixture
def ctx(store, quota):
    from backend.app.sync.common import SyncContext

    return SyncContext(store=store, company_id="11111111-1111-1111-1111-111111111111", quota=quota)


@pytest.fixture
def other_ctx(store, quota):
    from backend.app.sync.common import SyncContext

    return SyncContext(store=store, company_id="22222222-2222-2222-2222-222222222222", quota=quota)
