import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hubspace import create_app
from hubspace.core.clock import utcnow
from hubspace.domains.hubs.models import HUB_TYPE_PUBLIC, Hub
from hubspace.domains.memberships.models import Membership
from hubspace.extensions import db


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


@pytest.fixture()
def app():
    """Per-test app on a fresh in-memory database."""
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    try:
        yield app
    finally:
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_hub(app):
    def _make(hub_id: str = "h1", hub_type: str = HUB_TYPE_PUBLIC, is_active: bool = True, member_count: int = 0) -> Hub:
        hub = Hub(
            hub_id=hub_id,
            name=f"Hub {hub_id}",
            hub_type=hub_type,
            is_active=is_active,
            member_count=member_count,
        )
        db.session.add(hub)
        db.session.commit()
        return hub

    return _make


@pytest.fixture()
def make_membership(app):
    def _make(hub_id: str, user_id: str, last_seen: datetime | None = None) -> Membership:
        seen = last_seen or utcnow()
        membership = Membership(hub_id=hub_id, user_id=user_id, joined_at=seen, last_seen=seen)
        db.session.add(membership)
        db.session.commit()
        return membership

    return _make
