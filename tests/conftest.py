"""Pytest shared fixtures."""
import os
import pathlib
import sys

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any scimgw imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest

from scimgw import audit
from scimgw.config import AppConfig
from scimgw.core.provisioning_service import ProvisioningService
from scimgw.flask_app import create_app
from scimgw.store import DocumentStore


@pytest.fixture(autouse=True)
def _isolated_audit_log(monkeypatch, tmp_path):
    """Keep audit events of every test inside its tmp_path."""
    audit_dir = tmp_path / "audit"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_dir / "provisioning-events.jsonl")
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")
    yield audit_dir


@pytest.fixture
def app_config():
    return AppConfig(demo_mode=True)


@pytest.fixture
def store():
    """In-memory store seeded with the demo users and groups."""
    return DocumentStore()


@pytest.fixture
def service(store, app_config):
    return ProvisioningService.from_store(store, app_config)


@pytest.fixture
def app(store, app_config):
    app = create_app(config=app_config, store=store)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
