"""
Shared test fixtures for the mailgate test suite.
"""

import json
import os
import tempfile

import pytest

from mailgate.shared.config import ConfigResolver
from mailgate.shared.credentials import CredentialStore, reset_credential_store
from mailgate.shared.models import AttachmentInfo, EmailFull


AGENTS_DOC = {
    "agents": {
        "coo": {
            "apiKey": "key-coo-123",
            "SMTP_FROM": "coo@biz.com",
            "SMTP_USER": "coo@biz.com",
            "IMAP_USER": "coo@biz.com",
        },
        "dev": {
            "apiKey": "key-dev-456",
            "IMAP_USER": "dev@biz.com",
        },
    },
    "shared": {
        "SMTP_HOST": "smtp.biz.com",
        "IMAP_HOST": "imap.biz.com",
        "IMAP_PASS": "shared-imap-pass",
    },
}

BASE_ENV = {
    "SMTP_USER": "env@biz.com",
    "SMTP_PASS": "env-smtp-pass",
    "IMAP_USER": "env@biz.com",
    "AUDIT_SINK_URL": "https://logs.example.com/api",
    "AUDIT_SINK_TOKEN": "sink-token",
}


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def agents_file(tmp_dir):
    path = os.path.join(tmp_dir, "agents.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(AGENTS_DOC, f)
    return path


@pytest.fixture
def store():
    return CredentialStore.from_dict(AGENTS_DOC)


@pytest.fixture
def env():
    return dict(BASE_ENV)


@pytest.fixture
def resolver(store, env):
    return ConfigResolver(store=store, environ=env)


@pytest.fixture
def single_tenant_resolver(env):
    """No agents file: everything comes from the environment."""
    env.update({"SMTP_HOST": "smtp.env.com", "IMAP_HOST": "imap.env.com", "IMAP_PASS": "env-imap-pass"})
    return ConfigResolver(store=CredentialStore.empty(), environ=env)


@pytest.fixture(autouse=True)
def _fresh_global_store():
    reset_credential_store()
    yield
    reset_credential_store()


@pytest.fixture
def sample_message():
    return EmailFull(
        uid=42,
        sender="Alice <alice@example.com>",
        recipient="coo@biz.com",
        cc=None,
        subject="Quarterly numbers",
        date="2026-01-05T10:00:00+00:00",
        flags=["\\Seen"],
        message_id="<abc123@example.com>",
        text="Hello, the numbers are attached.",
        html=None,
        attachments=[
            AttachmentInfo(part="2", filename="q4.pdf", content_type="application/pdf", size=2048),
        ],
    )
