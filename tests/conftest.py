"""
Shared pytest fixtures for the Clause2Case test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - document: Pre-created Document with extracted text
    - use_provider: Swap the app's LLM gateway for a scripted provider
"""

import json
import threading

import pytest

from clause2case import create_app
from clause2case.ai.gateway import LLMGateway, LLMProvider
from clause2case.models import db as _db
from clause2case.models.document import Document


POLICY_TEXT = (
    "Refund Policy\n\n"
    "Customers may request a refund within 30 days of purchase. Requests after "
    "30 days are rejected automatically.\n\n"
    "Refunds above 500 USD require approval from a finance manager before the "
    "payment is reversed.\n\n"
    "Every refund decision is written to the audit log with the approver, the "
    "amount and a timestamp.\n\n"
    "Refunds are paid back to the original payment method through the payment "
    "gateway integration."
)


# ── Scripted providers ───────────────────────────────────────────────────


def make_case(title="Verify refund window", n_steps=5, **overrides):
    case = {
        "title": title,
        "description": "Checks the refund rule",
        "category": "functional",
        "priority": "high",
        "steps": [f"Step {i}" for i in range(1, n_steps + 1)],
        "expectedResult": "Rule is enforced",
        "tags": ["refund"],
    }
    case.update(overrides)
    return case


def make_response(*cases) -> str:
    return json.dumps({"testCases": list(cases)})


class ScriptedProvider(LLMProvider):
    """Returns the given raw texts in order, repeating the last one."""

    name = "scripted"
    default_model = "scripted-model"

    def __init__(self, *texts):
        self.texts = list(texts)
        self.calls = []

    def chat(self, messages, model, *, timeout=None, cancel_token=None, **kwargs):
        self.calls.append({"messages": messages, "model": model, "timeout": timeout})
        text = self.texts.pop(0) if len(self.texts) > 1 else self.texts[0]
        return {"content": text, "prompt_tokens": 12, "completion_tokens": 34, "model": model}


class SlowProvider(LLMProvider):
    """Blocks until cancelled (or ``delay`` seconds), like a hung HTTP call."""

    name = "slow"
    default_model = "slow-model"

    def __init__(self, delay=10.0):
        self.delay = delay
        self.cancelled = threading.Event()

    def chat(self, messages, model, *, timeout=None, cancel_token=None, **kwargs):
        if cancel_token is not None:
            cancel_token.on_cancel(self.cancelled.set)
        self.cancelled.wait(self.delay)
        return {"content": make_response(make_case()), "prompt_tokens": 1,
                "completion_tokens": 1, "model": model}


class FailingProvider(LLMProvider):
    name = "failing"
    default_model = "failing-model"

    def chat(self, messages, model, *, timeout=None, cancel_token=None, **kwargs):
        raise ConnectionError("upstream unavailable")


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def use_provider(app):
    """Install an LLMGateway around the given provider for this test."""
    installed = []

    def _install(provider, timeout=None):
        gateway = LLMGateway(provider=provider)
        app._ai_gateway = gateway
        if timeout is not None:
            app.config["GENERATION_TIMEOUT_SECONDS"] = timeout
        installed.append(gateway)
        return gateway

    original_timeout = app.config["GENERATION_TIMEOUT_SECONDS"]
    yield _install
    for gateway in installed:
        gateway.shutdown()
    if hasattr(app, "_ai_gateway"):
        del app._ai_gateway
    app.config["GENERATION_TIMEOUT_SECONDS"] = original_timeout


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def document():
    """Create and return a Document with a short refund policy as its text."""
    doc = Document(filename="refund-policy.pdf", doc_type="Handbook", content=POLICY_TEXT)
    _db.session.add(doc)
    _db.session.commit()
    return doc
