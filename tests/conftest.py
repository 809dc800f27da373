"""Pytest fixtures: test client, in-memory job store, fake GitHub and LLM collaborators."""
import os
import re
import threading

import pytest
from fastapi.testclient import TestClient

# In-memory SQLite key-value store (must be set before the app is imported)
os.environ.setdefault("STORE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-dummy")
os.environ.setdefault("GITHUB_TOKEN", "ghp-test-dummy")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
# High submit limit so every test can submit freely
os.environ.setdefault("RATE_LIMIT_SUBMIT_PER_MINUTE", "1000")

from repolens.api.deps import get_job_store, get_llm_client, get_runner
from repolens.core.database import init_db, make_engine
from repolens.main import app
from repolens.services.github import FileContent
from repolens.services.job_store import JobStore
from repolens.services.kv import SQLBackend
from repolens.services.runner import JobRunner

WIDGET_FILES = [
    FileContent("package.json", '{"name": "widgets", "dependencies": {"react": "^18.0.0"}}'),
    FileContent("src/components/Widget.tsx", "import React from 'react';\nexport const Widget = () => <div />;\n"),
    FileContent("src/pages/index.tsx", "import { Widget } from '../components/Widget';\nexport default Widget;\n"),
]

_CATEGORY_LINE = re.compile(r"Must be one of: (.*)")


class FakeFetcher:
    """Returns canned files, or raises the configured error."""

    def __init__(self, files=None, error=None):
        self.files = list(WIDGET_FILES if files is None else files)
        self.error = error
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return list(self.files)


class FakeLLM:
    """
    Answers by prompt type: one issue per category group (in the group's first
    category), a fixed summary, and a fixed question list.
    """

    keys = ["sk-test-dummy"]

    def __init__(self):
        self.calls = []
        self.error = None
        self.summary_error = None
        self.issues_per_group = 1
        self.group_severity = "High"
        self.summary = {"overallFeedback": "Clean structure; a few risky spots."}
        self.questions = {"questions": [{"question": f"Question {n}?"} for n in range(1, 8)]}
        self._lock = threading.Lock()

    def complete_json(self, messages):
        system = messages[0]["content"]
        with self._lock:
            self.calls.append(system)
        if self.error is not None:
            raise self.error
        if system.startswith("You are a Principal Software Engineer summarising"):
            if self.summary_error is not None:
                raise self.summary_error
            return self.summary
        if '"questions"' in system:
            return self.questions
        category = re.findall(r'"([^"]+)"', _CATEGORY_LINE.search(system).group(1))[0]
        return {
            "issues": [
                {
                    "category": category,
                    "severity": self.group_severity,
                    "fileLocation": "src/components/Widget.tsx:1",
                    "codeSnippet": "export const Widget = () => <div />;",
                    "explanation": f"{category} finding {n}",
                    "recommendation": "Fix it.",
                    "codeExample": "",
                    "impact": "Maintainability",
                }
                for n in range(self.issues_per_group)
            ]
        }

    def ping(self):
        return True, 12.5, None


@pytest.fixture
def store():
    """Fresh job store on its own in-memory database."""
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    return JobStore(SQLBackend(engine))


@pytest.fixture
def widget_files():
    return list(WIDGET_FILES)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def runner(store, fake_fetcher, fake_llm):
    return JobRunner(store, fake_fetcher, fake_llm, timeout=5.0)


@pytest.fixture(scope="function")
def client(store, runner, fake_llm):
    """TestClient with the store and collaborators replaced; background jobs run before the call returns."""
    app.dependency_overrides[get_job_store] = lambda: store
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
