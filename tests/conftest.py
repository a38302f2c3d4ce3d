"""Shared fixtures for pr-review tests."""

from __future__ import annotations

import pytest

from pr_review.core.settings import Settings
from tests.fakes import make_model

API_KEY_VARS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "PR_REVIEW_ANTHROPIC_API_KEY",
    "PR_REVIEW_OPENAI_API_KEY",
    "PR_REVIEW_MODEL_DEFAULT",
    "PR_REVIEW_PROVIDER_DEFAULT",
    "PR_REVIEW_DEBUG",
    "NO_COLOR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Tests never see the developer's real keys or overrides."""
    for var in API_KEY_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def model():
    return make_model()


@pytest.fixture
def cache_dir(tmp_path):
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def sessions_dir(cache_dir):
    return cache_dir / "sessions"


@pytest.fixture
def session_file(cache_dir):
    return cache_dir / "last-session.jsonl"


@pytest.fixture
def repo_dir(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    (path / "app.py").write_text("def add(a, b):\n    return a + b\n")
    return path


@pytest.fixture
def test_settings(cache_dir):
    return Settings(cache_dir=str(cache_dir))
