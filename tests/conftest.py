"""Shared fixtures: in-memory storage and fakes for the notifier, clipboard bridge and Claude client."""

from types import SimpleNamespace

import pytest

from local_storage import MemoryStorage
from preset_store import PresetStore
from rewrite_config import Preferences
from selection_bridge import CommitOutcome


class RecordingNotifier:
    def __init__(self):
        self.huds = []
        self.toasts = []

    def hud(self, message):
        self.huds.append(message)

    def toast(self, style, title, message=""):
        self.toasts.append((style, title, message))

    def toast_titles(self):
        return [title for _, title, _ in self.toasts]


class FakeBridge:
    def __init__(self, selection="hello world", outcome=CommitOutcome.PASTED, capture_error=None):
        self.selection = selection
        self.outcome = outcome
        self.capture_error = capture_error
        self.capture_calls = 0
        self.committed = []

    def capture_selection(self):
        self.capture_calls += 1
        if self.capture_error:
            raise self.capture_error
        return self.selection

    def commit_replacement(self, text):
        self.committed.append(text)
        return self.outcome


class FakeMessages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class FakeClientFactory:
    """Stands in for anthropic.Anthropic; records constructor kwargs."""

    def __init__(self, response=None, error=None):
        self.messages = FakeMessages(response=response, error=error)
        self.init_kwargs = []

    def __call__(self, **kwargs):
        self.init_kwargs.append(kwargs)
        return SimpleNamespace(messages=self.messages)


def text_response(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(storage):
    # Fixed clock so generated IDs are predictable
    return PresetStore(storage, clock=lambda: 1700000000.0)


@pytest.fixture
def preferences():
    return Preferences(api_key="sk-test", model="claude-3-5-sonnet-20241022", avoid_em_dashes=True)


@pytest.fixture
def used_store(store):
    """Store that has already been through the first-use onboarding."""
    store.mark_api_key_used()
    return store
