"""Shared test fixtures for taskboard tests."""

from types import SimpleNamespace

import pytest

from taskboard.assignment import AssignmentResolver
from taskboard.coordinator import BoardMutationCoordinator
from taskboard.errors import SuggestionUnavailable
from taskboard.events import ProjectEventChannel
from taskboard.schema import User
from taskboard.store import BoardStore


class FakeSuggester:
    """Suggestion collaborator returning a canned reply or raising."""

    def __init__(self, reply: str = "", error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls = []

    def suggest(self, title, description, candidates):
        self.calls.append((title, description, list(candidates)))
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def store(tmp_path):
    return BoardStore(str(tmp_path / "board.db"))


@pytest.fixture
def suggester():
    return FakeSuggester(error=SuggestionUnavailable("offline"))


@pytest.fixture
def board(store, suggester):
    """
    A project "WEB" owned by Alice with members Bob and Cara, and the default
    To Do / In Progress / Done columns.
    """
    alice = store.save_user(User(id="alice", first_name="Alice", last_name="Owner", role="ADMIN"))
    bob = store.save_user(User(id="bob", first_name="Bob", last_name="Builder", role="DEVELOPER"))
    cara = store.save_user(User(id="cara", first_name="Cara", last_name="Jones", role="DESIGNER"))
    store.save_user(User(id="dan", first_name="Dan", last_name="Outsider"))

    events = ProjectEventChannel()
    published = []
    events.subscribe("*", lambda topic, name, payload: published.append((topic, name, payload)))

    resolver = AssignmentResolver(suggester, store.count_in_progress)
    coordinator = BoardMutationCoordinator(store, resolver, events)

    project = coordinator.create_project("alice", name="Website", key="web")
    coordinator.add_member("alice", project.id, "bob")
    coordinator.add_member("alice", project.id, "cara")
    columns = {c.name: c for c in store.list_columns(project.id)}

    return SimpleNamespace(
        store=store,
        coordinator=coordinator,
        suggester=suggester,
        events=events,
        published=published,
        project=project,
        columns=columns,
        users=SimpleNamespace(alice=alice, bob=bob, cara=cara),
    )
