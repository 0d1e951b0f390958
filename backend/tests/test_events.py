"""Tests for the per data-instance event listener registry."""

import logging

import pytest

from crudlex.core.entity import Entity
from crudlex.definitions import DefinitionLoader
from crudlex.events import Action, Events, Moment


@pytest.fixture
def events():
    return Events()


@pytest.fixture
def entity(definitions_file):
    definitions = DefinitionLoader(definitions_file).load_all()
    return Entity(definitions["book"])


class TestEvents:
    def test_no_listeners_executes(self, events, entity):
        assert events.should_execute(entity, Moment.BEFORE, Action.CREATE)

    def test_listeners_run_in_registration_order(self, events, entity):
        calls = []
        events.push(Moment.BEFORE, Action.CREATE, lambda e: calls.append("first") or True)
        events.push(Moment.BEFORE, Action.CREATE, lambda e: calls.append("second") or True)
        assert events.should_execute(entity, Moment.BEFORE, Action.CREATE)
        assert calls == ["first", "second"]

    def test_first_false_stops_the_chain(self, events, entity):
        calls = []
        events.push(Moment.BEFORE, Action.UPDATE, lambda e: calls.append("veto") and False)
        events.push(Moment.BEFORE, Action.UPDATE, lambda e: calls.append("never") or True)
        assert not events.should_execute(entity, Moment.BEFORE, Action.UPDATE)
        assert calls == ["veto"]

    def test_listeners_keyed_by_moment_and_action(self, events, entity):
        events.push(Moment.BEFORE, Action.DELETE, lambda e: False)
        assert events.should_execute(entity, Moment.AFTER, Action.DELETE)
        assert events.should_execute(entity, Moment.BEFORE, Action.CREATE)
        assert not events.should_execute(entity, Moment.BEFORE, Action.DELETE)

    def test_pop_removes_most_recent(self, events):
        def first(e):
            return True

        def second(e):
            return True

        events.push(Moment.AFTER, Action.CREATE, first)
        events.push(Moment.AFTER, Action.CREATE, second)
        assert events.pop(Moment.AFTER, Action.CREATE) is second
        assert events.get_listeners(Moment.AFTER, Action.CREATE) == [first]
        assert events.pop(Moment.AFTER, Action.CREATE) is first
        assert events.pop(Moment.AFTER, Action.CREATE) is None

    def test_pop_unknown_returns_none(self, events):
        assert events.pop(Moment.BEFORE, Action.DELETE) is None

    def test_exception_counts_as_veto(self, events, entity, caplog):
        def broken(e):
            raise RuntimeError("boom")

        events.push(Moment.BEFORE, Action.CREATE, broken)
        with caplog.at_level(logging.ERROR, logger="crudlex.events.registry"):
            assert not events.should_execute(entity, Moment.BEFORE, Action.CREATE)
        assert "failed for book" in caplog.text

    def test_clear(self, events, entity):
        events.push(Moment.BEFORE, Action.CREATE, lambda e: False)
        events.clear()
        assert events.get_listeners(Moment.BEFORE, Action.CREATE) == []
        assert events.should_execute(entity, Moment.BEFORE, Action.CREATE)
