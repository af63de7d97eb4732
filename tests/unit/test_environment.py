"""Unit tests for the environment registry."""

from sytest.environment import Environment, MissingRequirement


class TestProvide:
    """Tests for Environment.provide."""

    def test_provide_binds_name(self):
        env = Environment()
        assert env.provide("room", {"room_id": "!a:hs"}) is True
        assert env.lookup("room") == {"room_id": "!a:hs"}
        assert "room" in env

    def test_provide_records_producer(self):
        env = Environment()
        env.provide("user", "@alice:hs", producer="register")
        entry = env.entry("user")
        assert entry is not None
        assert entry.producer == "register"

    def test_second_provide_keeps_first_value(self):
        """Rebinding a name is ignored whatever the new value is."""
        env = Environment()
        env.provide("room", "first")
        assert env.provide("room", "second") is False
        assert env.provide("room", None) is False
        assert env.lookup("room") == "first"
        assert len(env) == 1

    def test_falsy_values_are_bound(self):
        env = Environment()
        env.provide("empty", [])
        assert "empty" in env
        assert env.require_all(["empty"]) == [[]]


class TestLookup:
    """Tests for Environment.lookup."""

    def test_lookup_missing_returns_none(self):
        env = Environment()
        assert env.lookup("nothing") is None

    def test_lookup_has_no_side_effects(self):
        env = Environment()
        env.lookup("nothing")
        assert "nothing" not in env
        assert list(env) == []

    def test_lookup_default_for_unbound_name(self):
        unbound = object()
        env = Environment()
        assert env.lookup("nothing", default=unbound) is unbound

    def test_name_bound_to_none_is_distinguishable(self):
        unbound = object()
        env = Environment()
        env.provide("room", None)

        assert env.lookup("room", default=unbound) is None
        assert "room" in env
        assert env.entry("room").value is None


class TestRequireAll:
    """Tests for Environment.require_all."""

    def test_returns_values_in_requested_order(self):
        env = Environment()
        env.provide("a", 1)
        env.provide("b", 2)
        env.provide("c", 3)
        assert env.require_all(["c", "a", "b"]) == [3, 1, 2]

    def test_empty_requirements(self):
        assert Environment().require_all([]) == []

    def test_names_first_missing_requirement(self):
        env = Environment()
        env.provide("a", 1)
        result = env.require_all(["a", "b", "c"])
        assert result == MissingRequirement("b")
