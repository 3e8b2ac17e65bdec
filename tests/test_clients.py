"""Unit tests for directory/clients.py -- tenant lookup and policy attributes.

Covers:
- resolve() by id, name, and domain, and the id > name > domain precedence
- resolve() failure modes: no selector (BadRequest), no match (NotFound)
- timeout_for() treats a missing or zero timeout as ConfigError
- admin_contact() returns the admin user's email
- register() rejects a duplicate client name
- update() only touches admin-managed fields
"""

from dataclasses import replace

import pytest

from core.errors import AlreadyRegistered, BadRequest, ConfigError, NotFound
from core.models import Client


class TestResolve:
    def test_by_id(self, stack):
        client = stack.clients.resolve(client_id=stack.client.id)
        assert client.name == "Project Foo"
        assert client.timeout_seconds == 2
        assert client.default_group_id == stack.default_group_id

    def test_by_name(self, stack):
        assert stack.clients.resolve(name="Project Foo").id == stack.client.id

    def test_by_domain(self, stack):
        assert stack.clients.resolve(domain="foo.example.org").id == stack.client.id

    def test_id_wins_over_name_and_domain(self, stack):
        other = Client(name="Project Bar", domain="bar.example.org", timeout_seconds=60)
        stack.clients.register(other)

        client = stack.clients.resolve(client_id=other.id, name="Project Foo", domain="foo.example.org")
        assert client.name == "Project Bar"

    def test_name_wins_over_domain(self, stack):
        other = Client(name="Project Bar", domain="bar.example.org", timeout_seconds=60)
        stack.clients.register(other)

        assert stack.clients.resolve(name="Project Bar", domain="foo.example.org").id == other.id

    def test_no_selector_is_bad_request(self, stack):
        with pytest.raises(BadRequest):
            stack.clients.resolve()

    def test_unknown_client_is_not_found(self, stack):
        with pytest.raises(NotFound):
            stack.clients.resolve(name="Nope")

    def test_higher_priority_miss_does_not_fall_through(self, stack):
        with pytest.raises(NotFound):
            stack.clients.resolve(client_id=999, name="Project Foo")


class TestPolicy:
    def test_timeout_for_returns_configured_value(self, stack):
        assert stack.clients.timeout_for(stack.client) == 2

    @pytest.mark.parametrize("timeout", [None, 0, -5])
    def test_unusable_timeout_is_config_error(self, stack, timeout):
        with pytest.raises(ConfigError):
            stack.clients.timeout_for(replace(stack.client, timeout_seconds=timeout))

    def test_admin_contact(self, stack, alice):
        stack.clients.update(stack.client.id, admin_user_id=alice.id)
        client = stack.clients.resolve(client_id=stack.client.id)
        assert stack.clients.admin_contact(client) == "a@x.com"

    def test_admin_contact_none_without_admin(self, stack):
        assert stack.clients.admin_contact(stack.client) is None


class TestRegister:
    def test_duplicate_name_rejected(self, stack):
        with pytest.raises(AlreadyRegistered):
            stack.clients.register(Client(name="Project Foo", timeout_seconds=10))

    def test_update_unknown_client(self, stack):
        assert stack.clients.update(999, timeout_seconds=5) is False

    def test_update_admin_fields(self, stack):
        assert stack.clients.update(stack.client.id, timeout_seconds=30, cookie_name="foo_sid") is True
        client = stack.clients.resolve(client_id=stack.client.id)
        assert client.timeout_seconds == 30
        assert client.cookie_name == "foo_sid"

    @pytest.mark.parametrize("fields", [{"id": 99}, {"name": "Renamed"}, {"timeout_seconds": 5, "name": "Renamed"}])
    def test_update_rejects_fixed_fields(self, stack, fields):
        with pytest.raises(BadRequest, match="cannot be updated"):
            stack.clients.update(stack.client.id, **fields)
        client = stack.clients.resolve(client_id=stack.client.id)
        assert client.name == "Project Foo"
        assert client.timeout_seconds == 2

    def test_update_needs_fields(self, stack):
        with pytest.raises(BadRequest):
            stack.clients.update(stack.client.id)
