"""Unit tests for directory/users.py -- registration and the UserProfile handle.

Covers:
- register(): required-field validation, duplicate username/email, unknown fields
- initial group chain: explicit > client default > settings default > ConfigError
- invalid optional fields are skipped with a note, not fatal
- UserProfile: batched set()/save(), read-only fields, password changes
- disable()/enable() apply immediately
- ProfileExtension fields round-trip through the extension, not the users table
"""

from dataclasses import replace

import pytest

from auth.credentials import CredentialVerifier
from core.config import Settings
from core.errors import AlreadyRegistered, BadRequest, ConfigError, NotFound
from directory.users import UserDirectory


class DictExtension:
    """In-memory ProfileExtension for one supplemental field."""

    fields = frozenset({"favorite_color"})

    def __init__(self):
        self.store: dict[int, dict] = {}

    def load(self, user_id):
        return dict(self.store.get(user_id, {}))

    def save(self, user_id, values):
        self.store.setdefault(user_id, {}).update(values)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_register_returns_profile(self, stack, alice):
        assert alice.id is not None
        assert alice.username == "alice"
        assert alice.get("email") == "a@x.com"
        assert alice.get("first_name") == "Alice"
        assert alice.get("registered_at")
        assert alice.disabled is False

    def test_password_is_hashed(self, stack, alice):
        stored = stack.users.get_by_username("alice").password_hash
        assert stored != "secretpw"
        assert stored.startswith("$2")

    def test_user_joins_client_default_group(self, stack, alice):
        assert stack.groups.group_ids_for(alice.id) == [stack.default_group_id]

    def test_explicit_group_wins(self, stack):
        admins = stack.groups.create_group(stack.client.id, "admins")
        bob = stack.users.register(stack.client, "bob", "secretpw", "b@x.com", group_id=admins.id)
        assert stack.groups.group_ids_for(bob.id) == [admins.id]

    def test_settings_default_group_used_when_client_has_none(self, db_engine, stack):
        other = stack.groups.create_group(stack.client.id, "fallback")
        users = UserDirectory(db_engine, stack.groups, settings=Settings(debug=True, default_group_id=other.id))
        bob = users.register(replace(stack.client, default_group_id=None), "bob", "secretpw", "b@x.com")
        assert stack.groups.group_ids_for(bob.id) == [other.id]

    def test_no_group_anywhere_is_config_error(self, stack):
        with pytest.raises(ConfigError):
            stack.users.register(replace(stack.client, default_group_id=None), "bob", "secretpw", "b@x.com")
        assert stack.users.get_by_username("bob") is None

    def test_missing_group_is_config_error(self, stack):
        with pytest.raises(ConfigError):
            stack.users.register(stack.client, "bob", "secretpw", "b@x.com", group_id=999)

    def test_invalid_required_fields(self, stack):
        with pytest.raises(BadRequest) as excinfo:
            stack.users.register(stack.client, "b!", "pw", "nope")
        # username (short + illegal chars), password (short), email (short + shape)
        assert len(excinfo.value.details) >= 4

    def test_duplicate_username(self, stack, alice):
        with pytest.raises(AlreadyRegistered, match="already used"):
            stack.users.register(stack.client, "alice", "secretpw", "other@x.com")

    def test_duplicate_email(self, stack, alice):
        with pytest.raises(AlreadyRegistered, match="already registered"):
            stack.users.register(stack.client, "alice2", "secretpw", "a@x.com")

    def test_unknown_profile_field(self, stack):
        with pytest.raises(BadRequest, match="shoe_size"):
            stack.users.register(stack.client, "bob", "secretpw", "b@x.com", shoe_size="9")

    def test_invalid_optional_field_skipped(self, stack):
        notes: list[str] = []
        bob = stack.users.register(
            stack.client, "bob", "secretpw", "b@x.com", notes=notes, city="Boston", zip_code="ABCDE"
        )
        assert bob.get("city") == "Boston"
        assert bob.get("zip_code") is None
        assert any("zip_code" in n for n in notes)
        assert notes[-1] == "User bob registered."

    def test_non_text_optional_field_skipped(self, stack):
        notes: list[str] = []
        bob = stack.users.register(stack.client, "bob", "secretpw", "b@x.com", notes=notes, zip_code=12345)
        assert bob.get("zip_code") is None
        assert any("zip_code" in n and "must be text" in n for n in notes)

    def test_non_text_required_field(self, stack):
        with pytest.raises(BadRequest):
            stack.users.register(stack.client, 12345, "secretpw", "b@x.com")


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_by_username(self, stack, alice):
        assert stack.users.load(username="alice").id == alice.id

    def test_load_by_id(self, stack, alice):
        assert stack.users.load(user_id=alice.id).username == "alice"

    def test_load_unknown(self, stack):
        with pytest.raises(NotFound):
            stack.users.load(username="nobody")

    def test_load_needs_selector(self, stack):
        with pytest.raises(BadRequest):
            stack.users.load()


# ---------------------------------------------------------------------------
# Profile edits
# ---------------------------------------------------------------------------


class TestProfile:
    def test_set_is_staged_until_save(self, stack, alice):
        alice.set("city", "Boston")
        assert alice.get("city") == "Boston"
        assert alice.changed == {"city"}
        assert stack.users.get_by_id(alice.id).city is None

        assert alice.save() is True
        assert stack.users.get_by_id(alice.id).city == "Boston"
        assert alice.changed == frozenset()

    def test_save_without_changes(self, alice):
        assert alice.save() is False

    def test_read_only_field(self, alice):
        with pytest.raises(PermissionError):
            alice.set("username", "mallory")

    def test_unknown_field(self, alice):
        with pytest.raises(KeyError):
            alice.get("shoe_size")

    def test_invalid_value_not_staged(self, alice):
        with pytest.raises(BadRequest):
            alice.set("zip_code", "ABCDE")
        assert "zip_code" not in alice.changed

    def test_email_change_to_taken_address(self, stack, alice):
        stack.users.register(stack.client, "bob", "secretpw", "b@x.com")
        alice.set("email", "b@x.com")
        with pytest.raises(AlreadyRegistered):
            alice.save()

    def test_set_password(self, stack, alice):
        alice.set_password("newpass1")
        assert alice.changed == {"password"}
        alice.save()

        verifier = CredentialVerifier(stack.users)
        assert verifier.verify("alice", "newpass1").user_id == alice.id

    def test_reset_password(self, stack, alice):
        plain = alice.reset_password()
        alice.save()
        assert CredentialVerifier(stack.users).verify("alice", plain).user_id == alice.id

    def test_user_is_a_copy(self, alice):
        alice.user.city = "Nowhere"
        assert alice.get("city") is None

    def test_disable_and_enable(self, stack, alice):
        alice.disable()
        assert alice.disabled is True
        assert stack.users.get_by_id(alice.id).disabled is True

        alice.enable()
        assert stack.users.get_by_id(alice.id).disabled is False


class TestExtension:
    def test_extension_fields_round_trip(self, db_engine, stack):
        extension = DictExtension()
        users = UserDirectory(db_engine, stack.groups, extension=extension)
        bob = users.register(stack.client, "bob", "secretpw", "b@x.com", favorite_color="teal")
        assert extension.store[bob.id] == {"favorite_color": "teal"}
        assert users.load(user_id=bob.id).get("favorite_color") == "teal"

    def test_extension_field_is_writable(self, db_engine, stack):
        extension = DictExtension()
        users = UserDirectory(db_engine, stack.groups, extension=extension)
        bob = users.register(stack.client, "bob", "secretpw", "b@x.com")

        bob.set("favorite_color", "red")
        bob.set("city", "Boston")
        bob.save()

        assert extension.store[bob.id] == {"favorite_color": "red"}
        assert users.get_by_id(bob.id).city == "Boston"
