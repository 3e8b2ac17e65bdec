"""Unit tests for core/validation.py -- per-field sanity checks."""

import pytest

from core.errors import BadRequest
from core.validation import field_problems, validate_field


class TestValidValues:
    @pytest.mark.parametrize(
        "name, value",
        [
            ("username", "alice"),
            ("username", "o'brien.j-x@example.org"),
            ("password", "secretpw"),
            ("email", "a@x.com"),
            ("first_name", "Mary-Jo"),
            ("last_name", "O'Neil Smith"),
            ("phone", "(617) 555-0100"),
            ("address1", "12 Main St. #4"),
            ("city", "St. Paul"),
            ("state", "MA"),
            ("country", "United States"),
            ("zip_code", "02134-1234"),
        ],
    )
    def test_accepts(self, name, value):
        assert validate_field(name, value) == value


class TestInvalidValues:
    def test_username_too_short(self):
        assert any("too short" in p for p in field_problems("username", "al"))

    def test_username_too_long(self):
        assert any("too long" in p for p in field_problems("username", "a" * 51))

    def test_username_illegal_characters(self):
        problems = field_problems("username", "al ice!")
        assert any("illegal characters" in p for p in problems)

    @pytest.mark.parametrize("password", ["pass word", "semi;colon", "pipe|pw", "angle<pw"])
    def test_password_forbidden_characters(self, password):
        problems = field_problems("password", password)
        assert problems
        # The offending characters are never echoed back for passwords.
        assert all(password not in p for p in problems)

    def test_password_length_bounds(self):
        assert field_problems("password", "short")
        assert field_problems("password", "x" * 17)

    def test_strict_password_composition(self):
        assert field_problems("password", "secretpw", strict=True)
        assert field_problems("password", "Secr3t!pw", strict=True) == []

    def test_email_shape(self):
        assert any("valid format" in p for p in field_problems("email", "alice.example.org"))

    def test_zip_rejects_letters(self):
        assert field_problems("zip_code", "ABCDE")

    def test_missing_value(self):
        assert field_problems("city", None) == ["No City provided."]

    def test_validate_field_raises_with_details(self):
        with pytest.raises(BadRequest) as excinfo:
            validate_field("username", "x!")
        assert len(excinfo.value.details) == 2

    @pytest.mark.parametrize("value", [12345, 3.5, ["02134"]])
    def test_non_text_value(self, value):
        problems = field_problems("zip_code", value)
        assert len(problems) == 1
        assert "must be text" in problems[0]

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            field_problems("shoe_size", "9")
