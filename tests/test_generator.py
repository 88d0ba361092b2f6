"""
Tests for the password generator.
"""

import string

import pytest

from replivault.vault.generator import SYMBOLS, PasswordOptions, generate_password


class TestPasswordOptions:
    def test_default_charset(self):
        charset = PasswordOptions().charset()
        assert set(string.ascii_letters + string.digits + SYMBOLS) == set(charset)

    def test_exclude_chars(self):
        charset = PasswordOptions(exclude_chars="0OlI1").charset()
        assert not set("0OlI1") & set(charset)


class TestGeneratePassword:
    def test_length(self):
        assert len(generate_password(PasswordOptions(length=32))) == 32

    def test_digits_only(self):
        options = PasswordOptions(length=50, uppercase=False, lowercase=False, symbols=False)
        assert generate_password(options).isdigit()

    def test_respects_exclusions(self):
        options = PasswordOptions(length=200, uppercase=False, symbols=False, digits=False, exclude_chars="aeiou")
        assert not set("aeiou") & set(generate_password(options))

    def test_not_repeating(self):
        options = PasswordOptions(length=24)
        assert generate_password(options) != generate_password(options)

    def test_zero_length(self):
        with pytest.raises(ValueError, match="length"):
            generate_password(PasswordOptions(length=0))

    def test_empty_charset(self):
        options = PasswordOptions(uppercase=False, lowercase=False, digits=False, symbols=False)
        with pytest.raises(ValueError, match="no characters"):
            generate_password(options)

    def test_everything_excluded(self):
        options = PasswordOptions(uppercase=False, lowercase=False, symbols=False, exclude_chars=string.digits)
        with pytest.raises(ValueError):
            generate_password(options)
