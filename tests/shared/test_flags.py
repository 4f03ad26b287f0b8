"""Tests for ``--key=value`` flag parsing."""

import pytest

from reliability.shared.flags import build_flag_parser, parse_flags, to_number


def _parse(argv):
    return parse_flags(build_flag_parser("test", ("quick", "profile", "base-url")), argv)


class TestParseFlags:
    def test_key_value(self):
        assert _parse(["--profile=burst", "--base-url=https://x.example.com/a=b"]) == {
            "profile": "burst",
            "base-url": "https://x.example.com/a=b",
        }

    def test_bare_flag_means_true(self):
        assert _parse(["--quick"]) == {"quick": "true"}

    def test_bare_flag_does_not_take_next_token(self):
        assert _parse(["--quick", "foo", "--profile=soak"]) == {"quick": "true", "profile": "soak"}

    def test_unknown_flags_are_ignored(self):
        assert _parse(["--bogus", "--other=1", "stray"]) == {}

    def test_empty_value(self):
        assert _parse(["--profile="]) == {"profile": ""}


class TestToNumber:
    def test_parses_numbers(self):
        assert to_number("2.5", 1.0) == 2.5
        assert to_number("7", None) == 7

    @pytest.mark.parametrize("value", ["abc", "", "nan", "inf", None])
    def test_falls_back(self, value):
        assert to_number(value, 3.0) == 3.0
