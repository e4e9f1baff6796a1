"""Tests for bbsync.core.result module."""

import pytest

from bbsync.core.result import Err, Ok, Result, is_err, is_ok


class TestOk:
    """Tests for Ok type."""

    def test_ok_is_ok(self) -> None:
        result = Ok(42)
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_ok_unwrap(self) -> None:
        assert Ok("main").unwrap() == "main"

    def test_ok_unwrap_or_ignores_default(self) -> None:
        assert Ok(42).unwrap_or(0) == 42

    def test_ok_unwrap_err_raises(self) -> None:
        with pytest.raises(ValueError, match="called unwrap_err on Ok"):
            Ok(42).unwrap_err()

    def test_ok_map(self) -> None:
        assert Ok(21).map(lambda x: x * 2) == Ok(42)

    def test_ok_map_err_is_identity(self) -> None:
        assert Ok(42).map_err(lambda e: f"error: {e}") == Ok(42)

    def test_repr(self) -> None:
        assert repr(Ok("x")) == "Ok('x')"


class TestErr:
    """Tests for Err type."""

    def test_err_is_err(self) -> None:
        result = Err("boom")
        assert result.is_err() is True
        assert result.is_ok() is False

    def test_err_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="called unwrap on Err: boom"):
            Err("boom").unwrap()

    def test_err_unwrap_or_returns_default(self) -> None:
        assert Err("boom").unwrap_or("fallback") == "fallback"

    def test_err_map_is_identity(self) -> None:
        assert Err("boom").map(lambda x: x * 2) == Err("boom")

    def test_err_map_err(self) -> None:
        assert Err("boom").map_err(str.upper) == Err("BOOM")


class TestPatternMatching:
    def test_match_ok(self) -> None:
        result: Result[int, str] = Ok(3)
        match result:
            case Ok(value):
                assert value == 3
            case Err(_):
                pytest.fail("expected Ok")

    def test_match_err(self) -> None:
        result: Result[int, str] = Err("nope")
        match result:
            case Ok(_):
                pytest.fail("expected Err")
            case Err(error):
                assert error == "nope"


def test_type_guards() -> None:
    assert is_ok(Ok(1)) is True
    assert is_ok(Err(1)) is False
    assert is_err(Err(1)) is True
    assert is_err(Ok(1)) is False
