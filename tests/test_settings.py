from __future__ import annotations

import pytest

from querypred import QueryPredSettings, get_settings, override_settings, where
from querypred.expr import Param
from querypred.predicate import where_predicate
from querypred.settings import QueryPredSettings as Settings


def test_defaults():
    settings = QueryPredSettings()
    assert settings.null_safe is True
    assert settings.default_param == "e"
    assert settings.memoize is True


def test_environment(monkeypatch):
    monkeypatch.setenv("QUERYPRED_NULL_SAFE", "false")
    monkeypatch.setenv("QUERYPRED_DEFAULT_PARAM", "row")

    settings = Settings()

    assert settings.null_safe is False
    assert settings.default_param == "row"


def test_invalid_param_name(monkeypatch):
    monkeypatch.setenv("QUERYPRED_DEFAULT_PARAM", "not valid")
    with pytest.raises(ValueError):  # noqa: PT011
        Settings()


def test_override_is_scoped():
    before = get_settings()
    with override_settings(default_param="m") as settings:
        assert get_settings() is settings
        assert where(lambda m: m.a == 1).param == Param("m")
    assert get_settings() is before
    assert where(lambda m: m.a == 1).param == Param("e")


def test_memoize_off_recompiles():
    p = where_predicate(lambda m: m.a == 1)
    with override_settings(memoize=False):
        assert p({"a": 1})
        assert p._runners == {}  # noqa: SLF001
    assert p({"a": 1})
    assert p._runners  # noqa: SLF001
