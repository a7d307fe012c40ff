"""Library-wide defaults, overridable through ``QUERYPRED_*`` environment variables.

Priority chain (highest to lowest):
  1. ``override_settings`` keyword arguments
  2. Env vars     -- ``QUERYPRED_*`` prefix
  3. Code defaults
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueryPredSettings(BaseSettings):
    """Unified settings for querypred.

    Attributes:
        null_safe: Emit two-valued comparisons when translating to SQL, so that NULL columns
            behave like missing attributes do in memory.
        default_param: Parameter name used for expressions built without an explicit one.
        memoize: Keep compiled evaluators on each predicate instance.
    """

    model_config = SettingsConfigDict(frozen=True, env_prefix="QUERYPRED_")

    null_safe: bool = True
    default_param: str = Field("e", min_length=1, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    memoize: bool = True


_settings: QueryPredSettings | None = None
_settings_lock = RLock()


def get_settings() -> QueryPredSettings:
    """
    Return the process-wide settings, loading them from the environment on first use.
    """
    global _settings  # noqa: PLW0603
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = QueryPredSettings()
    return _settings


@contextmanager
def override_settings(**overrides: Any) -> Iterator[QueryPredSettings]:  # noqa: ANN401
    """
    Temporarily replace the process-wide settings.

    Examples:
        ```python
        with override_settings(null_safe=False):
            translator = SQLAlchemyTranslator(MovieRecord)
        ```
    """
    global _settings  # noqa: PLW0603
    with _settings_lock:
        previous = get_settings()
        _settings = QueryPredSettings.model_validate({**previous.model_dump(), **overrides})
    try:
        yield _settings
    finally:
        with _settings_lock:
            _settings = previous
