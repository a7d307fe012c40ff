"""
Shared fixtures: entity types, movie rules and sampled entities.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TypedDict

import pytest
from polyfactory import Use
from polyfactory.factories import DataclassFactory
from pydantic import Field

from querypred import Rule, Var, utcnow

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

# ============================================================================
# Entity types (the engine must work with any class shape)
# ============================================================================


@dataclass
class Director:
    """Dataclass entity nested in Movie."""

    name: str | None = None


@dataclass
class Movie:
    """Dataclass entity type."""

    title: str = "Untitled"
    rating: float | None = None
    review_count: int | None = None
    release_date: datetime | None = None
    director: Director | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


class MovieDict(TypedDict, total=False):
    """TypedDict entity type."""

    title: str
    rating: float | None
    review_count: int | None
    release_date: datetime | None


class PlainMovie:
    """Plain class entity type."""

    def __init__(self, title: str, rating: float | None, review_count: int | None):
        self.title = title
        self.rating = rating
        self.review_count = review_count


# ============================================================================
# Rules
# ============================================================================


class GreatMovie(Rule[Movie]):
    """Well rated by enough reviewers."""

    min_rating: float = Field(4.0, ge=0, le=5)
    min_reviews: int = Field(100, ge=0)

    def expression(self, m: Var):
        return (m.rating > self.min_rating) & (m.review_count > self.min_reviews)


class RecentMovie(Rule[Movie]):
    """Released within the recency window."""

    window: timedelta = Field(timedelta(days=730), gt=timedelta(0))
    now: datetime = Field(default_factory=utcnow)

    def expression(self, m: Var):
        return m.release_date > self.now - self.window


class DirectedBy(Rule[Movie]):
    director: str = Field(min_length=1)

    def expression(self, m: Var):
        return m.director.name == self.director


class RatingBetween(Rule[Movie]):
    """Rating inside a closed range."""

    low: float = Field(ge=0, le=5)
    high: float = Field(ge=0, le=5)

    def validate_params(self) -> None:
        if self.low > self.high:
            msg = f"low ({self.low}) must not exceed high ({self.high})"
            raise ValueError(msg)

    def expression(self, m: Var):
        return (m.rating >= self.low) & (m.rating <= self.high)


@pytest.fixture
def great() -> GreatMovie:
    return GreatMovie()


@pytest.fixture
def recent() -> RecentMovie:
    return RecentMovie(now=NOW)


# ============================================================================
# Sampled entities
# ============================================================================


def _maybe(value):
    return None if MovieFactory.__random__.random() < 0.15 else value  # noqa: PLR2004


class DirectorFactory(DataclassFactory[Director]):
    __model__ = Director

    name = Use(lambda: _maybe(DirectorFactory.__random__.choice(["Nolan", "Varda", "Kurosawa"])))


class MovieFactory(DataclassFactory[Movie]):
    __model__ = Movie

    title = Use(lambda: MovieFactory.__random__.choice(["Alpha", "Beta", "Gamma", "Delta"]))
    rating = Use(lambda: _maybe(round(MovieFactory.__random__.uniform(0, 5), 1)))
    review_count = Use(lambda: _maybe(MovieFactory.__random__.randint(0, 300)))
    release_date = Use(lambda: _maybe(NOW - timedelta(days=MovieFactory.__random__.randint(0, 3650))))
    director = Use(lambda: _maybe(DirectorFactory.build()))
    tags = Use(lambda: tuple(MovieFactory.__random__.sample(["drama", "noir", "comedy"], 2)))


@pytest.fixture(scope="session")
def movies() -> list[Movie]:
    MovieFactory.seed_random(1234)
    DirectorFactory.seed_random(1234)
    sampled = MovieFactory.batch(size=200)
    # Boundary values.
    sampled += [
        Movie(title="Edge", rating=4.0, review_count=100, release_date=NOW - timedelta(days=730)),
        Movie(title="Edge", rating=4.1, review_count=101, release_date=NOW - timedelta(days=729)),
        Movie(title="Empty"),
    ]
    return sampled
