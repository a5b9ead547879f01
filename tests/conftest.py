"""Shared fixtures: a fresh SQLite database and service per test."""

import random

import pytest

from track_rating.config import Settings
from track_rating.db import Database
from track_rating.service import TrackRatingService


class RecordingSleep:
    """Stand-in for time.sleep that remembers requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'ratings.db'}",
        INPUT_DIR=str(tmp_path / "input"),
        OUTPUT_DIR=str(tmp_path / "output"),
    )


@pytest.fixture
def db(settings):
    database = Database()
    database.init(settings)
    yield database
    database.dispose()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def service(settings, db, rng, sleeper):
    return TrackRatingService(settings, db, rng=rng, sleep=sleeper)


@pytest.fixture
def catalog(service):
    """A small catalog: two rock tracks sharing an artist, a jazz and an ambient track."""
    service.add_track("rock-1", title="Paranoid Android", genres=["rock", "alternative"], artists=["Radiohead"])
    service.add_track("rock-2", title="Karma Police", genres=["rock"], artists=["Radiohead"])
    service.add_track("jazz-1", title="So What", genres=["jazz"], artists=["Miles Davis"])
    service.add_track("ambient-1", title="An Ending", genres=["ambient"], artists=["Brian Eno"])
    return ["rock-1", "rock-2", "jazz-1", "ambient-1"]
