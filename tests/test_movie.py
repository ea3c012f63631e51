"""Tests for movie hit scoring."""

from __future__ import annotations

import pytest
from factories import make_hit

from rundfunkarr.matcher.movie import match_movie_hits, normalize_movie_title
from rundfunkarr.models import MovieRecord, TitleMatch


@pytest.fixture
def das_boot() -> MovieRecord:
    return MovieRecord(title="The Boat", local_title="Das Boot", runtime=150)


def _minutes(value: int) -> int:
    return value * 60


def test_normalize_movie_title() -> None:
    assert normalize_movie_title("Das Boot: Director's Cut – Teil 1") == "das boot directors cut teil 1"
    assert normalize_movie_title("  Tom  &  Jerry ") == "tom jerry"


def test_results_are_scored_best_first(das_boot: MovieRecord) -> None:
    exact_local = make_hit("Das Boot", topic="Filme", duration=_minutes(150))
    original = make_hit("The Boat", topic="Kino", duration=_minutes(150))
    long_cut = make_hit("Das Boot (Director's Cut)", topic="Das Boot", duration=_minutes(200))
    unrelated = make_hit("Der Fall", topic="Tatort", duration=_minutes(90))

    results = match_movie_hits([long_cut, unrelated, original, exact_local], das_boot)

    assert [result.hit for result in results] == [exact_local, original, long_cut]
    assert [result.score for result in results] == pytest.approx([100.0, 96.0, 80.0])
    assert all(result.title_match is TitleMatch.EXACT for result in results)
    assert [result.duration_diff for result in results] == [0, 0, 50]


def test_streams_and_short_hits_are_ignored(das_boot: MovieRecord) -> None:
    playlist = make_hit("Das Boot", duration=_minutes(150), url_video="https://cdn.example.com/das_boot.m3u8")
    trailer = make_hit("Das Boot", duration=_minutes(2))
    assert match_movie_hits([playlist, trailer], das_boot) == []


def test_fuzzy_and_partial_matches(das_boot: MovieRecord) -> None:
    fuzzy = make_hit("Das Bot", topic="Filme", duration=_minutes(150))
    partial = make_hit("Teil 1", topic="Das Boot Doku-Reihe", duration=_minutes(60))

    results = match_movie_hits([partial, fuzzy], das_boot)

    assert [result.title_match for result in results] == [TitleMatch.FUZZY, TitleMatch.PARTIAL]
    assert results[0].score == pytest.approx(0.875 * 100 * 0.8 + 20)
    assert results[1].score == pytest.approx(60 * 0.8)


@pytest.mark.parametrize(
    ("minutes", "bonus"),
    [(150, 20.0), (160, 20.0), (165, 10.0), (170, 10.0), (171, 0.0)],
)
def test_duration_bonus(das_boot: MovieRecord, minutes: int, bonus: float) -> None:
    [result] = match_movie_hits([make_hit("Das Boot", topic="Filme", duration=_minutes(minutes))], das_boot)
    assert result.score == pytest.approx(80.0 + bonus)


def test_duration_tolerance_is_configurable(das_boot: MovieRecord) -> None:
    hit = make_hit("Das Boot", topic="Filme", duration=_minutes(165))
    [result] = match_movie_hits([hit], das_boot, duration_tolerance=15)
    assert result.score == pytest.approx(100.0)


def test_unknown_runtime_gets_neutral_bonus() -> None:
    movie = MovieRecord(title="Das Boot", local_title="Das Boot")
    [result] = match_movie_hits([make_hit("Das Boot", topic="Filme", duration=_minutes(150))], movie)
    assert result.score == pytest.approx(90.0)
