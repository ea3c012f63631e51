from __future__ import annotations

import datetime as dt

import pytest
from factories import DURATION_OVER_15, make_ruleset

from rundfunkarr.models import Episode, Ruleset, ShowMetadata


@pytest.fixture
def tatort_show() -> ShowMetadata:
    return ShowMetadata(
        show_id=100,
        name="Tatort",
        local_name="Tatort",
        episodes=[
            Episode(1, 4, "Der Anfang", aired=dt.date(2023, 12, 3)),
            Episode(1, 5, "Der Fall", aired=dt.date(2023, 12, 10)),
            Episode(2, 1, "Neues Jahr", aired=dt.date(2024, 1, 7)),
        ],
    )


@pytest.fixture
def tatort_ruleset() -> Ruleset:
    return make_ruleset(
        filters=(DURATION_OVER_15,),
        season_regex=r"(?<=S)(\d{2})(?=/E)",
        episode_regex=r"(?<=E)(\d{2})(?=\))",
    )
