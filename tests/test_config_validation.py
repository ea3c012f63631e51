from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from rundfunkarr.config import RULESETS_URL_ENV, TMDB_KEY_ENV, TVDB_KEY_ENV, Settings, build_settings, load_config
from rundfunkarr.utils import load_yaml_file
from rundfunkarr.validation import validate_config_data, validate_config_file

SAMPLE_PATH = Path(__file__).resolve().parents[1] / "config" / "rundfunkarr.sample.yaml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    monkeypatch.delenv(TVDB_KEY_ENV, raising=False)
    monkeypatch.delenv(RULESETS_URL_ENV, raising=False)
    monkeypatch.delenv(TMDB_KEY_ENV, raising=False)


def test_sample_configuration_passes_validation() -> None:
    if not SAMPLE_PATH.exists():
        pytest.skip("Sample configuration not present in repository checkout")
    report = validate_config_data(load_yaml_file(SAMPLE_PATH))
    assert report.errors == []
    assert report.warnings == []


def test_sample_configuration_loads() -> None:
    if not SAMPLE_PATH.exists():
        pytest.skip("Sample configuration not present in repository checkout")
    settings = load_config(SAMPLE_PATH)
    assert settings.catalog.show_max_results == 10000
    assert settings.metadata.tvdb_api_key is None


class TestBuildSettings:
    def test_defaults(self) -> None:
        settings = load_config(None)
        assert isinstance(settings, Settings)
        assert settings.catalog.api_url == "https://mediathekviewweb.de/api/query"
        assert settings.catalog.text_max_results == 1500
        assert settings.catalog.recent_max_results == 6000
        assert settings.matching.title_threshold == 1.0
        assert settings.rulesets.auto_generate is True
        assert settings.generated_db_path == Path("data") / "rundfunkarr.db"
        assert settings.metadata_db_path == Path("data") / "metadata.db"

    def test_values_from_mapping(self, tmp_path: Path) -> None:
        settings = build_settings(
            {
                "data_dir": str(tmp_path),
                "log_level": "debug",
                "catalog": {"timeout": 5, "cache_ttl": 0},
                "rulesets": {"url": None, "local_file": "rulesets.json", "auto_generate": False},
                "metadata": {
                    "tvdb": {"api_key": " secret ", "pin": "1234"},
                    "tmdb": {"api_key": "tmdb"},
                    "cache_ttl": 60,
                },
                "matching": {"title_threshold": 0.85},
                "search": {"timeout": 2.5},
            }
        )
        assert settings.data_dir == tmp_path
        assert settings.log_level == "DEBUG"
        assert settings.catalog.timeout == 5.0
        assert settings.catalog.cache_ttl == 0.0
        assert settings.rulesets.url is None
        assert settings.rulesets.local_file == Path("rulesets.json")
        assert settings.rulesets.auto_generate is False
        assert settings.metadata.tvdb_api_key == "secret"
        assert settings.metadata.tvdb_pin == "1234"
        assert settings.metadata.tmdb_api_key == "tmdb"
        assert settings.metadata.cache_ttl == 60.0
        assert settings.matching.title_threshold == 0.85
        assert settings.search.timeout == 2.5

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv(TVDB_KEY_ENV, "from-env")
        monkeypatch.setenv(TMDB_KEY_ENV, "tmdb-from-env")
        monkeypatch.setenv(RULESETS_URL_ENV, "https://mirror.example.com/rulesets.json")
        settings = build_settings({"metadata": {"tvdb": {"api_key": "from-file"}}, "rulesets": {"url": None}})
        assert settings.metadata.tvdb_api_key == "from-env"
        assert settings.metadata.tmdb_api_key == "tmdb-from-env"
        assert settings.rulesets.url == "https://mirror.example.com/rulesets.json"

    def test_yaml_values_expand_environment(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("RUNDFUNKARR_TEST_DIR", str(tmp_path))
        config = tmp_path / "config.yaml"
        config.write_text("data_dir: $RUNDFUNKARR_TEST_DIR/state\n", encoding="utf-8")
        assert load_config(config).data_dir == tmp_path / "state"

    @pytest.mark.parametrize(
        ("data", "field"),
        [
            ({"catalog": {"timeout": "fast"}}, "catalog.timeout"),
            ({"catalog": {"show_max_results": 0}}, "catalog.show_max_results"),
            ({"catalog": {"api_url": "ftp://example.com"}}, "catalog.api_url"),
            ({"rulesets": {"refresh_interval": 0}}, "rulesets.refresh_interval"),
            ({"matching": {"title_threshold": 1.5}}, "matching.title_threshold"),
            ({"matching": {"movie_duration_tolerance": -1}}, "matching.movie_duration_tolerance"),
            ({"metadata": {"tvdb": "key"}}, "metadata.tvdb"),
            ({"metadata": {"tmdb": "key"}}, "metadata.tmdb"),
            ({"metadata": {"cache_ttl": -1}}, "metadata.cache_ttl"),
            ({"search": "fast"}, "search"),
        ],
    )
    def test_invalid_values_name_the_field(self, data: dict, field: str) -> None:
        with pytest.raises(ValueError, match=field.replace(".", r"\.")):
            build_settings(data)

    def test_root_must_be_mapping(self) -> None:
        with pytest.raises(ValueError):
            build_settings(["not", "a", "mapping"])

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")


class TestValidation:
    def test_empty_document_is_valid(self) -> None:
        report = validate_config_data(None)
        assert report.is_valid
        assert report.warnings == []

    def test_schema_errors_with_paths_and_fixes(self) -> None:
        report = validate_config_data(
            {
                "catalog": {"timeout": "fast", "colour": "blue"},
                "log_level": "LOUD",
                "matching": {"title_threshold": 2},
            }
        )
        paths = [issue.path for issue in report.errors]
        assert paths == sorted(paths)
        by_path = {issue.path: issue for issue in report.errors}
        assert "Additional properties" in by_path["catalog"].message
        assert by_path["catalog"].fix_suggestion == "Remove the unknown key under 'catalog' or check its spelling"
        assert by_path["catalog.timeout"].fix_suggestion == "Check the value type of 'catalog.timeout'"
        assert by_path["log_level"].fix_suggestion == "Use one of DEBUG, INFO, WARNING, ERROR or CRITICAL"
        assert "matching.title_threshold" in by_path
        assert all(issue.code == "schema" for issue in report.errors)

    def test_invalid_and_blank_urls(self) -> None:
        report = validate_config_data({"catalog": {"api_url": "not a url"}, "metadata": {"shows_url": "  "}})
        codes = {issue.path: issue.code for issue in report.errors}
        assert codes == {"catalog.api_url": "invalid-url", "metadata.shows_url": "blank-url"}

    def test_missing_files_are_warnings(self, tmp_path: Path) -> None:
        report = validate_config_data(
            {
                "rulesets": {"local_file": str(tmp_path / "rulesets.json")},
                "metadata": {"shows_file": str(tmp_path / "shows.json")},
            }
        )
        assert report.is_valid
        assert [(issue.path, issue.code) for issue in report.warnings] == [
            ("rulesets.local_file", "missing-file"),
            ("metadata.shows_file", "missing-file"),
        ]

    def test_no_curated_source(self) -> None:
        report = validate_config_data({"rulesets": {"url": None}})
        assert [issue.code for issue in report.warnings] == ["no-curated-source"]

    def test_pin_without_key(self) -> None:
        report = validate_config_data({"metadata": {"tvdb": {"pin": "1234"}}})
        assert [issue.path for issue in report.warnings] == ["metadata.tvdb.pin"]

    def test_non_mapping_root(self) -> None:
        report = validate_config_data(["a"])
        assert not report.is_valid
        assert report.errors[0].path == "<root>"


class TestValidateConfigFile:
    def test_valid_file(self, tmp_path: Path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text(
            textwrap.dedent(
                """
                log_level: WARNING
                catalog:
                  timeout: 10
                """
            ),
            encoding="utf-8",
        )
        assert validate_config_file(config).is_valid

    def test_yaml_syntax_error(self, tmp_path: Path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("catalog: [unclosed\n", encoding="utf-8")
        report = validate_config_file(config)
        assert [issue.code for issue in report.errors] == ["yaml-syntax"]

    def test_unreadable_file(self, tmp_path: Path) -> None:
        report = validate_config_file(tmp_path / "missing.yaml")
        assert [issue.code for issue in report.errors] == ["load-config"]
