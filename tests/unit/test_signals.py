"""Tests for user-profile signal providers."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from src.core.schemas import UserSignal
from src.profile.signals import StaticProfileProvider, YamlProfileProvider


class TestStaticProfileProvider:
    def test_known_and_unknown(self) -> None:
        provider = StaticProfileProvider({"u1": UserSignal(top_skills=("go",))})
        signal = provider.get_signals("u1")
        assert signal is not None
        assert signal.top_skills == ("go",)
        assert provider.get_signals("u2") is None

    def test_empty(self) -> None:
        assert StaticProfileProvider().get_signals("u1") is None


class TestYamlProfileProvider:
    def test_loads_users(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.yaml"
        path.write_text(dedent("""\
            users:
              u-1:
                top_skills: [python, fastapi]
                top_locations: [Bengaluru]
                preferred_job_types: [full-time]
              42:
                preferred_resume_id: r-9
        """))
        provider = YamlProfileProvider(path)
        signal = provider.get_signals("u-1")
        assert signal is not None
        assert signal.top_skills == ("python", "fastapi")
        assert signal.top_locations == ("Bengaluru",)
        numeric = provider.get_signals("42")
        assert numeric is not None
        assert numeric.preferred_resume_id == "r-9"

    def test_user_without_fields(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.yaml"
        path.write_text("users:\n  u-1:\n")
        assert YamlProfileProvider(path).get_signals("u-1") == UserSignal()

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.yaml"
        path.write_text("")
        assert YamlProfileProvider(path).get_signals("u-1") is None

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            YamlProfileProvider(tmp_path / "nope.yaml")

    def test_users_not_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.yaml"
        path.write_text("users:\n  - u-1\n")
        with pytest.raises(ValueError):
            YamlProfileProvider(path)

    def test_bad_signal_shape(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.yaml"
        path.write_text("users:\n  u-1:\n    top_skills: 7\n")
        with pytest.raises(ValidationError):
            YamlProfileProvider(path)
