"""Unit tests for Config (stackforge.config).

Tests cover:
- Config defaults and validation
- resolved_catalog_dir
- save/load round trip
- from_env
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from stackforge.config import BUILTIN_CATALOG_DIR, Config, EnvConflictPolicy


# ---------------------------------------------------------------------------
# Defaults & validation
# ---------------------------------------------------------------------------


class TestConfigDefaults:
    @pytest.mark.unit
    def test_defaults(self):
        config = Config()
        assert config.catalog_dir is None
        assert config.max_write_workers == 8
        assert config.env_conflict_policy is EnvConflictPolicy.LAST_WRITER_WINS
        assert config.staging_prefix == ".stackforge-staging-"
        assert config.quiet is False

    @pytest.mark.unit
    def test_workers_must_be_positive(self):
        with pytest.raises(ValidationError):
            Config(max_write_workers=0)

    @pytest.mark.unit
    def test_staging_prefix_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            Config(staging_prefix="")

    @pytest.mark.unit
    def test_policy_accepts_string_value(self):
        config = Config(env_conflict_policy="strict")
        assert config.env_conflict_policy is EnvConflictPolicy.STRICT


class TestResolvedCatalogDir:
    @pytest.mark.unit
    def test_builtin_catalog_when_unset(self):
        assert Config().resolved_catalog_dir == BUILTIN_CATALOG_DIR

    @pytest.mark.unit
    def test_explicit_catalog_dir(self, tmp_path: Path):
        assert Config(catalog_dir=tmp_path).resolved_catalog_dir == tmp_path

    @pytest.mark.unit
    def test_builtin_catalog_is_shipped(self):
        assert (BUILTIN_CATALOG_DIR / "templates").is_dir()
        assert (BUILTIN_CATALOG_DIR / "modules").is_dir()


# ---------------------------------------------------------------------------
# save / load
# ---------------------------------------------------------------------------


class TestConfigSaveLoad:
    @pytest.mark.unit
    def test_save_creates_parent_dirs(self, tmp_path: Path):
        target = tmp_path / "nested" / "config.json"
        written = Config(quiet=True).save(target)
        assert written == target
        data = json.loads(target.read_text(encoding="utf-8"))
        assert data["quiet"] is True

    @pytest.mark.unit
    def test_round_trip(self, tmp_path: Path):
        original = Config(
            catalog_dir=tmp_path / "catalog",
            max_write_workers=3,
            env_conflict_policy=EnvConflictPolicy.STRICT,
        )
        loaded = Config.load(original.save(tmp_path / "config.json"))
        assert loaded == original


# ---------------------------------------------------------------------------
# Config.from_env
# ---------------------------------------------------------------------------


class TestConfigFromEnv:
    @pytest.mark.unit
    def test_defaults_when_no_env(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()
        assert config == Config()

    @pytest.mark.unit
    def test_catalog_dir_from_env(self):
        with patch.dict(os.environ, {"STACKFORGE_CATALOG_DIR": "/srv/catalog"}, clear=True):
            config = Config.from_env()
        assert config.catalog_dir == Path("/srv/catalog")

    @pytest.mark.unit
    def test_workers_and_policy_from_env(self):
        env = {
            "STACKFORGE_MAX_WRITE_WORKERS": "2",
            "STACKFORGE_ENV_CONFLICT_POLICY": "strict",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()
        assert config.max_write_workers == 2
        assert config.env_conflict_policy is EnvConflictPolicy.STRICT

    @pytest.mark.unit
    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("0", False)])
    def test_quiet_from_env(self, value: str, expected: bool):
        with patch.dict(os.environ, {"STACKFORGE_QUIET": value}, clear=True):
            config = Config.from_env()
        assert config.quiet is expected

    @pytest.mark.unit
    def test_invalid_policy_rejected(self):
        with patch.dict(os.environ, {"STACKFORGE_ENV_CONFLICT_POLICY": "loose"}, clear=True):
            with pytest.raises(ValidationError):
                Config.from_env()
