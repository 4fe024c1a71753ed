"""StackForge configuration.

Typed, process-level settings for the generation engine.  Like the rest of
the models these are Pydantic v2 models, so they validate at construction
time and round-trip through JSON or environment variables.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

BUILTIN_CATALOG_DIR = Path(__file__).parent / "catalog" / "data"


class EnvConflictPolicy(str, Enum):
    """What to do when two modules describe one environment variable differently."""

    LAST_WRITER_WINS = "last_writer_wins"
    STRICT = "strict"


class Config(BaseModel):
    """Global StackForge configuration.

    Instances are usually created once (``Config.from_env()``) and passed to
    ``ProjectGenerator``; generation itself never mutates them.
    """

    catalog_dir: Optional[Path] = Field(
        default=None, description="Catalog directory; the bundled catalog when unset"
    )
    max_write_workers: int = Field(
        default=8, ge=1, description="Maximum concurrent file writes while staging output"
    )
    env_conflict_policy: EnvConflictPolicy = Field(
        default=EnvConflictPolicy.LAST_WRITER_WINS,
        description="Handling of duplicate environment-variable declarations",
    )
    staging_prefix: str = Field(
        default=".stackforge-staging-",
        min_length=1,
        description="Name prefix of the temporary staging directory",
    )
    quiet: bool = Field(default=False, description="Suppress progress output on the console")

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def resolved_catalog_dir(self) -> Path:
        """The catalog directory actually used for loading."""
        return self.catalog_dir or BUILTIN_CATALOG_DIR

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file; parent directories are created.

        Returns:
            The path that was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            STACKFORGE_CATALOG_DIR, STACKFORGE_MAX_WRITE_WORKERS,
            STACKFORGE_ENV_CONFLICT_POLICY, STACKFORGE_QUIET.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("STACKFORGE_CATALOG_DIR"):
            kwargs["catalog_dir"] = Path(os.environ["STACKFORGE_CATALOG_DIR"])
        if os.environ.get("STACKFORGE_MAX_WRITE_WORKERS"):
            kwargs["max_write_workers"] = int(os.environ["STACKFORGE_MAX_WRITE_WORKERS"])
        if os.environ.get("STACKFORGE_ENV_CONFLICT_POLICY"):
            kwargs["env_conflict_policy"] = os.environ["STACKFORGE_ENV_CONFLICT_POLICY"]
        if os.environ.get("STACKFORGE_QUIET"):
            kwargs["quiet"] = os.environ["STACKFORGE_QUIET"].strip().lower() in ("1", "true", "yes")
        return cls(**kwargs)
