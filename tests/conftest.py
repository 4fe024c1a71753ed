"""Shared pytest fixtures for the StackForge test suite.

Provides reusable fixtures for:
- Temporary output directories
- A small in-memory catalog covering every merge operation
- The same catalog written out as YAML documents
- A quiet ``Config`` so tests do not print progress
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import yaml

from stackforge.catalog import Catalog, load_catalog
from stackforge.config import Config


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Not-yet-existing output directory named ``demo-app``."""
    return tmp_path / "out" / "demo-app"


@pytest.fixture
def quiet_config() -> Config:
    """Configuration with console output disabled."""
    return Config(quiet=True, max_write_workers=4)


# ---------------------------------------------------------------------------
# Sample catalog
# ---------------------------------------------------------------------------

SAMPLE_CATALOG: dict[str, Any] = {
    "templates": [
        {
            "id": "t1",
            "name": "TypeScript app",
            "language": "typescript",
            "framework": "node",
            "accepted_slots": ["database", "auth", "payments"],
            "manifests": {"npm": "package.json"},
            "variables": [{"name": "description", "default": "A demo app"}],
            "skeleton": [
                {
                    "path": "package.json",
                    "content": '{\n  "name": "{{ project_slug }}",\n'
                    '  "dependencies": {\n    "typescript": "^5.0.0"\n  }\n}\n',
                },
                {
                    "path": "src/index.ts",
                    "content": "// imports\nconsole.log('{{ project_name }}');\n",
                },
                {"path": "README.md", "content": "# {{ project_title }}\n\n{{ description }}\n"},
                {"path": "assets/logo.png", "kind": "binary", "content": b"\x89PNG{{ raw }}"},
                {"path": "scripts/setup.sh", "content": "#!/bin/sh\necho setup\n"},
            ],
        },
        {
            "id": "t2",
            "language": "python",
            "accepted_slots": ["database"],
            "manifests": {"python": "requirements.txt"},
            "skeleton": [
                {"path": "requirements.txt", "content": "fastapi>=0.110\n"},
                {"path": "{{ package_name }}/__init__.py", "content": ""},
            ],
        },
    ],
    "modules": [
        {
            "id": "db-x",
            "category": "database",
            "dependencies": {"npm": {"pg": "^8.0.0"}},
            "environment_variables": [
                {"name": "DATABASE_URL", "description": "Database URL", "required": True}
            ],
            "files": [
                {"path": "src/db.ts", "content": "export const db = 'db';\n"},
                {"path": "src/config.ts", "content": "export const config = {};\n"},
            ],
        },
        {
            "id": "auth-a",
            "category": "auth",
            "environment_variables": [
                {"name": "AUTH_SECRET", "description": "Session secret", "required": True}
            ],
            "files": [
                {"path": "src/auth.ts", "content": "export const auth = true;\n"},
                {
                    "path": "src/index.ts",
                    "operation": "insert-at-marker",
                    "marker": "// imports",
                    "content": "\nimport './auth';",
                },
                {
                    "path": "README.md",
                    "operation": "append",
                    "content": "\n## Auth\n\nProvided by auth-a.\n",
                },
            ],
        },
        {
            "id": "auth-clerk",
            "category": "auth",
            "dependencies": {"npm": ["@clerk/nextjs@^5.0.0"]},
            "files": [{"path": "src/clerk.ts", "content": "export {};\n"}],
        },
        {
            "id": "auth-auth0",
            "category": "auth",
            "files": [{"path": "src/auth0.ts", "content": "export {};\n"}],
        },
        {
            "id": "payments-stripe",
            "category": "payments",
            "compatible_templates": ["t1"],
            "variables": [
                {
                    "name": "stripe_api_key",
                    "required": True,
                    "description": "Stripe secret key",
                }
            ],
            "dependencies": {"npm": {"stripe": "^14.0.0", "pg": "^8.11.0"}},
            "environment_variables": [
                {"name": "DATABASE_URL", "description": "Payments database", "required": True},
                {"name": "STRIPE_SECRET_KEY", "default": "sk_test_placeholder"},
            ],
            "files": [
                {
                    "path": "src/config.ts",
                    "content": "export const stripeKey = '{{ stripe_api_key }}';\n",
                }
            ],
        },
    ],
    "presets": [
        {
            "id": "starter",
            "name": "Starter",
            "modules": ["db-x", "auth-a"],
            "recommended": True,
        },
        {"id": "everything", "modules": ["db-x", "auth-clerk", "auth-auth0"]},
    ],
}


@pytest.fixture
def catalog_data() -> dict[str, Any]:
    """A deep copy of the sample catalog documents (safe to mutate)."""
    return copy.deepcopy(SAMPLE_CATALOG)


@pytest.fixture
def sample_catalog(catalog_data: dict[str, Any]) -> Catalog:
    """The sample catalog, validated."""
    return load_catalog(catalog_data)


@pytest.fixture
def catalog_dir(tmp_path: Path, catalog_data: dict[str, Any]) -> Path:
    """The sample catalog written as one YAML document per entity.

    File names carry a numeric prefix so directory order matches the
    in-memory declaration order.
    """
    root = tmp_path / "catalog"
    for section, entries in catalog_data.items():
        section_dir = root / section
        section_dir.mkdir(parents=True)
        for idx, entry in enumerate(entries):
            path = section_dir / f"{idx:02d}-{entry['id']}.yaml"
            path.write_text(yaml.safe_dump(entry, sort_keys=False), encoding="utf-8")
    return root
