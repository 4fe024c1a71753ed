"""StackForge: compose project templates and service modules into runnable projects.

Quick usage::

    import asyncio
    from stackforge import generate

    report = asyncio.run(
        generate(
            "nextjs-saas",
            preset_id="saas-starter",
            variable_overrides={"stripe_api_key": "sk_test_123"},
            output_dir="my-app",
        )
    )
"""

from stackforge.catalog import Catalog, default_catalog, load_catalog
from stackforge.config import Config, EnvConflictPolicy
from stackforge.errors import (
    CatalogError,
    DependencyVersionConflict,
    EnvVarConflict,
    GenerationCancelled,
    IncompatibleSlot,
    IncompatibleTemplate,
    InvalidPath,
    InvalidVariable,
    MarkerNotFound,
    MaterializationIOError,
    MergeError,
    MissingManifest,
    MissingRequiredSlot,
    MissingTarget,
    MissingVariable,
    ModuleConflict,
    NotFound,
    OutputNotEmpty,
    PathCollision,
    ResolutionError,
    StackForgeError,
    TemplateRenderError,
    UnknownReference,
    UnsatisfiableRequirement,
)
from stackforge.generator import (
    GenerationReport,
    GenerationRequest,
    ProjectGenerator,
    generate,
    list_modules,
    list_presets,
    list_templates,
    print_report,
)

__version__ = "0.1.0"

__all__ = [
    "Catalog",
    "CatalogError",
    "Config",
    "DependencyVersionConflict",
    "EnvConflictPolicy",
    "EnvVarConflict",
    "GenerationCancelled",
    "GenerationReport",
    "GenerationRequest",
    "IncompatibleSlot",
    "IncompatibleTemplate",
    "InvalidPath",
    "InvalidVariable",
    "MarkerNotFound",
    "MaterializationIOError",
    "MergeError",
    "MissingManifest",
    "MissingRequiredSlot",
    "MissingTarget",
    "MissingVariable",
    "ModuleConflict",
    "NotFound",
    "OutputNotEmpty",
    "PathCollision",
    "ProjectGenerator",
    "ResolutionError",
    "StackForgeError",
    "TemplateRenderError",
    "UnknownReference",
    "UnsatisfiableRequirement",
    "default_catalog",
    "generate",
    "list_modules",
    "list_presets",
    "list_templates",
    "load_catalog",
    "print_report",
]
