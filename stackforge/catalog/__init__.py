"""Template and service-module catalogs.

Quick usage::

    from stackforge.catalog import load_catalog

    catalog = load_catalog("path/to/catalog")
    template = catalog.get_template("nextjs-saas")
    auth_modules = catalog.list_modules("auth")
"""

from stackforge.catalog.conditions import (
    Condition,
    is_included,
    parse_condition,
    selected_services,
)
from stackforge.catalog.loader import default_catalog, load_catalog
from stackforge.catalog.models import (
    CATEGORY_PRIORITY,
    Category,
    DependencyEntry,
    EnvVarDecl,
    FileContribution,
    FileKind,
    FileSpec,
    Operation,
    Preset,
    ServiceModule,
    Template,
    VariableDecl,
    VariableType,
    infer_executable,
    validate_condition,
    validate_relative_path,
)
from stackforge.catalog.registry import Catalog

__all__ = [
    "CATEGORY_PRIORITY",
    "Catalog",
    "Category",
    "Condition",
    "DependencyEntry",
    "EnvVarDecl",
    "FileContribution",
    "FileKind",
    "FileSpec",
    "Operation",
    "Preset",
    "ServiceModule",
    "Template",
    "VariableDecl",
    "VariableType",
    "default_catalog",
    "infer_executable",
    "is_included",
    "load_catalog",
    "parse_condition",
    "selected_services",
    "validate_condition",
    "validate_relative_path",
]
