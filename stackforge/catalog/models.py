"""Pydantic v2 models for the template and service-module catalogs.

Every model is frozen: catalogs are loaded once and shared read-only by all
generation requests.  Ordered sequences are tuples and unordered sets are
frozensets so that nothing reachable from a loaded catalog can be mutated.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stackforge.catalog.conditions import parse_condition


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Category(str, Enum):
    """Service slot categories.

    Declaration order is the merge priority: earlier categories scaffold the
    infrastructure later ones build on.
    """
    DATABASE = "database"
    AUTH = "auth"
    PAYMENTS = "payments"
    API = "api"
    AI = "ai"
    DEPLOYMENT = "deployment"


CATEGORY_PRIORITY: dict[Category, int] = {cat: idx for idx, cat in enumerate(Category)}


class FileKind(str, Enum):
    """How a skeleton file's content is treated."""
    TEXT = "text"
    BINARY = "binary"


class Operation(str, Enum):
    """How a module contribution is applied to the project tree."""
    CREATE = "create"
    APPEND = "append"
    INSERT_AT_MARKER = "insert-at-marker"
    OVERWRITE = "overwrite"


class VariableType(str, Enum):
    """Declared type of a template or module variable."""
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    CHOICE = "choice"


_FROZEN = ConfigDict(frozen=True, extra="forbid")

_EXECUTABLE_SUFFIXES = {".sh", ".bash"}
_EXECUTABLE_NAMES = {"gradlew", "mvnw"}


def validate_relative_path(value: str) -> str:
    """Normalise a catalog path and reject absolute or escaping paths."""
    raw = value.strip().replace("\\", "/")
    if not raw:
        raise ValueError("path must not be empty")
    pure = PurePosixPath(raw)
    if pure.is_absolute() or re.match(r"^[A-Za-z]:", raw):
        raise ValueError(f"path must be relative: {value!r}")
    if ".." in pure.parts:
        raise ValueError(f"path must not leave the project root: {value!r}")
    return str(pure)


def infer_executable(path: str) -> bool:
    """Return ``True`` for paths that are conventionally executable scripts."""
    pure = PurePosixPath(path)
    return pure.suffix in _EXECUTABLE_SUFFIXES or pure.name in _EXECUTABLE_NAMES


def validate_condition(value: Optional[str]) -> Optional[str]:
    """Parse an inclusion condition and reject unknown slot categories."""
    if value is None:
        return None
    value = value.strip()
    unknown = parse_condition(value).categories() - {cat.value for cat in Category}
    if unknown:
        names = ", ".join(sorted(unknown))
        raise ValueError(f"condition {value!r} names unknown categories: {names}")
    return value


# ---------------------------------------------------------------------------
# File models
# ---------------------------------------------------------------------------

class FileSpec(BaseModel):
    """A single file in a template skeleton."""
    model_config = _FROZEN

    path: str = Field(..., description="Relative output path; may contain Jinja2 expressions")
    content: Union[str, bytes] = Field(default="", description="Content template or raw bytes")
    source: Optional[str] = Field(
        default=None, description="File the content was read from, relative to the catalog document"
    )
    kind: FileKind = Field(default=FileKind.TEXT)
    executable: Optional[bool] = Field(default=None, description="Force or suppress the executable bit")
    condition: Optional[str] = Field(
        default=None, description="Include the file only when this expression holds"
    )

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return validate_relative_path(value)

    @field_validator("condition")
    @classmethod
    def _check_condition(cls, value: Optional[str]) -> Optional[str]:
        return validate_condition(value)

    @model_validator(mode="after")
    def _check_content_kind(self) -> "FileSpec":
        if self.kind is FileKind.TEXT and isinstance(self.content, bytes):
            raise ValueError(f"text file {self.path!r} has binary content")
        return self

    @property
    def is_executable(self) -> bool:
        if self.executable is not None:
            return self.executable
        return infer_executable(self.path)


class FileContribution(BaseModel):
    """A file fragment a service module applies to the project tree."""
    model_config = _FROZEN

    path: str = Field(..., description="Target path; may contain Jinja2 expressions")
    operation: Operation = Field(default=Operation.CREATE)
    content: str = Field(default="", description="Content template")
    source: Optional[str] = Field(default=None)
    marker: Optional[str] = Field(default=None, description="Literal marker for insert-at-marker")
    override_safe: bool = Field(
        default=False, description="Allow ``create`` to replace an existing file at this path"
    )
    executable: Optional[bool] = Field(default=None)
    condition: Optional[str] = Field(default=None)

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return validate_relative_path(value)

    @field_validator("condition")
    @classmethod
    def _check_condition(cls, value: Optional[str]) -> Optional[str]:
        return validate_condition(value)

    @model_validator(mode="after")
    def _check_marker(self) -> "FileContribution":
        if self.operation is Operation.INSERT_AT_MARKER and not self.marker:
            raise ValueError(f"insert-at-marker contribution to {self.path!r} needs a marker")
        return self


# ---------------------------------------------------------------------------
# Dependencies, variables, environment
# ---------------------------------------------------------------------------

class DependencyEntry(BaseModel):
    """One package requirement in a given ecosystem."""
    model_config = _FROZEN

    package: str = Field(..., min_length=1)
    version: str = Field(default="*", description="Version constraint, e.g. '^5.0.0' or '>=2,<3'")


def _parse_dependency_string(spec: str) -> dict[str, str]:
    """Split ``name@version`` shorthand, honouring scoped npm names."""
    spec = spec.strip()
    body = spec[1:] if spec.startswith("@") else spec
    if "@" in body:
        name, version = body.rsplit("@", 1)
        if spec.startswith("@"):
            name = "@" + name
        return {"package": name, "version": version or "*"}
    return {"package": spec, "version": "*"}


class VariableDecl(BaseModel):
    """A variable a template or module expects to be bound."""
    model_config = _FROZEN

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    default: Any = Field(default=None)
    required: bool = Field(default=False)
    description: str = Field(default="")
    type: VariableType = Field(default=VariableType.STRING)
    min_length: int = Field(default=0, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    minimum: Optional[float] = Field(default=None)
    maximum: Optional[float] = Field(default=None)
    options: tuple[str, ...] = Field(default=())

    @model_validator(mode="after")
    def _check_bounds(self) -> "VariableDecl":
        if self.max_length is not None and self.min_length > self.max_length:
            raise ValueError(f"variable {self.name!r}: min_length exceeds max_length")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError(f"variable {self.name!r}: minimum exceeds maximum")
        if self.type is VariableType.CHOICE and not self.options:
            raise ValueError(f"variable {self.name!r}: choice needs at least one option")
        return self


class EnvVarDecl(BaseModel):
    """An environment variable the generated project expects."""
    model_config = _FROZEN

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    description: str = Field(default="")
    required: bool = Field(default=False)
    default: Optional[str] = Field(default=None)


# ---------------------------------------------------------------------------
# Catalog entities
# ---------------------------------------------------------------------------

class Template(BaseModel):
    """A base project skeleton for one language/framework combination."""
    model_config = _FROZEN

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")
    language: str = Field(..., min_length=1)
    framework: str = Field(default="")
    skeleton: tuple[FileSpec, ...] = Field(default=())
    accepted_slots: frozenset[Category] = Field(default_factory=frozenset)
    required_slots: frozenset[Category] = Field(
        default_factory=frozenset, description="Slots a generated project must fill"
    )
    variables: tuple[VariableDecl, ...] = Field(default=())
    manifests: dict[str, str] = Field(
        default_factory=dict, description="Ecosystem -> dependency manifest path"
    )
    env_file: str = Field(default=".env.example")

    @field_validator("manifests")
    @classmethod
    def _check_manifests(cls, value: dict[str, str]) -> dict[str, str]:
        return {eco: validate_relative_path(path) for eco, path in value.items()}

    @field_validator("env_file")
    @classmethod
    def _check_env_file(cls, value: str) -> str:
        return validate_relative_path(value)

    @model_validator(mode="after")
    def _check_required_slots(self) -> "Template":
        unaccepted = self.required_slots - self.accepted_slots
        if unaccepted:
            names = ", ".join(sorted(cat.value for cat in unaccepted))
            raise ValueError(f"template {self.id!r} requires slots it does not accept: {names}")
        return self

    def accepts(self, category: Category) -> bool:
        return category in self.accepted_slots


class ServiceModule(BaseModel):
    """An optional, composable service integration."""
    model_config = _FROZEN

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")
    category: Category
    requires: frozenset[str] = Field(default_factory=frozenset)
    conflicts_with: frozenset[str] = Field(default_factory=frozenset)
    compatible_templates: Union[Literal["any"], frozenset[str]] = Field(default="any")
    files: tuple[FileContribution, ...] = Field(default=())
    dependencies: dict[str, tuple[DependencyEntry, ...]] = Field(default_factory=dict)
    variables: tuple[VariableDecl, ...] = Field(default=())
    environment_variables: tuple[EnvVarDecl, ...] = Field(default=())

    @field_validator("dependencies", mode="before")
    @classmethod
    def _normalise_dependencies(cls, value: Any) -> Any:
        """Accept ``{pkg: version}`` maps and ``name@version`` strings per ecosystem."""
        if not isinstance(value, dict):
            return value
        normalised: dict[str, list[Any]] = {}
        for ecosystem, entries in value.items():
            if isinstance(entries, dict):
                normalised[ecosystem] = [
                    {"package": pkg, "version": str(ver) if ver is not None else "*"}
                    for pkg, ver in entries.items()
                ]
            elif isinstance(entries, (list, tuple)):
                normalised[ecosystem] = [
                    _parse_dependency_string(e) if isinstance(e, str) else e
                    for e in entries
                ]
            else:
                normalised[ecosystem] = entries
        return normalised

    def supports_template(self, template_id: str) -> bool:
        return self.compatible_templates == "any" or template_id in self.compatible_templates


class Preset(BaseModel):
    """A named bundle of module selections."""
    model_config = _FROZEN

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")
    modules: frozenset[str] = Field(default_factory=frozenset)
    recommended: bool = Field(default=False)
    tags: tuple[str, ...] = Field(default=())
