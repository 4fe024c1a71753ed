"""Merge engine: builds the complete project tree in memory.

The tree is seeded from the template skeleton, then every module's file
contributions are applied in resolver order.  Dependency declarations are
merged per ecosystem and written into the template's manifests, and
environment-variable declarations are merged by name and rendered into the
template's env file.  Nothing here touches the filesystem; the result is
handed to :class:`~stackforge.composer.materializer.Materializer`.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from stackforge.catalog import (
    EnvVarDecl,
    FileContribution,
    FileKind,
    Operation,
    ServiceModule,
    Template,
    infer_executable,
    is_included,
    selected_services,
    validate_relative_path,
)
from stackforge.composer.templates import TemplateRenderer
from stackforge.composer.versions import merge_constraints
from stackforge.config import EnvConflictPolicy
from stackforge.errors import (
    DependencyVersionConflict,
    EnvVarConflict,
    InvalidPath,
    MarkerNotFound,
    MissingManifest,
    MissingTarget,
    PathCollision,
)

_REQUIREMENT_LINE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._\-]*(?:\[[^\]]*\])?)\s*(.*)$")
_PYTHON_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._\-]*)\s*(?:\[([^\]]*)\])?\s*$")
_CARGO_LINE = re.compile(r"^\s*([A-Za-z0-9_\-]+)\s*=\s*\"([^\"]*)\"\s*$")


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------

@dataclass
class TreeEntry:
    """Final content of one output file plus its provenance."""

    content: Union[str, bytes]
    kind: FileKind = FileKind.TEXT
    executable: bool = False
    provenance: str = ""
    created_by: str = ""
    modified_by: list[str] = field(default_factory=list)

    @property
    def is_binary(self) -> bool:
        return self.kind is FileKind.BINARY

    def data(self) -> bytes:
        """Content as bytes, ready to be written."""
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")

    def record_write(self, owner: str) -> None:
        self.provenance = owner
        self.modified_by.append(owner)


class ProjectTree:
    """Mapping of relative output path to :class:`TreeEntry`.

    Iteration is always in sorted path order so every consumer sees the same
    sequence for the same inputs.
    """

    def __init__(self) -> None:
        self._entries: dict[str, TreeEntry] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __getitem__(self, path: str) -> TreeEntry:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str) -> Optional[TreeEntry]:
        return self._entries.get(path)

    def set(self, path: str, entry: TreeEntry) -> None:
        self._entries[path] = entry

    def conflicting_path(self, path: str) -> Optional[str]:
        """Return an existing file that is an ancestor or descendant of *path*.

        Either way one of the two paths would have to be both a file and a
        directory on disk.
        """
        parts = path.split("/")
        for depth in range(1, len(parts)):
            ancestor = "/".join(parts[:depth])
            if ancestor in self._entries:
                return ancestor
        prefix = path + "/"
        for existing in sorted(self._entries):
            if existing.startswith(prefix):
                return existing
        return None

    def items(self) -> list[tuple[str, TreeEntry]]:
        return [(path, self._entries[path]) for path in sorted(self._entries)]

    def paths(self) -> list[str]:
        return sorted(self._entries)

    def modified_paths(self) -> list[str]:
        """Paths changed by anything after they were first created."""
        return [path for path, entry in self.items() if entry.modified_by]

    def text(self, path: str) -> str:
        """Return a text entry's content (convenience for callers and tests)."""
        content = self._entries[path].content
        return content.decode("utf-8") if isinstance(content, bytes) else content


class Notice(BaseModel):
    """An accepted ambiguity recorded during merging."""

    model_config = ConfigDict(frozen=True)

    kind: str
    subject: str
    message: str


@dataclass
class MergeResult:
    tree: ProjectTree
    dependencies: dict[str, dict[str, str]]
    environment_variables: list[EnvVarDecl]
    notices: list[Notice]


# ---------------------------------------------------------------------------
# Merger
# ---------------------------------------------------------------------------

class TreeMerger:
    """Applies a template and resolved modules into a :class:`ProjectTree`."""

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        env_policy: EnvConflictPolicy = EnvConflictPolicy.LAST_WRITER_WINS,
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.env_policy = env_policy

    def merge(
        self,
        template: Template,
        modules: Sequence[ServiceModule],
        namespace: Mapping[str, Any],
    ) -> MergeResult:
        """Build the full project tree.

        Args:
            template: The resolved template.
            modules: Modules in resolver (merge) order.
            namespace: Bound variables from :class:`VariableBinder`.

        Returns:
            The tree together with merged dependencies, environment variables
            and any notices.
        """
        self._check_manifests(template, modules)
        notices: list[Notice] = []
        module_dependencies = self._merge_module_dependencies(modules)
        env_vars, env_owners = self._merge_env_vars(modules, notices)
        context = self._build_context(
            template, modules, namespace, module_dependencies, env_vars
        )

        services = context["services"]
        tree = ProjectTree()
        self._seed(tree, template, context)
        for module in modules:
            for contribution in module.files:
                if is_included(contribution.condition, services):
                    self._apply(tree, module, contribution, context)

        dependencies = self._write_manifests(tree, template, modules)
        self._write_env_file(tree, template, env_vars, env_owners)

        return MergeResult(
            tree=tree,
            dependencies=dependencies,
            environment_variables=env_vars,
            notices=notices,
        )

    # -- Context -----------------------------------------------------------

    @staticmethod
    def _build_context(
        template: Template,
        modules: Sequence[ServiceModule],
        namespace: Mapping[str, Any],
        dependencies: Mapping[str, Mapping[str, str]],
        env_vars: Sequence[EnvVarDecl],
    ) -> dict[str, Any]:
        context = dict(namespace)
        context["template"] = {
            "id": template.id,
            "name": template.name,
            "language": template.language,
            "framework": template.framework,
        }
        context["modules"] = [
            {"id": m.id, "name": m.name, "category": m.category.value} for m in modules
        ]
        context["services"] = selected_services(modules)
        context["dependencies"] = {eco: dict(pkgs) for eco, pkgs in dependencies.items()}
        context["environment_variables"] = [decl.model_dump() for decl in env_vars]
        return context

    # -- Skeleton and contributions ----------------------------------------

    def _render_path(self, raw: str, context: Mapping[str, Any], owner: str) -> str:
        rendered = self.renderer.render_string(raw, dict(context), path=raw, owner=owner)
        try:
            return validate_relative_path(rendered)
        except ValueError:
            raise InvalidPath(rendered, owner) from None

    def _seed(self, tree: ProjectTree, template: Template, context: Mapping[str, Any]) -> None:
        for spec in template.skeleton:
            if not is_included(spec.condition, context["services"]):
                continue
            path = self._render_path(spec.path, context, template.id)
            if path in tree:
                raise PathCollision(path, template.id, tree[path].provenance)
            _check_file_or_directory(tree, path, template.id)
            if spec.kind is FileKind.BINARY:
                content: Union[str, bytes] = spec.content
            else:
                content = self.renderer.render_string(
                    str(spec.content), dict(context), path=path, owner=template.id
                )
            executable = spec.executable if spec.executable is not None else infer_executable(path)
            tree.set(
                path,
                TreeEntry(
                    content=content,
                    kind=spec.kind,
                    executable=executable,
                    provenance=template.id,
                    created_by=template.id,
                ),
            )

    def _apply(
        self,
        tree: ProjectTree,
        module: ServiceModule,
        contribution: FileContribution,
        context: Mapping[str, Any],
    ) -> None:
        path = self._render_path(contribution.path, context, module.id)
        content = self.renderer.render_string(
            contribution.content, dict(context), path=path, owner=module.id
        )
        existing = tree.get(path)
        operation = contribution.operation

        if operation is Operation.CREATE:
            if existing is not None and not contribution.override_safe:
                raise PathCollision(path, module.id, existing.provenance)
            self._replace(tree, path, existing, content, module.id, contribution.executable)
            return

        if operation is Operation.OVERWRITE:
            self._replace(tree, path, existing, content, module.id, contribution.executable)
            return

        if existing is None:
            raise MissingTarget(path, module.id)
        if existing.is_binary:
            raise PathCollision(
                path,
                module.id,
                existing.provenance,
                reason=f"cannot {operation.value} text into a binary file",
            )

        current = str(existing.content)
        if operation is Operation.APPEND:
            existing.content = current + content
        else:
            marker = contribution.marker or ""
            index = current.find(marker)
            if index < 0:
                raise MarkerNotFound(path, marker, module.id)
            split = index + len(marker)
            existing.content = current[:split] + content + current[split:]

        if contribution.executable is not None:
            existing.executable = contribution.executable
        existing.record_write(module.id)

    @staticmethod
    def _replace(
        tree: ProjectTree,
        path: str,
        existing: Optional[TreeEntry],
        content: str,
        owner: str,
        executable: Optional[bool],
    ) -> None:
        if executable is None:
            executable = infer_executable(path)
        if existing is None:
            _check_file_or_directory(tree, path, owner)
            tree.set(
                path,
                TreeEntry(content=content, executable=executable, provenance=owner, created_by=owner),
            )
            return
        existing.content = content
        existing.kind = FileKind.TEXT
        existing.executable = executable
        existing.record_write(owner)

    # -- Dependencies ------------------------------------------------------

    @staticmethod
    def _check_manifests(template: Template, modules: Sequence[ServiceModule]) -> None:
        """Every ecosystem a module declares packages for needs a template manifest."""
        for module in modules:
            for ecosystem in sorted(module.dependencies):
                if module.dependencies[ecosystem] and ecosystem not in template.manifests:
                    raise MissingManifest(ecosystem, module.id, template.id)

    @staticmethod
    def _merge_module_dependencies(
        modules: Sequence[ServiceModule],
    ) -> dict[str, dict[str, str]]:
        constraints = _Constraints()
        for module in modules:
            for ecosystem, entries in module.dependencies.items():
                for entry in entries:
                    constraints.add(ecosystem, entry.package, module.id, entry.version)
        return constraints.resolve()

    def _write_manifests(
        self,
        tree: ProjectTree,
        template: Template,
        modules: Sequence[ServiceModule],
    ) -> dict[str, dict[str, str]]:
        """Merge manifest-declared and module dependencies and rewrite manifests."""
        constraints = _Constraints()
        parsed: dict[str, Any] = {}

        for ecosystem, path in sorted(template.manifests.items()):
            entry = tree.get(path)
            if entry is None:
                continue
            if entry.is_binary:
                raise PathCollision(
                    path, template.id, entry.provenance, reason="manifest is a binary file"
                )
            existing, state = _read_manifest(ecosystem, str(entry.content), path, entry.provenance)
            parsed[ecosystem] = state
            for package, spec in existing:
                constraints.add(ecosystem, package, entry.provenance, spec)

        for module in modules:
            for ecosystem, entries in module.dependencies.items():
                for dep in entries:
                    constraints.add(ecosystem, dep.package, module.id, dep.version)

        merged = constraints.resolve()

        for ecosystem, path in sorted(template.manifests.items()):
            packages = merged.get(ecosystem)
            contributors = [m.id for m in modules if m.dependencies.get(ecosystem)]
            if not contributors:
                continue
            entry = tree.get(path)
            content = _write_manifest(ecosystem, parsed.get(ecosystem), packages or {})
            if entry is None:
                _check_file_or_directory(tree, path, contributors[0])
                tree.set(
                    path,
                    TreeEntry(
                        content=content,
                        provenance=contributors[-1],
                        created_by=contributors[0],
                    ),
                )
            else:
                entry.content = content
                for owner in contributors:
                    entry.record_write(owner)
        return merged

    # -- Environment variables ---------------------------------------------

    def _merge_env_vars(
        self, modules: Sequence[ServiceModule], notices: list[Notice]
    ) -> tuple[list[EnvVarDecl], dict[str, str]]:
        merged: dict[str, EnvVarDecl] = {}
        owners: dict[str, str] = {}
        for module in modules:
            for decl in module.environment_variables:
                previous = merged.get(decl.name)
                if previous is not None and previous != decl:
                    if self.env_policy is EnvConflictPolicy.STRICT:
                        raise EnvVarConflict(decl.name, owners[decl.name], module.id)
                    notices.append(
                        Notice(
                            kind="environment_variable",
                            subject=decl.name,
                            message=(
                                f"{decl.name} is declared by {owners[decl.name]!r} and "
                                f"{module.id!r}; using the declaration from {module.id!r}"
                            ),
                        )
                    )
                merged[decl.name] = decl
                owners[decl.name] = module.id
        # dicts keep first-insertion order, so re-declared names stay in place
        return list(merged.values()), owners

    @staticmethod
    def _write_env_file(
        tree: ProjectTree,
        template: Template,
        env_vars: Sequence[EnvVarDecl],
        owners: Mapping[str, str],
    ) -> None:
        if not env_vars:
            return
        block = _render_env_block(env_vars)
        contributors = list(dict.fromkeys(owners[decl.name] for decl in env_vars))
        path = template.env_file
        entry = tree.get(path)
        if entry is None:
            _check_file_or_directory(tree, path, contributors[0])
            tree.set(
                path,
                TreeEntry(
                    content=block,
                    provenance=contributors[-1],
                    created_by=contributors[0],
                ),
            )
            return
        if entry.is_binary:
            raise PathCollision(path, contributors[0], entry.provenance, reason="env file is binary")
        current = str(entry.content)
        if current and not current.endswith("\n"):
            current += "\n"
        entry.content = current + ("\n" if current else "") + block
        for owner in contributors:
            entry.record_write(owner)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _check_file_or_directory(tree: ProjectTree, path: str, owner: str) -> None:
    other = tree.conflicting_path(path)
    if other is not None:
        raise PathCollision(
            path,
            owner,
            tree[other].provenance,
            reason=f"{other!r} is a file, so a path would be both a file and a directory",
        )


def _package_key(ecosystem: str, package: str) -> tuple[str, str, frozenset[str]]:
    """Return ``(key, name, extras)`` for a declared package.

    Python names are compared in their PEP 503 normalised form with extras
    stripped, so ``uvicorn[standard]`` and ``Uvicorn`` are one package.
    """
    if ecosystem == "python":
        match = _PYTHON_NAME.match(package)
        if match:
            name = match.group(1)
            extras = frozenset(e.strip() for e in (match.group(2) or "").split(",") if e.strip())
            return re.sub(r"[-_.]+", "-", name).lower(), name, extras
    return package, package, frozenset()


class _Constraints:
    """Declared version constraints per ecosystem and package."""

    def __init__(self) -> None:
        self._declared: dict[str, dict[str, list[tuple[str, str]]]] = {}
        self._names: dict[tuple[str, str], str] = {}
        self._extras: dict[tuple[str, str], set[str]] = {}

    def add(self, ecosystem: str, package: str, owner: str, spec: str) -> None:
        key, name, extras = _package_key(ecosystem, package)
        self._declared.setdefault(ecosystem, {}).setdefault(key, []).append((owner, spec))
        # first spelling wins; extras accumulate
        self._names.setdefault((ecosystem, key), name)
        self._extras.setdefault((ecosystem, key), set()).update(extras)

    def resolve(self) -> dict[str, dict[str, str]]:
        merged: dict[str, dict[str, str]] = {}
        for ecosystem in sorted(self._declared):
            packages = self._declared[ecosystem]
            merged[ecosystem] = {}
            for key in sorted(packages):
                label = self._label(ecosystem, key)
                declared = packages[key]
                spec = merge_constraints([s for _, s in declared], ecosystem)
                if spec is None:
                    raise DependencyVersionConflict(label, ecosystem, declared)
                merged[ecosystem][label] = spec
        return merged

    def _label(self, ecosystem: str, key: str) -> str:
        name = self._names[(ecosystem, key)]
        extras = self._extras[(ecosystem, key)]
        if not extras:
            return name
        return f"{name}[{','.join(sorted(extras))}]"



# ---------------------------------------------------------------------------
# Manifest formats
# ---------------------------------------------------------------------------

def _read_manifest(
    ecosystem: str, content: str, path: str, owner: str
) -> tuple[list[tuple[str, str]], Any]:
    """Return ``(package, spec)`` pairs already present and format-specific state."""
    if ecosystem == "npm":
        try:
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as exc:
            raise PathCollision(path, owner, owner, reason=f"manifest is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise PathCollision(path, owner, owner, reason="manifest is not a JSON object")
        existing = data.get("dependencies") or {}
        return [(str(k), str(v)) for k, v in existing.items()], data

    if ecosystem == "cargo":
        lines = content.splitlines()
        pairs: list[tuple[str, str]] = []
        in_section = False
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("["):
                in_section = stripped == "[dependencies]"
                continue
            if in_section:
                match = _CARGO_LINE.match(line)
                if match:
                    pairs.append((match.group(1), match.group(2)))
        return pairs, lines

    # python requirements and anything line-based
    keep: list[str] = []
    pairs = []
    for line in content.splitlines():
        stripped = line.strip()
        match = _REQUIREMENT_LINE.match(stripped)
        if stripped and not stripped.startswith(("#", "-")) and match:
            pairs.append((match.group(1), match.group(2).strip() or "*"))
        else:
            keep.append(line)
    return pairs, keep


def _write_manifest(ecosystem: str, state: Any, packages: Mapping[str, str]) -> str:
    if ecosystem == "npm":
        data = dict(state or {})
        data["dependencies"] = {name: packages[name] for name in sorted(packages)}
        return json.dumps(data, indent=2) + "\n"

    if ecosystem == "cargo":
        lines = list(state or [])
        body = [f'{name} = "{packages[name]}"' for name in sorted(packages)]
        output: list[str] = []
        replaced = False
        skipping = False
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("["):
                skipping = False
                if stripped == "[dependencies]":
                    output.append(line)
                    output.extend(body)
                    output.append("")
                    replaced = True
                    skipping = True
                    continue
            if skipping:
                continue
            output.append(line)
        if not replaced:
            if output and output[-1].strip():
                output.append("")
            output.append("[dependencies]")
            output.extend(body)
        while output and not output[-1].strip():
            output.pop()
        return "\n".join(output) + "\n"

    lines = [line for line in (state or []) if line.strip()]
    # packages arrive ordered by normalised name
    for name in packages:
        spec = packages[name]
        lines.append(name if spec == "*" else f"{name}{spec}")
    return "\n".join(lines) + "\n"


def _render_env_block(env_vars: Sequence[EnvVarDecl]) -> str:
    lines: list[str] = []
    for decl in env_vars:
        comment = decl.description or decl.name
        if decl.required:
            comment += " (required)"
        lines.append(f"# {comment}")
        lines.append(f"{decl.name}={decl.default or ''}")
    return "\n".join(lines) + "\n"
