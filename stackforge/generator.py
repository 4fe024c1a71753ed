"""Generation orchestrator.

Sequences one generation request through the pipeline::

    expand preset -> resolve -> bind variables -> merge -> materialize

Every stage before materialization works purely in memory, so resolution,
binding and merge errors never touch the output directory.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from stackforge.catalog import (
    Catalog,
    Category,
    EnvVarDecl,
    Preset,
    ServiceModule,
    Template,
    default_catalog,
    load_catalog,
)
from stackforge.composer import (
    Materializer,
    Notice,
    TemplateRenderer,
    TreeMerger,
    VariableBinder,
    project_defaults,
)
from stackforge.config import Config
from stackforge.errors import StackForgeError
from stackforge.resolver import ConstraintResolver, PresetManager
from stackforge.utils import (
    console,
    format_duration,
    print_error,
    print_stage,
    print_success,
    print_summary_table,
    print_warning,
)


# ---------------------------------------------------------------------------
# Request / report models
# ---------------------------------------------------------------------------


class GenerationRequest(BaseModel):
    """Everything needed to generate one project."""

    template_id: str = Field(..., min_length=1)
    modules: frozenset[str] = Field(default_factory=frozenset, description="Explicit module ids")
    preset_id: Optional[str] = Field(default=None, description="Preset expanded before resolution")
    exclude: frozenset[str] = Field(
        default_factory=frozenset, description="Module ids removed from the preset selection"
    )
    variables: dict[str, Any] = Field(default_factory=dict, description="Variable overrides")
    output_dir: Path
    force: bool = Field(default=False, description="Replace a non-empty output directory")
    dry_run: bool = Field(default=False, description="Build and validate without writing")


class GenerationReport(BaseModel):
    """What a generation run produced (or, for a dry run, would produce)."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    modules: tuple[str, ...] = ()
    auto_included: tuple[str, ...] = ()
    output_dir: Path
    created_paths: tuple[str, ...] = ()
    modified_paths: tuple[str, ...] = ()
    dependencies: dict[str, dict[str, str]] = Field(default_factory=dict)
    environment_variables: tuple[EnvVarDecl, ...] = ()
    notices: tuple[Notice, ...] = ()
    dry_run: bool = False
    duration_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Composes templates and service modules into generated projects.

    A generator holds only read-only state (catalog, config, renderer) and
    can serve any number of sequential or concurrent requests.
    """

    def __init__(self, catalog: Catalog | None = None, config: Config | None = None) -> None:
        self.config = config or Config.from_env()
        if catalog is None:
            catalog = (
                load_catalog(self.config.catalog_dir)
                if self.config.catalog_dir is not None
                else default_catalog()
            )
        self.catalog = catalog
        self.renderer = TemplateRenderer()
        self.presets = PresetManager(self.catalog)
        self.resolver = ConstraintResolver(self.catalog)
        self.binder = VariableBinder(self.renderer)
        self.merger = TreeMerger(self.renderer, self.config.env_conflict_policy)
        self.materializer = Materializer(self.config)

    # -- Public API --------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> GenerationReport:
        """Run one request through the full pipeline.

        Args:
            request: The generation request.
            cancel: Optional event; setting it before the commit step aborts
                generation with ``GenerationCancelled`` and leaves the output
                directory untouched.

        Returns:
            A ``GenerationReport`` describing the generated tree.
        """
        started = time.monotonic()
        try:
            return await self._run(request, cancel, started)
        except StackForgeError as exc:
            if not self.config.quiet:
                print_error(
                    f"Generation from {request.template_id!r} FAILED after "
                    f"{format_duration(time.monotonic() - started)}: {exc}"
                )
            raise

    async def _run(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None,
        started: float,
    ) -> GenerationReport:
        # 1. Expand preset and explicit selections
        selection = self.presets.expand(request.preset_id, request.modules, request.exclude)

        # 2. Resolve against the compatibility graph
        self._stage("resolve", request.template_id)
        resolution = self.resolver.resolve(request.template_id, selection, request.exclude)
        template = self.catalog.get_template(resolution.template_id)
        modules = [self.catalog.get_module(m) for m in resolution.ordered_modules]

        # 3. Bind variables
        self._stage("bind", f"{len(modules)} module(s)")
        namespace = self.binder.bind(
            template,
            modules,
            request.variables,
            project_defaults(request.output_dir, request.variables),
        )

        # 4. Merge into the in-memory tree
        self._stage("merge")
        merged = self.merger.merge(template, modules, namespace)
        for notice in merged.notices:
            if not self.config.quiet:
                print_warning(notice.message)

        # 5. Materialize
        self._stage("materialize", "dry run" if request.dry_run else str(request.output_dir))
        created = await self.materializer.materialize(
            merged.tree,
            request.output_dir,
            force=request.force,
            dry_run=request.dry_run,
            cancel=cancel,
        )

        report = GenerationReport(
            template_id=template.id,
            modules=resolution.ordered_modules,
            auto_included=resolution.auto_included,
            output_dir=request.output_dir,
            created_paths=tuple(created),
            modified_paths=tuple(merged.tree.modified_paths()),
            dependencies=merged.dependencies,
            environment_variables=tuple(merged.environment_variables),
            notices=tuple(merged.notices),
            dry_run=request.dry_run,
            duration_seconds=time.monotonic() - started,
        )
        if not self.config.quiet:
            verb = "Would generate" if request.dry_run else "Generated"
            print_success(
                f"{verb} {len(created)} file(s) in {format_duration(report.duration_seconds)}"
            )
        return report

    def _stage(self, name: str, detail: str = "") -> None:
        if not self.config.quiet:
            print_stage(name, detail)


# ---------------------------------------------------------------------------
# Module-level API
# ---------------------------------------------------------------------------


async def generate(
    template_id: str,
    module_ids: Iterable[str] = (),
    preset_id: Optional[str] = None,
    variable_overrides: Optional[Mapping[str, Any]] = None,
    *,
    output_dir: str | Path,
    exclude: Iterable[str] = (),
    force: bool = False,
    dry_run: bool = False,
    catalog: Catalog | None = None,
    config: Config | None = None,
    cancel: asyncio.Event | None = None,
) -> GenerationReport:
    """Generate a project in one call.

    *output_dir* has no default; with ``force=True`` it is replaced wholesale.

    Example::

        report = await generate(
            "nextjs-saas",
            ["auth-clerk", "payments-stripe"],
            variable_overrides={"stripe_api_key": "sk_test_123"},
            output_dir="my-app",
        )
    """
    request = GenerationRequest(
        template_id=template_id,
        modules=frozenset(module_ids),
        preset_id=preset_id,
        exclude=frozenset(exclude),
        variables=dict(variable_overrides or {}),
        output_dir=Path(output_dir),
        force=force,
        dry_run=dry_run,
    )
    generator = ProjectGenerator(catalog=catalog, config=config)
    return await generator.generate(request, cancel=cancel)


def list_templates(catalog: Catalog | None = None) -> list[Template]:
    """All templates, in declaration order."""
    return (catalog if catalog is not None else default_catalog()).list_templates()


def list_modules(
    category: Category | str | None = None, catalog: Catalog | None = None
) -> list[ServiceModule]:
    """All modules, optionally filtered by category, in declaration order."""
    return (catalog if catalog is not None else default_catalog()).list_modules(category)


def list_presets(catalog: Catalog | None = None, recommended: bool = False) -> list[Preset]:
    """All presets, or only the recommended ones, in declaration order."""
    catalog = catalog if catalog is not None else default_catalog()
    if recommended:
        return PresetManager(catalog).recommended()
    return catalog.list_presets()


def print_report(report: GenerationReport) -> None:
    """Render a report on the console."""
    summary = {
        "Template": report.template_id,
        "Modules": ", ".join(report.modules) or "(none)",
        "Auto-included": ", ".join(report.auto_included) or "(none)",
        "Output": str(report.output_dir),
        "Files": str(len(report.created_paths)),
        "Modified by modules": str(len(report.modified_paths)),
        "Duration": format_duration(report.duration_seconds),
    }
    title = "Dry Run" if report.dry_run else "Generation Summary"
    print_summary_table(summary, title=title)

    for ecosystem, packages in report.dependencies.items():
        if packages:
            print_summary_table(dict(packages), title=f"{ecosystem} dependencies")

    if report.environment_variables:
        console.print("[bold]Environment variables[/bold]")
        for decl in report.environment_variables:
            flag = " [red](required)[/red]" if decl.required else ""
            console.print(f"  {decl.name}{flag} [dim]{decl.description}[/dim]")
        console.print()

    for notice in report.notices:
        print_warning(notice.message)
