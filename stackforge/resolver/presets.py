"""Preset expansion.

Presets are named module bundles.  They are expanded into an explicit module
set before resolution; per-request additions and exclusions are applied
afterwards, so explicit overrides always win over preset membership.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from stackforge.catalog import Catalog, Preset
from stackforge.errors import UnknownReference


class PresetManager:
    """Expands presets against a catalog."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def expand(
        self,
        preset_id: Optional[str] = None,
        modules: Iterable[str] = (),
        exclude: Iterable[str] = (),
    ) -> frozenset[str]:
        """Return the explicit module selection for a request.

        Args:
            preset_id: Optional preset whose members seed the selection.
            modules: Extra module ids to add.
            exclude: Module ids to drop, even if the preset lists them.

        Raises:
            UnknownReference: If *preset_id* is not in the catalog.
        """
        selected: set[str] = set()
        if preset_id is not None:
            if not self.catalog.has_preset(preset_id):
                raise UnknownReference("preset", preset_id)
            selected |= self.catalog.get_preset(preset_id).modules
        selected |= set(modules)
        selected -= set(exclude)
        return frozenset(selected)

    def recommended(self) -> list[Preset]:
        """Presets flagged as recommended, in declaration order."""
        return [p for p in self.catalog.list_presets() if p.recommended]
