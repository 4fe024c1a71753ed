"""All-or-nothing materialization of a merged project tree.

Files are written into a staging directory created next to the output
directory (same filesystem, so the final ``os.replace`` is a rename), with
writes running concurrently in worker threads.  The output directory only
changes at the commit step; any failure before that leaves it untouched.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import stat
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional

from stackforge.composer.merger import ProjectTree, TreeEntry
from stackforge.config import Config
from stackforge.errors import GenerationCancelled, MaterializationIOError, OutputNotEmpty


class OutputStatus(str, Enum):
    MISSING = "missing"
    EMPTY = "empty"
    NOT_EMPTY = "not_empty"


def output_status(output_dir: str | Path) -> OutputStatus:
    """Describe what currently exists at *output_dir*."""
    path = Path(output_dir)
    if not path.exists():
        return OutputStatus.MISSING
    if not path.is_dir():
        raise MaterializationIOError(path, "exists and is not a directory")
    if any(path.iterdir()):
        return OutputStatus.NOT_EMPTY
    return OutputStatus.EMPTY


class Materializer:
    """Writes a :class:`ProjectTree` to disk atomically."""

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()

    async def materialize(
        self,
        tree: ProjectTree,
        output_dir: str | Path,
        *,
        force: bool = False,
        dry_run: bool = False,
        cancel: Optional[asyncio.Event] = None,
    ) -> list[str]:
        """Write *tree* into *output_dir*.

        Args:
            tree: Fully merged project tree.
            output_dir: Final destination directory.
            force: Replace a non-empty output directory.
            dry_run: Validate the destination but write nothing.
            cancel: When set before the commit, staging is discarded and
                ``GenerationCancelled`` is raised.

        Returns:
            The relative paths that were (or, for a dry run, would be) written.
        """
        output = Path(output_dir).absolute()
        status = output_status(output)
        if status is OutputStatus.NOT_EMPTY and not force:
            raise OutputNotEmpty(output)
        if dry_run:
            return tree.paths()
        _raise_if_cancelled(cancel)

        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(
                tempfile.mkdtemp(prefix=self.config.staging_prefix, dir=output.parent)
            )
            # mkdtemp creates 0700; the committed project gets normal permissions
            staging.chmod(0o755)
        except OSError as exc:
            raise MaterializationIOError(output.parent, exc.strerror or str(exc)) from exc

        try:
            await self._write_all(tree, staging)
            _raise_if_cancelled(cancel)
            await asyncio.to_thread(self._commit, staging, output, status)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        return tree.paths()

    async def _write_all(self, tree: ProjectTree, staging: Path) -> None:
        semaphore = asyncio.Semaphore(self.config.max_write_workers)

        async def write(path: str, entry: TreeEntry) -> None:
            async with semaphore:
                await asyncio.to_thread(_write_entry, staging, path, entry)

        results = await asyncio.gather(
            *(write(path, entry) for path, entry in tree.items()),
            return_exceptions=True,
        )
        # gather() keeps path order, so the reported failure is deterministic
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def _commit(self, staging: Path, output: Path, status: OutputStatus) -> None:
        backup: Optional[Path] = None
        try:
            if status is not OutputStatus.MISSING:
                # an existing directory, empty or not, is moved aside until the swap succeeds
                backup = Path(
                    tempfile.mkdtemp(
                        prefix=f"{self.config.staging_prefix}backup-", dir=output.parent
                    )
                )
                backup.rmdir()
                os.replace(output, backup)
            os.replace(staging, output)
        except OSError as exc:
            reason = exc.strerror or str(exc)
            if backup is not None and backup.exists() and not output.exists():
                try:
                    os.replace(backup, output)
                except OSError as restore_exc:
                    reason = (
                        f"{reason}; previous output left at {backup} "
                        f"({restore_exc.strerror or restore_exc})"
                    )
            raise MaterializationIOError(output, reason) from exc

        if backup is not None:
            shutil.rmtree(backup, ignore_errors=True)


def _raise_if_cancelled(cancel: Optional[asyncio.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise GenerationCancelled("Generation cancelled before commit")


def _write_entry(staging: Path, relative: str, entry: TreeEntry) -> None:
    target = staging / relative
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(entry.data())
        if entry.executable:
            mode = target.stat().st_mode
            target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as exc:
        raise MaterializationIOError(relative, exc.strerror or str(exc)) from exc
