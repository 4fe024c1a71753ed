"""Project composition: variable binding, merging and materialization."""

from stackforge.composer.materializer import Materializer, OutputStatus, output_status
from stackforge.composer.merger import MergeResult, Notice, ProjectTree, TreeEntry, TreeMerger
from stackforge.composer.templates import TemplateRenderer
from stackforge.composer.variables import RESERVED_NAMES, VariableBinder, project_defaults
from stackforge.composer.versions import VersionRange, merge_constraints, parse_constraint

__all__ = [
    "Materializer",
    "MergeResult",
    "Notice",
    "OutputStatus",
    "ProjectTree",
    "RESERVED_NAMES",
    "TemplateRenderer",
    "TreeEntry",
    "TreeMerger",
    "VariableBinder",
    "VersionRange",
    "merge_constraints",
    "output_status",
    "parse_constraint",
    "project_defaults",
]
