"""Post-generation passes: import rewriting, headers and package markers."""

from .header import HeaderWriter
from .imports import ImportRewriter, ModuleIndex, RewriteError, RewriteIssue
from .packages import AssemblyError, PackageAssembler, package_nodes

__all__ = [
    "AssemblyError",
    "HeaderWriter",
    "ImportRewriter",
    "ModuleIndex",
    "PackageAssembler",
    "RewriteError",
    "RewriteIssue",
    "package_nodes",
]
