"""Export module for PCON."""

from pcon.export.manifest import generate_manifest, save_manifest
from pcon.export.project import ProjectRewriter, RewriteResult

__all__ = [
    "ProjectRewriter",
    "RewriteResult",
    "generate_manifest",
    "save_manifest",
]
