"""broll-index: find reusable B-roll in raw footage and catalog it.

Videos in a project folder are classified by Gemini, accepted segments get
animated previews, and the results are merged into a per-project clip index.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from brollindex.catalog import CatalogIndex
from brollindex.jobs import AnalysisJob, JobRegistry, LogBuffer
from brollindex.taxonomy import Taxonomy
from brollindex.types import AnalysisConfig, Clip, Segment, VideoAsset

if TYPE_CHECKING:
    from brollindex.pipeline import AnalysisPipeline, RunSummary, build_pipeline
    from brollindex.verifier import ThumbnailVerifier


def __getattr__(name: str):
    """Lazy imports for modules that require opencv-python."""
    _cv2_exports = {
        "AnalysisPipeline": "brollindex.pipeline",
        "RunSummary": "brollindex.pipeline",
        "build_pipeline": "brollindex.pipeline",
        "ThumbnailVerifier": "brollindex.verifier",
    }
    if name in _cv2_exports:
        import importlib

        module = importlib.import_module(_cv2_exports[name])
        return getattr(module, name)
    raise AttributeError(f"module 'brollindex' has no attribute {name!r}")


__all__ = [
    "AnalysisConfig",
    "AnalysisJob",
    "AnalysisPipeline",
    "CatalogIndex",
    "Clip",
    "JobRegistry",
    "LogBuffer",
    "RunSummary",
    "Segment",
    "Taxonomy",
    "ThumbnailVerifier",
    "VideoAsset",
    "build_pipeline",
]
