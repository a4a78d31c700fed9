"""Project data access: every read and write under ``<project>/.broll-index/``."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from brollindex.catalog import CatalogIndex, now_iso
from brollindex.taxonomy import Taxonomy
from brollindex.types import VIDEO_EXTENSIONS

BROLL_DIR = ".broll-index"


def _write_json_atomic(path: Path, data: Any) -> None:
    """Rewrite *path* in full via a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class ProjectStore:
    """Storage for one project folder.

    Args:
        folder: The project's video folder. Catalog data lives in its
            ``.broll-index`` subdirectory.
    """

    def __init__(self, folder: str | Path):
        self.folder = Path(folder).resolve()

    @property
    def data_dir(self) -> Path:
        return self.folder / BROLL_DIR

    @property
    def index_path(self) -> Path:
        return self.data_dir / "index.json"

    @property
    def taxonomy_path(self) -> Path:
        return self.data_dir / "taxonomy.json"

    @property
    def thumbnails_dir(self) -> Path:
        return self.data_dir / "thumbnails"

    def ensure_dirs(self) -> None:
        self.thumbnails_dir.mkdir(parents=True, exist_ok=True)

    def load_index(self) -> CatalogIndex:
        if self.index_path.exists():
            return CatalogIndex.from_dict(json.loads(self.index_path.read_text(encoding="utf-8")))
        return CatalogIndex()

    def save_index(self, index: CatalogIndex) -> None:
        index.last_updated = now_iso()
        _write_json_atomic(self.index_path, index.to_dict())

    def load_taxonomy(self) -> Taxonomy | None:
        if self.taxonomy_path.exists():
            return Taxonomy.from_dict(json.loads(self.taxonomy_path.read_text(encoding="utf-8")))
        return None

    def save_taxonomy(self, taxonomy: Taxonomy) -> None:
        _write_json_atomic(self.taxonomy_path, taxonomy.to_dict())

    def list_videos(self) -> list[str]:
        """Video filenames directly inside the project folder, sorted by name."""
        return sorted(
            p.name for p in self.folder.iterdir()
            if p.is_file() and p.suffix.lower() in VIDEO_EXTENSIONS
        )
