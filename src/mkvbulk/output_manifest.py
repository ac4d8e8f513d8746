"""Remember which output file each source produced.

The manifest lives in the output directory. On a re-run a source whose
recorded output still exists is written to the same path again instead of
getting a new ``" (n)"`` suffix, so repeated batches over an unchanged tree
leave the same set of files behind. Files the manifest does not list are
never replaced.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .utils import ensure_directory

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = ".mkvbulk-manifest.json"
MANIFEST_VERSION = 1


@dataclass
class OutputManifest:
    """Source path -> output path of the last successful remux."""

    outputs: Dict[str, str] = field(default_factory=dict)
    _dirty: bool = field(default=False, repr=False)

    def output_for(self, source: Path) -> Optional[Path]:
        recorded = self.outputs.get(str(source))
        return Path(recorded) if recorded else None

    def record(self, source: Path, output_path: Path) -> None:
        key = str(source)
        if self.outputs.get(key) == str(output_path):
            return
        self.outputs[key] = str(output_path)
        self._dirty = True

    @property
    def is_dirty(self) -> bool:
        return self._dirty


class OutputManifestStore:
    """Persistent storage for the output manifest of one output directory."""

    def __init__(self, output_dir: Path, filename: str = MANIFEST_NAME) -> None:
        self.output_dir = output_dir
        self.manifest_file = output_dir / filename
        self._manifest: Optional[OutputManifest] = None

    @property
    def manifest(self) -> OutputManifest:
        if self._manifest is None:
            self._manifest = self._load()
        return self._manifest

    def _load(self) -> OutputManifest:
        if not self.manifest_file.exists():
            LOGGER.debug("Output manifest not found at %s, starting fresh", self.manifest_file)
            return OutputManifest()

        try:
            with self.manifest_file.open("r", encoding="utf-8") as handle:
                data: Any = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Failed to load output manifest %s: %s", self.manifest_file, exc)
            return OutputManifest()

        raw = data.get("outputs") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            LOGGER.warning("Ignoring output manifest %s: no 'outputs' mapping", self.manifest_file)
            return OutputManifest()

        outputs = {
            str(source): str(output)
            for source, output in raw.items()
            if isinstance(source, str) and isinstance(output, str) and output
        }
        return OutputManifest(outputs=outputs)

    def output_for(self, source: Path) -> Optional[Path]:
        return self.manifest.output_for(source)

    def record(self, source: Path, output_path: Path) -> None:
        self.manifest.record(source, output_path)

    def save(self) -> None:
        if self._manifest is None or not self._manifest.is_dirty:
            return

        data: Dict[str, Any] = {
            "version": MANIFEST_VERSION,
            "outputs": dict(sorted(self._manifest.outputs.items())),
        }
        try:
            ensure_directory(self.manifest_file.parent)
            with self.manifest_file.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            self._manifest._dirty = False
            LOGGER.debug("Saved output manifest to %s", self.manifest_file)
        except OSError as exc:
            LOGGER.warning("Failed to save output manifest %s: %s", self.manifest_file, exc)
