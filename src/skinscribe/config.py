"""Runtime configuration for skinscribe.

Everything lives under ``~/.skinscribe/`` by default. Values can be
overridden with ``SKINSCRIBE_*`` environment variables or, for the CLI,
with ``--data-dir``.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_SKINSCRIBE_DIR = Path.home() / ".skinscribe"

_ENV_PREFIX = "SKINSCRIBE_"


class InscribeConfig(BaseModel):
    """Configuration for compositing passes and the artifact store.

    Attributes:
        data_dir: Root directory for output artifacts and audit records.
        source_root: Directory that non-URL document references resolve
            against. Defaults to ``<data_dir>/sources``.
        public_base_url: When set, output locations are reported as
            ``<public_base_url>/api/outputs/<filename>`` instead of paths.
        fetch_timeout_seconds: Upper bound on source retrieval.
        max_fields: Maximum number of fields accepted per pass.
        max_image_bytes: Maximum decoded size of one image payload.
        text_font: Font name used for text and date fields. One of the
            standard PDF fonts unless ``text_font_path`` is set.
        text_font_path: TrueType file registered under ``text_font`` for
            scripts the standard fonts cannot encode.
        text_font_size: Font size for text and date fields.
        baseline_offset: Distance from the box top to the text baseline.
    """

    data_dir: Path = DEFAULT_SKINSCRIBE_DIR
    source_root: Optional[Path] = None
    public_base_url: Optional[str] = None
    fetch_timeout_seconds: float = Field(30.0, gt=0)
    max_fields: int = Field(500, gt=0)
    max_image_bytes: int = Field(10 * 1024 * 1024, gt=0)
    text_font: str = "Helvetica"
    text_font_path: Optional[Path] = None
    text_font_size: float = 12
    baseline_offset: float = 10

    @property
    def resolved_source_root(self) -> Path:
        """Directory that local document references are read from."""
        return self.source_root or self.data_dir / "sources"

    @classmethod
    def from_env(cls, **overrides) -> "InscribeConfig":
        """Build a config from ``SKINSCRIBE_*`` environment variables.

        Explicit keyword overrides win over the environment; ``None``
        overrides are ignored.
        """
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.environ.get(_ENV_PREFIX + name.upper())
            if raw:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
