"""Filesystem storage for rendered claim documents."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


def _safe_segment(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", value).lstrip(".") or "_"


class DocumentStore:
    """Stores PDFs under <root>/<user>/<record>_<timestamp>.pdf."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def save(self, user_id: str, record_id: str, content: bytes) -> str:
        """Write the document; returns its reference (path relative to the root)."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        relative = Path(_safe_segment(user_id)) / f"{_safe_segment(record_id)}_{timestamp}.pdf"
        target = self.path_for(relative.as_posix())
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info("Saved claim document %s (%d bytes)", relative, len(content))
        return relative.as_posix()

    def path_for(self, reference: str) -> Path:
        """Resolve a reference, refusing anything outside the root."""
        root = self.root.resolve()
        path = (root / reference).resolve()
        if root not in path.parents:
            raise ValueError(f"Invalid document reference: {reference}")
        return path
