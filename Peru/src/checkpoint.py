"""File-backed checkpoints for resumable category runs."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .config import CHECKPOINT_DIR, setup_logging
from .models import CanonicalCandidate, Checkpoint

logger = setup_logging(__name__)


class CheckpointStore:
    """
    One JSON file per listing category holding the unprocessed queue.

    A file exists only while its category is incomplete.
    """

    def __init__(self, directory: Path = CHECKPOINT_DIR):
        self.directory = Path(directory)

    def path_for(self, category: str) -> Path:
        return self.directory / f"{category}.json"

    def load(self, category: str) -> Optional[Checkpoint]:
        """
        Read the checkpoint for a category.

        Args:
            category: Category key

        Returns:
            Checkpoint, or None when absent or unreadable
        """
        path = self.path_for(category)
        if not path.exists():
            return None
        try:
            checkpoint = Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {path}: {e}")
            return None
        logger.info(
            f"Loaded checkpoint for {category}: {len(checkpoint.remaining_items)} remaining, "
            f"{checkpoint.processed_count} processed ({checkpoint.timestamp.isoformat()})"
        )
        return checkpoint

    def save(self, category: str, remaining_items: List[CanonicalCandidate], processed_count: int,
             failed_refs: Optional[List[str]] = None) -> Checkpoint:
        """Atomically write the checkpoint for a category."""
        checkpoint = Checkpoint(
            category=category,
            remaining_items=list(remaining_items),
            processed_count=processed_count,
            failed_refs=list(failed_refs or []),
            timestamp=datetime.now(timezone.utc),
        )
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(category)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{category}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(checkpoint.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(f"Checkpoint saved for {category}: {len(checkpoint.remaining_items)} remaining")
        return checkpoint

    def clear(self, category: str) -> None:
        path = self.path_for(category)
        if path.exists():
            path.unlink()
            logger.info(f"Checkpoint cleared for {category}")

    def pending_categories(self) -> List[str]:
        """Categories that still have a checkpoint on disk."""
        if not self.directory.exists():
            return []
        return sorted(path.stem for path in self.directory.glob("*.json"))
