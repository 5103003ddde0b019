"""Data models for the transfer engine contract."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from harborsync.models.config import BackupMode, MediaFilter, SortOrder, TransferMode


@dataclass
class DryRunPlan:
    """Planned actions computed by a plan-only run"""

    planned_uploads: int = 0
    would_skip_existing: int = 0
    would_replace_existing: int = 0
    items_scanned: int = 0
    notes: List[str] = field(default_factory=list)

    @property
    def would_upload(self) -> int:
        """Uploads that are neither skips nor replacements"""
        return max(
            0,
            self.planned_uploads
            - self.would_skip_existing
            - self.would_replace_existing,
        )


@dataclass
class TransferOptions:
    """Options handed to a transfer engine for one run"""

    sources: List[Path] = field(default_factory=list)
    folder_destination: Optional[Path] = None
    server_url: Optional[str] = None
    api_key: Optional[str] = None
    device_id: Optional[str] = None
    run_id: Optional[str] = None
    temp_dir: Optional[Path] = None
    mode: TransferMode = TransferMode.ORIGINALS
    media: MediaFilter = MediaFilter.ALL
    sort_order: SortOrder = SortOrder.OLDEST
    backup_mode: BackupMode = BackupMode.SMART_INCREMENTAL
    limit: Optional[int] = None
    dry_run: bool = False
    include_hidden_files: bool = False
    follow_symlinks: bool = False
    request_timeout_seconds: float = 300.0


@dataclass
class TransferResult:
    """Outcome reported by a transfer engine when its run ends"""

    attempted: int = 0
    completed: int = 0
    skipped: int = 0
    errors: int = 0
    was_paused: bool = False
    pause_index: Optional[int] = None
    processed_item_ids: Set[str] = field(default_factory=set)
    error_item_ids: Set[str] = field(default_factory=set)
    dry_run_plan: Optional[DryRunPlan] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "attempted": self.attempted,
            "completed": self.completed,
            "skipped": self.skipped,
            "errors": self.errors,
            "was_paused": self.was_paused,
            "pause_index": self.pause_index,
            "processed": len(self.processed_item_ids),
            "error_items": len(self.error_item_ids),
        }
