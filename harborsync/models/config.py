from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from harborsync.models.checkpoint import ConfigSnapshot
from harborsync.models.notification import NotificationSettings
from harborsync.models.schedule import DisabledPolicy, SchedulePolicy


class DestinationMode(str, Enum):
    FOLDER = "folder"
    SERVER = "server"
    BOTH = "both"


class TransferMode(str, Enum):
    """Which variant of each asset to transfer"""

    ORIGINALS = "originals"
    EDITED = "edited"
    BOTH = "both"


class MediaFilter(str, Enum):
    ALL = "all"
    IMAGES = "images"
    VIDEOS = "videos"


class SortOrder(str, Enum):
    OLDEST = "oldest"
    NEWEST = "newest"


class BackupMode(str, Enum):
    FULL = "full"  # Always transfer
    SMART_INCREMENTAL = "smart_incremental"  # Skip unchanged items
    MIRROR = "mirror"  # Incremental, plus delete what vanished from sources


class BackupSettings(BaseModel):
    """What to back up and where"""

    destination_mode: DestinationMode = DestinationMode.FOLDER
    sources: List[Path] = Field(default_factory=list)
    folder_destination: Optional[Path] = None
    server_url: Optional[str] = Field(
        default=None, description="Asset server base URL from ${HARBOR_SERVER_URL}"
    )
    api_key: Optional[str] = Field(
        default=None, description="Asset server API key from ${HARBOR_API_KEY}"
    )
    mode: TransferMode = TransferMode.ORIGINALS
    media: MediaFilter = MediaFilter.ALL
    sort_order: SortOrder = SortOrder.OLDEST
    backup_mode: BackupMode = BackupMode.SMART_INCREMENTAL
    limit: Optional[int] = Field(default=None, ge=1)
    include_hidden_files: bool = False
    follow_symlinks: bool = False
    request_timeout_seconds: float = Field(300.0, ge=1.0, le=3600.0)

    @field_validator("server_url")
    @classmethod
    def normalize_server_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().rstrip("/")
        if not v:
            return None
        if "://" not in v:
            v = f"http://{v}"
        return v

    @property
    def uses_folder(self) -> bool:
        return self.destination_mode in (DestinationMode.FOLDER, DestinationMode.BOTH)

    @property
    def uses_server(self) -> bool:
        return self.destination_mode in (DestinationMode.SERVER, DestinationMode.BOTH)

    def start_blockers(self) -> List[str]:
        """Reasons a run cannot start with these settings (empty when ready)"""
        blockers: List[str] = []
        if self.uses_folder and self.folder_destination is None:
            blockers.append("folder_destination is not set")
        if self.uses_server and not (self.server_url and self.api_key):
            blockers.append("server_url and api_key are required")
        return blockers

    def snapshot(self, device_id: Optional[str]) -> ConfigSnapshot:
        """Describe these settings for resume compatibility checks"""
        return ConfigSnapshot(
            mode=self.mode.value,
            media=self.media.value,
            sort_order=self.sort_order.value,
            backup_mode=self.backup_mode.value,
            server_url=self.server_url if self.uses_server else None,
            device_id=device_id if self.uses_server else None,
            folder_destination=(
                str(self.folder_destination)
                if self.uses_folder and self.folder_destination
                else None
            ),
        )


class StateSettings(BaseModel):
    """Where HarborSync keeps its own state"""

    state_dir: Path = Path("./state")
    temp_dir: Optional[Path] = None

    @property
    def resolved_temp_dir(self) -> Path:
        return self.temp_dir or (self.state_dir / "tmp")


class LogSettings(BaseModel):
    """Logging and log-feed retention"""

    level: str = Field("INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    json_output: bool = False
    max_log_lines: int = Field(10_000, ge=100, le=1_000_000)
    max_error_lines: int = Field(5_000, ge=10, le=1_000_000)
    display_lines: int = Field(500, ge=10, le=10_000)
    flush_interval_seconds: float = Field(0.15, ge=0.01, le=10.0)

    @model_validator(mode="after")
    def validate_display_lines(self) -> "LogSettings":
        if self.display_lines > self.max_log_lines:
            raise ValueError("display_lines cannot exceed max_log_lines")
        return self


class HarborConfig(BaseModel):
    """Root configuration object"""

    backup: BackupSettings = Field(default_factory=BackupSettings)
    schedule: SchedulePolicy = Field(default_factory=DisabledPolicy)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    logging: LogSettings = Field(default_factory=LogSettings)
