"""Progress events emitted by transfer engines.

Engines report through a single callback that receives one of the event
models below. ``ItemOutcomeEvent`` carries an explicit item id and is the
preferred way to report per-item results; ``MessageEvent`` is free text
that the classifier parses heuristically.
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ItemOutcome(str, Enum):
    UPLOADED = "uploaded"
    SKIPPED = "skipped"
    ERROR = "error"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class ScanningEvent(_Event):
    """Engine started enumerating its sources"""

    kind: Literal["scanning"] = "scanning"


class WillProcessEvent(_Event):
    """Enumeration finished; ``total`` items will be processed"""

    kind: Literal["will_process"] = "will_process"
    total: int = Field(..., ge=0)


class ItemProgressEvent(_Event):
    """Engine moved on to item ``index`` (1-based) of ``total``"""

    kind: Literal["item_progress"] = "item_progress"
    index: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    item_id: str
    name: str = ""


class ItemOutcomeEvent(_Event):
    """Structured per-item result"""

    kind: Literal["item_outcome"] = "item_outcome"
    outcome: ItemOutcome
    item_id: Optional[str] = None
    message: Optional[str] = None


class MessageEvent(_Event):
    """Free-form status or log line"""

    kind: Literal["message"] = "message"
    text: str


class RetryingEvent(_Event):
    """A transfer is about to be retried"""

    kind: Literal["retrying"] = "retrying"
    item_id: str
    name: str = ""
    attempt: int = Field(..., ge=1)
    max_attempts: int = Field(..., ge=1)
    delay_seconds: float = Field(0.0, ge=0.0)
    reason: str = ""


class RemoteCheckEvent(_Event):
    """Progress of the destination-side existence check"""

    kind: Literal["remote_check"] = "remote_check"
    checked: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


class PausedEvent(_Event):
    """Engine noticed the pause request and stopped after item ``at``"""

    kind: Literal["paused"] = "paused"
    at: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


ProgressEvent = Union[
    ScanningEvent,
    WillProcessEvent,
    ItemProgressEvent,
    ItemOutcomeEvent,
    MessageEvent,
    RetryingEvent,
    RemoteCheckEvent,
    PausedEvent,
]
