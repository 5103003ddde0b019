"""Transfer engines.

Usage:
    from harborsync.engines import FolderMirrorEngine

    engine = FolderMirrorEngine()
    result = engine.run(options, on_progress, poll_run_state)
"""

from harborsync.engines.base import TransferEngine
from harborsync.engines.folder_mirror import FolderMirrorEngine
from harborsync.engines.manifest import ManifestEntry, ManifestStore

__all__ = [
    "TransferEngine",
    "FolderMirrorEngine",
    "ManifestEntry",
    "ManifestStore",
]
