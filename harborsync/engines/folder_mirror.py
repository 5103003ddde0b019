"""Folder mirror engine: copies local file trees into a destination folder.

Behaviour by backup mode:
- full: every file is copied
- smart_incremental: files whose size and mtime match the manifest and
  that still exist at the destination are skipped
- mirror: like smart_incremental, then files the run did not see are
  deleted from the destination (only when the run went through every item)

Files are copied to a temp file inside the destination and then renamed
into place, so a reader never observes a half-written file.
"""

import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Tuple

import structlog

from harborsync.engines.base import ProgressCallback, RunStatePoller, TransferEngine
from harborsync.engines.manifest import (
    ManifestEntry,
    ManifestStore,
    file_signature,
    manifest_path,
)
from harborsync.models.checkpoint import SessionCheckpoint
from harborsync.models.config import BackupMode, MediaFilter, SortOrder
from harborsync.models.events import (
    ItemOutcome,
    ItemOutcomeEvent,
    ItemProgressEvent,
    MessageEvent,
    PausedEvent,
    ScanningEvent,
    WillProcessEvent,
)
from harborsync.models.transfer import DryRunPlan, TransferOptions, TransferResult
from harborsync.orchestration.run_state import RunState
from harborsync.utils.exceptions import TransferEngineError

logger = structlog.get_logger()

TEMP_DIRNAME = ".harborsync-tmp"
ITEM_PREFIX = "file:"

IMAGE_EXTENSIONS = frozenset(
    {
        ".jpg", ".jpeg", ".png", ".gif", ".heic", ".heif", ".tif", ".tiff",
        ".bmp", ".webp", ".dng", ".raw", ".cr2", ".nef", ".arw",
    }
)
VIDEO_EXTENSIONS = frozenset(
    {".mov", ".mp4", ".m4v", ".avi", ".mkv", ".3gp", ".mts", ".webm"}
)


@dataclass
class SourceFile:
    """One file found while scanning"""

    root: Path
    path: Path
    rel_path: str
    size: int
    mtime: float

    @property
    def item_id(self) -> str:
        return f"{ITEM_PREFIX}{self.rel_path}"

    @property
    def signature(self) -> str:
        return file_signature(self.size, self.mtime)


def matches_media(path: Path, media: MediaFilter) -> bool:
    if media == MediaFilter.ALL:
        return True
    ext = path.suffix.lower()
    if media == MediaFilter.IMAGES:
        return ext in IMAGE_EXTENSIONS
    return ext in VIDEO_EXTENSIONS


def _is_hidden(rel_parts: List[str]) -> bool:
    return any(part.startswith(".") for part in rel_parts)


class FolderMirrorEngine(TransferEngine):
    """Transfer engine for file trees copied into a local folder"""

    @property
    def name(self) -> str:
        return "folder_mirror"

    def scan(
        self, options: TransferOptions, poll_run_state: RunStatePoller
    ) -> List[SourceFile]:
        """Enumerate source files in processing order"""
        files: List[SourceFile] = []
        destination = (
            Path(options.folder_destination).resolve()
            if options.folder_destination
            else None
        )

        for root in options.sources:
            root = Path(root)
            if not root.is_dir():
                logger.warning("source_missing", source=str(root))
                continue

            for dirpath, dirnames, filenames in os.walk(
                root, followlinks=options.follow_symlinks
            ):
                if poll_run_state() == RunState.CANCELLED:
                    return files

                current = Path(dirpath)
                if destination is not None and current.resolve() == destination:
                    # Never back up the destination into itself
                    dirnames[:] = []
                    continue
                if not options.include_hidden_files:
                    dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                dirnames.sort()

                for filename in sorted(filenames):
                    path = current / filename
                    rel = path.relative_to(root)
                    if not options.include_hidden_files and _is_hidden(list(rel.parts)):
                        continue
                    if not options.follow_symlinks and path.is_symlink():
                        continue
                    if not matches_media(path, options.media):
                        continue
                    try:
                        stat = path.stat()
                    except OSError as e:
                        logger.warning("source_stat_failed", path=str(path), error=str(e))
                        continue
                    files.append(
                        SourceFile(
                            root=root,
                            path=path,
                            rel_path=rel.as_posix(),
                            size=stat.st_size,
                            mtime=stat.st_mtime,
                        )
                    )

        files.sort(
            key=lambda f: (f.mtime, f.rel_path),
            reverse=options.sort_order == SortOrder.NEWEST,
        )
        if options.limit is not None:
            files = files[: options.limit]
        return files

    def run(
        self,
        options: TransferOptions,
        on_progress: ProgressCallback,
        poll_run_state: RunStatePoller,
        resume_from: Optional[SessionCheckpoint] = None,
    ) -> TransferResult:
        if options.folder_destination is None:
            raise TransferEngineError("No folder destination configured")

        destination = Path(options.folder_destination)
        run_id = options.run_id or uuid.uuid4().hex

        if options.dry_run:
            return self._plan(options, destination, on_progress, poll_run_state)

        try:
            destination.mkdir(parents=True, exist_ok=True)
            manifest = ManifestStore.for_destination(destination)
        except Exception as e:
            on_progress(
                MessageEvent(
                    text="ERROR Files: could not open manifest; skipping folder file backup."
                )
            )
            raise TransferEngineError(f"Could not open manifest: {e}") from e

        try:
            return self._copy_all(
                options,
                destination,
                manifest,
                run_id,
                on_progress,
                poll_run_state,
                resume_from,
            )
        finally:
            manifest.close()
            _remove_if_empty(destination / TEMP_DIRNAME)

    def _copy_all(
        self,
        options: TransferOptions,
        destination: Path,
        manifest: ManifestStore,
        run_id: str,
        on_progress: ProgressCallback,
        poll_run_state: RunStatePoller,
        resume_from: Optional[SessionCheckpoint],
    ) -> TransferResult:
        result = TransferResult()
        already_done: Set[str] = (
            set(resume_from.processed_item_ids) if resume_from else set()
        )

        on_progress(ScanningEvent())
        files = self.scan(options, poll_run_state)
        total = len(files)
        on_progress(WillProcessEvent(total=total))

        stopped_early = False
        for index, source in enumerate(files):
            state = poll_run_state()
            if state == RunState.PAUSED:
                result.was_paused = True
                result.pause_index = index
                on_progress(PausedEvent(at=index, total=total))
                stopped_early = True
                break
            if state == RunState.CANCELLED:
                stopped_early = True
                break

            item_id = source.item_id
            if item_id in already_done:
                continue

            result.attempted += 1
            on_progress(
                ItemProgressEvent(
                    index=index + 1, total=total, item_id=item_id, name=source.rel_path
                )
            )

            outcome, error = self._copy_one(
                options, destination, manifest, run_id, source
            )
            if outcome is ItemOutcome.SKIPPED:
                result.skipped += 1
                on_progress(ItemOutcomeEvent(outcome=outcome, item_id=item_id))
            elif outcome is ItemOutcome.UPLOADED:
                result.completed += 1
                on_progress(ItemOutcomeEvent(outcome=outcome, item_id=item_id))
            else:
                result.errors += 1
                result.error_item_ids.add(item_id)
                on_progress(
                    ItemOutcomeEvent(
                        outcome=ItemOutcome.ERROR,
                        item_id=item_id,
                        message=f"ERROR Files: {error}",
                    )
                )
            result.processed_item_ids.add(item_id)

        # A limited or interrupted pass has not seen every source file
        if (
            options.backup_mode == BackupMode.MIRROR
            and not stopped_early
            and options.limit is None
        ):
            self._delete_unseen(destination, manifest, run_id, result, on_progress)

        logger.info("folder_backup_finished", destination=str(destination), **result.to_dict())
        return result

    def _copy_one(
        self,
        options: TransferOptions,
        destination: Path,
        manifest: ManifestStore,
        run_id: str,
        source: SourceFile,
    ) -> Tuple[ItemOutcome, Optional[str]]:
        dest_path = destination / source.rel_path
        entry = ManifestEntry(
            key=source.item_id,
            rel_path=source.rel_path,
            signature=source.signature,
            size=source.size,
            mtime=source.mtime,
            last_seen_run_id=run_id,
        )

        if options.backup_mode != BackupMode.FULL and self._is_unchanged(
            manifest, destination, source
        ):
            try:
                manifest.upsert(entry)
            except Exception as e:
                return ItemOutcome.ERROR, f"manifest update failed: {e}"
            return ItemOutcome.SKIPPED, None

        temp_path = destination / TEMP_DIRNAME / f".tmp-{uuid.uuid4().hex}"
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source.path, temp_path)
            os.replace(temp_path, dest_path)
        except OSError as e:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass
            return ItemOutcome.ERROR, f"copy failed for {source.rel_path}: {e}"

        try:
            manifest.upsert(entry)
        except Exception as e:
            return ItemOutcome.ERROR, f"manifest update failed: {e}"
        return ItemOutcome.UPLOADED, None

    @staticmethod
    def _is_unchanged(
        manifest: ManifestStore, destination: Path, source: SourceFile
    ) -> bool:
        existing = manifest.get(source.item_id)
        if existing is None or not existing.is_live:
            return False
        return (
            existing.signature == source.signature
            and (destination / existing.rel_path).exists()
        )

    def _delete_unseen(
        self,
        destination: Path,
        manifest: ManifestStore,
        run_id: str,
        result: TransferResult,
        on_progress: ProgressCallback,
    ) -> None:
        deleted = 0
        for key in manifest.keys_not_seen(run_id):
            if not key.startswith(ITEM_PREFIX):
                continue
            entry = manifest.get(key)
            if entry is None or not entry.is_live:
                continue
            path = destination / entry.rel_path
            if path.exists():
                try:
                    path.unlink()
                    manifest.mark_deleted(key)
                    deleted += 1
                except OSError as e:
                    result.errors += 1
                    on_progress(
                        MessageEvent(text=f"ERROR Files: delete failed for {entry.rel_path}: {e}")
                    )
            else:
                manifest.mark_deleted(key)

        if deleted:
            on_progress(MessageEvent(text=f"Files: mirror removed {deleted} file(s)"))

    def _plan(
        self,
        options: TransferOptions,
        destination: Path,
        on_progress: ProgressCallback,
        poll_run_state: RunStatePoller,
    ) -> TransferResult:
        """Work out what a real run would do without writing anything"""
        on_progress(ScanningEvent())
        files = self.scan(options, poll_run_state)
        on_progress(WillProcessEvent(total=len(files)))

        manifest: Optional[ManifestStore] = None
        if manifest_path(destination).exists():
            manifest = ManifestStore(manifest_path(destination))

        plan = DryRunPlan(items_scanned=len(files), planned_uploads=len(files))
        try:
            for source in files:
                dest_exists = (destination / source.rel_path).exists()
                if (
                    options.backup_mode != BackupMode.FULL
                    and manifest is not None
                    and self._is_unchanged(manifest, destination, source)
                ):
                    plan.would_skip_existing += 1
                elif dest_exists:
                    plan.would_replace_existing += 1

            if options.backup_mode == BackupMode.MIRROR and manifest is not None:
                seen = {f.item_id for f in files}
                stale = [
                    k
                    for k in manifest.live_keys()
                    if k.startswith(ITEM_PREFIX) and k not in seen
                ]
                if stale:
                    plan.notes.append(
                        f"mirror mode would delete {len(stale)} file(s) from the destination"
                    )
        finally:
            if manifest is not None:
                manifest.close()

        if manifest is None and options.backup_mode != BackupMode.FULL:
            plan.notes.append("no manifest in destination yet; every file counts as new")
        if not destination.exists():
            plan.notes.append(f"destination {destination} does not exist yet")

        return TransferResult(
            attempted=len(files),
            dry_run_plan=plan,
        )


def _remove_if_empty(path: Path) -> None:
    try:
        path.rmdir()
    except OSError:
        pass
