"""
On-disk workspace: local codebase copy, parsed snapshots, removed-file records,
regenerated output and audit logs.

Every file is rewritten whole. Nothing is coordinated across files: a crash
between writing two artifacts can leave them out of step.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from . import blocks
from .blocks import RemovedFileMetadata, RemovedFileRecord
from .exceptions import CodebaseNotFoundError, MetadataError, PersistenceError
from .filesystem import SkipRules, clear_directory, copy_codebase, render_tree
from .regenerator import RegenerationOrchestrator
from .snapshot import Snapshotter, SnapshotResult
from .utils import read_text, write_text_atomic

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "codebase_parsed.txt"
MODIFIED_SNAPSHOT_FILENAME = "codebase_parsed_modified.txt"


@dataclass
class RemovedRecordEntry:
    """A record file in the removed directory and its metadata, if readable"""
    file_path: Path
    metadata: Optional[RemovedFileMetadata]

    @property
    def label(self) -> str:
        if self.metadata is None:
            return f"{self.file_path.name} (No path)"
        return f"{self.metadata.filename} ({self.metadata.path})"


class Workspace:
    """Directory layout shared by the parse, remove and regenerate steps"""

    def __init__(self, home: Path, skip_rules: Optional[SkipRules] = None):
        self.home = Path(home)
        self.skip_rules = skip_rules or SkipRules()

        self.codebase_dir = self.home / "codebase"
        self.parsed_original_dir = self.home / "parsedCodebase" / "original"
        self.parsed_removed_dir = self.home / "parsedCodebase" / "removed"
        self.output_dir = self.home / "generation_output"
        self.logs_dir = self.home / "logs"

    @property
    def snapshot_path(self) -> Path:
        return self.parsed_original_dir / SNAPSHOT_FILENAME

    def orchestrator(self) -> RegenerationOrchestrator:
        return RegenerationOrchestrator(self.output_dir, self.logs_dir)

    # ---- codebase copy ----

    def import_codebase(self, source: Path) -> int:
        """Replace the local codebase copy with the contents of `source`"""
        source = Path(source).expanduser()
        if not source.exists():
            raise CodebaseNotFoundError(str(source), "Path does not exist")
        if not source.is_dir():
            raise CodebaseNotFoundError(str(source), "Path must be a directory, not a file")
        return copy_codebase(source, self.codebase_dir)

    def clear_codebase(self) -> bool:
        return clear_directory(self.codebase_dir)

    def codebase_tree(self, max_level: int = 3) -> List[str]:
        self._require_codebase()
        return render_tree(self.codebase_dir, self.skip_rules, max_level)

    def _require_codebase(self) -> None:
        if not self.codebase_dir.is_dir():
            raise CodebaseNotFoundError(
                str(self.codebase_dir), "No codebase folder found. Please set up a codebase directory first."
            )

    # ---- snapshot ----

    def parse_codebase(self) -> SnapshotResult:
        """Serialize the local codebase copy and save it as the pristine snapshot"""
        self._require_codebase()
        result = Snapshotter(self.skip_rules).serialize(self.codebase_dir)
        self._write(self.snapshot_path, result.content)
        return result

    def read_snapshot(self) -> str:
        if not self.snapshot_path.is_file():
            raise CodebaseNotFoundError(str(self.snapshot_path), "Please parse a codebase first.")
        return read_text(self.snapshot_path)

    def get_parsed_files(self) -> Optional[List[str]]:
        """Paths in the most recent parsed snapshot, or None if nothing was parsed"""
        for name in (MODIFIED_SNAPSHOT_FILENAME, SNAPSHOT_FILENAME):
            candidate = self.parsed_original_dir / name
            if candidate.is_file():
                logger.info("Using parsed snapshot %s", name)
                return blocks.list_blocks(read_text(candidate))
        return None

    # ---- removal ----

    def remove_file(self, target_path: str) -> Path:
        """
        Cut `target_path` out of the pristine snapshot and save the tagged record.

        Re-removing the same target overwrites its record.

        Returns:
            Path of the written record
        """
        snapshot = self.read_snapshot()
        residual = blocks.remove_block(snapshot, target_path)
        record_path = self.parsed_removed_dir / blocks.record_filename(target_path)
        self._write(record_path, blocks.tag_removed(residual, target_path))
        return record_path

    def list_removed_records(self) -> List[RemovedRecordEntry]:
        if not self.parsed_removed_dir.is_dir():
            return []

        entries = []
        for record_path in sorted(p for p in self.parsed_removed_dir.iterdir() if p.is_file()):
            try:
                metadata = blocks.extract_metadata(read_text(record_path), source=str(record_path))
            except (MetadataError, OSError) as e:
                print(f"❌ Error extracting metadata from {record_path.name}: {e}")
                metadata = None
            entries.append(RemovedRecordEntry(record_path, metadata))
        return entries

    def load_record(self, record_path: Path) -> RemovedFileRecord:
        record_path = Path(record_path)
        if not record_path.is_absolute() and not record_path.exists():
            record_path = self.parsed_removed_dir / record_path
        return blocks.load_record(record_path)

    @staticmethod
    def _write(path: Path, content: str) -> None:
        try:
            write_text_atomic(path, content)
        except OSError as e:
            raise PersistenceError(str(path), e.strerror or str(e)) from e
