"""
Snapshot serialization: a directory tree rendered as one marker-delimited text

Grammar (one block per included file, concatenated in walk order):

    \\n<<<FILE_START>>>\\nFILE: <path>\\n<content>\\n<<<FILE_END>>>\\n

Content lines that look like a marker line get one extra leading backslash on
write and lose it again on read, so a block always ends at the first bare
end-marker line.
"""
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .exceptions import TraversalReadError
from .filesystem import (
    UNREADABLE_PLACEHOLDER, SkipRules, read_file_contents, walk_directory
)

logger = logging.getLogger(__name__)

FILE_START = "<<<FILE_START>>>"
FILE_END = "<<<FILE_END>>>"
HEADER_PREFIX = "FILE: "

_ESCAPE_CANDIDATE = re.compile(r"^\\*<<<FILE_(?:START|END)>>>$")
_ESCAPED_MARKER = re.compile(r"^\\+<<<FILE_(?:START|END)>>>$")


def escape_content(content: str) -> str:
    """Protect marker-looking lines inside file content"""
    if "<<<FILE_" not in content:
        return content
    lines = content.split("\n")
    return "\n".join("\\" + line if _ESCAPE_CANDIDATE.match(line) else line for line in lines)


def unescape_content(content: str) -> str:
    """Inverse of escape_content"""
    if "<<<FILE_" not in content:
        return content
    lines = content.split("\n")
    return "\n".join(line[1:] if _ESCAPED_MARKER.match(line) else line for line in lines)


@dataclass(frozen=True)
class FileBlock:
    """One file's path and content inside a snapshot"""
    relative_path: str
    content: str

    def render(self) -> str:
        return f"\n{FILE_START}\n{HEADER_PREFIX}{self.relative_path}\n{escape_content(self.content)}\n{FILE_END}\n"


def render_snapshot(blocks: List[FileBlock]) -> str:
    return "".join(block.render() for block in blocks)


@dataclass
class SkippedFile:
    path: str
    reason: str


@dataclass
class SnapshotResult:
    """Outcome of serializing a directory tree"""
    content: str = ""
    included_paths: List[str] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)
    unreadable: List[SkippedFile] = field(default_factory=list)
    total_bytes: int = 0

    @property
    def included_count(self) -> int:
        return len(self.included_paths)

    @property
    def skipped_paths(self) -> List[str]:
        return [s.path for s in self.skipped]


class Snapshotter:
    """Serializes a directory tree into a single snapshot text"""

    def __init__(self, rules: SkipRules = None):
        self.rules = rules or SkipRules()

    def serialize(self, root: Path) -> SnapshotResult:
        """
        Walk `root` and wrap every retained file in start/end markers.

        Unreadable files still produce a block (with a placeholder as content)
        so the snapshot stays structurally complete; they are also reported in
        `unreadable`. Nothing is written to disk.
        """
        result = SnapshotResult()
        parts: List[str] = []
        included = set()

        for entry in walk_directory(Path(root), self.rules):
            if entry.skipped:
                result.skipped.append(SkippedFile(entry.relative_path, entry.skip_reason))
                continue

            try:
                contents = read_file_contents(entry.path)
                content, size = contents.content, contents.size
            except TraversalReadError as e:
                logger.warning("Could not read %s: %s", entry.relative_path, e.reason)
                content, size = UNREADABLE_PLACEHOLDER.format(error=e.reason), 0
                result.unreadable.append(SkippedFile(entry.relative_path, f"unreadable ({e.reason})"))

            parts.append(FileBlock(entry.relative_path, content).render())
            included.add(entry.relative_path)
            result.total_bytes += size

        result.content = "".join(parts)
        result.included_paths = sorted(included)
        return result


def serialize(root: Path, rules: SkipRules = None) -> SnapshotResult:
    """Serialize `root` with the given skip rules (defaults when omitted)"""
    return Snapshotter(rules).serialize(root)
