"""
Block extraction and removal on serialized snapshots, plus removed-file records
"""
import json
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Tuple

from .exceptions import (
    BlockNotFoundError, MetadataMissingError, MetadataParseError, SnapshotFormatError
)
from .snapshot import FILE_END, FILE_START, HEADER_PREFIX, unescape_content

METADATA_START = "/* METADATA_START"
METADATA_END = "METADATA_END */"

# Anchored at the very start of a record; only leading whitespace is tolerated
_METADATA_PATTERN = re.compile(r"\A\s*/\*\s*METADATA_START\s*(.*?)\s*METADATA_END\s*\*/", re.DOTALL)


@dataclass(frozen=True)
class BlockSpan:
    """A file block located inside a snapshot.

    `start`/`end` delimit the whole framed block, including the newline before
    the start marker and the one after the end marker, so slicing it out leaves
    the neighbouring blocks byte-identical.
    """
    path: str
    content: str
    start: int
    end: int
    line_number: int


def _lines(blob: str) -> Iterator[Tuple[int, int, str]]:
    """Yield (start, end_including_newline, text) for every line of `blob`"""
    pos = 0
    length = len(blob)
    while pos < length:
        newline = blob.find("\n", pos)
        if newline == -1:
            yield pos, length, blob[pos:]
            return
        yield pos, newline + 1, blob[pos:newline]
        pos = newline + 1


def iter_blocks(blob: str) -> Iterator[BlockSpan]:
    """
    Tokenize a snapshot into its file blocks, in blob order.

    A block opens on a bare start-marker line immediately followed by a
    `FILE: ` header line, and closes on the next bare end-marker line.

    Raises:
        SnapshotFormatError: If a block is never closed
    """
    lines = list(_lines(blob))
    index = 0
    while index < len(lines):
        start, _, text = lines[index]
        is_opening = (
            text == FILE_START
            and index + 1 < len(lines)
            and lines[index + 1][2].startswith(HEADER_PREFIX)
        )
        if not is_opening:
            index += 1
            continue

        opening_index = index
        path = lines[index + 1][2][len(HEADER_PREFIX):]

        # the framing newline is the empty line just before the start marker
        block_start = start
        if index > 0 and lines[index - 1][2] == "" and blob[start - 1] == "\n":
            block_start = lines[index - 1][0]

        index += 2
        body: List[str] = []
        while index < len(lines) and lines[index][2] != FILE_END:
            body.append(lines[index][2])
            index += 1

        if index >= len(lines):
            raise SnapshotFormatError(f"unterminated block for {path!r}", line_number=opening_index + 1)

        block_end = lines[index][1]
        yield BlockSpan(
            path=path,
            content=unescape_content("\n".join(body)),
            start=block_start,
            end=block_end,
            line_number=opening_index + 1,
        )
        index += 1


def list_blocks(blob: str) -> List[str]:
    """Header-declared paths of every block, in blob order"""
    return [block.path for block in iter_blocks(blob)]


def find_block(blob: str, target_path: str) -> BlockSpan:
    """First block whose header path equals `target_path` exactly"""
    for block in iter_blocks(blob):
        if block.path == target_path:
            return block
    raise BlockNotFoundError(target_path)


def remove_block(blob: str, target_path: str) -> str:
    """
    Return `blob` with the block for `target_path` cut out.

    Raises:
        BlockNotFoundError: If no block carries exactly that path
    """
    block = find_block(blob, target_path)
    return blob[:block.start] + blob[block.end:]


@dataclass(frozen=True)
class RemovedFileMetadata:
    filename: str
    path: str

    def to_dict(self) -> dict:
        return {"removedFile": {"filename": self.filename, "path": self.path}}


@dataclass(frozen=True)
class RemovedFileRecord:
    """A snapshot with one block excised, plus what identifies the excised file"""
    metadata: RemovedFileMetadata
    residual_content: str
    source: str = "<memory>"


def metadata_for(target_path: str) -> RemovedFileMetadata:
    return RemovedFileMetadata(filename=PurePosixPath(target_path).name, path=target_path)


def render_metadata_header(metadata: RemovedFileMetadata) -> str:
    return f"{METADATA_START}\n{json.dumps(metadata.to_dict(), indent=2)}\n{METADATA_END}\n\n"


def tag_removed(residual_blob: str, target_path: str) -> str:
    """Prefix a residual snapshot with the metadata header for `target_path`"""
    return render_metadata_header(metadata_for(target_path)) + residual_blob


def _match_header(text: str, source: str) -> re.Match:
    match = _METADATA_PATTERN.match(text)
    if not match:
        raise MetadataMissingError(source)
    return match


def extract_metadata(text: str, source: str = "<memory>") -> RemovedFileMetadata:
    """
    Parse the leading metadata header of a removed-file record.

    Raises:
        MetadataMissingError: If the record does not start with a header
        MetadataParseError: If the header JSON is malformed or incomplete
    """
    match = _match_header(text, source)
    try:
        data = json.loads(match.group(1).strip())
    except json.JSONDecodeError as e:
        raise MetadataParseError(source, f"invalid JSON ({e})") from e

    removed = data.get("removedFile") if isinstance(data, dict) else None
    if not isinstance(removed, dict):
        raise MetadataParseError(source, "missing 'removedFile' object")

    filename, path = removed.get("filename"), removed.get("path")
    if not isinstance(filename, str) or not filename:
        raise MetadataParseError(source, "'removedFile.filename' must be a non-empty string")
    if not isinstance(path, str) or not path:
        raise MetadataParseError(source, "'removedFile.path' must be a non-empty string")

    return RemovedFileMetadata(filename=filename, path=path)


def parse_record(text: str, source: str = "<memory>") -> RemovedFileRecord:
    """Split a removed-file record into its metadata and trimmed residual snapshot"""
    metadata = extract_metadata(text, source)
    match = _match_header(text, source)
    return RemovedFileRecord(
        metadata=metadata,
        residual_content=text[match.end():].strip(),
        source=source,
    )


def load_record(record_path: Path) -> RemovedFileRecord:
    """Read and parse a removed-file record from disk"""
    record_path = Path(record_path)
    try:
        text = record_path.read_text(encoding="utf-8")
    except OSError as e:
        raise MetadataMissingError(str(record_path), f"unreadable record ({e.strerror or e})") from e
    return parse_record(text, source=str(record_path))


def record_filename(target_path: str) -> str:
    """`<stem>_modified_codebase.txt` for a removed file path"""
    return f"{PurePosixPath(target_path).stem}_modified_codebase.txt"
