"""
Codebase Replication Engine

Serializes a source tree into a single snapshot, removes one file from it and
asks an LLM to regenerate the missing file from the rest of the codebase.

Key Features:
- Deterministic, marker-delimited codebase snapshots
- Exact-path file removal with tagged removed-file records
- Interchangeable generation backends (LM Studio, Gemini, DeepSeek, OpenRouter, OpenAI, Claude)
- Per-call audit logs and optional reasoning capture
"""

from .snapshot import Snapshotter, SnapshotResult, FileBlock, serialize
from .filesystem import SkipRules
from .blocks import (
    RemovedFileMetadata,
    RemovedFileRecord,
    extract_metadata,
    list_blocks,
    remove_block,
    tag_removed,
)
from .prompts import PromptTemplate, format_prompt
from .providers import ReasoningResult, GenerationBackend, build_backend
from .regenerator import RegenerationOrchestrator, normalize_result
from .workspace import Workspace
from .exceptions import (
    ReplicationError,
    TraversalReadError,
    CodebaseNotFoundError,
    SnapshotFormatError,
    BlockNotFoundError,
    MetadataError,
    MetadataMissingError,
    MetadataParseError,
    BackendError,
    EmptyGenerationError,
    PersistenceError,
    ConfigurationError,
)

__version__ = "1.0.0"

__all__ = [
    # Core classes
    'Snapshotter',
    'SnapshotResult',
    'FileBlock',
    'SkipRules',
    'RemovedFileMetadata',
    'RemovedFileRecord',
    'PromptTemplate',
    'ReasoningResult',
    'GenerationBackend',
    'RegenerationOrchestrator',
    'Workspace',

    # Functions
    'extract_metadata',
    'list_blocks',
    'remove_block',
    'tag_removed',
    'serialize',
    'format_prompt',
    'build_backend',
    'normalize_result',

    # Exceptions
    'ReplicationError',
    'TraversalReadError',
    'CodebaseNotFoundError',
    'SnapshotFormatError',
    'BlockNotFoundError',
    'MetadataError',
    'MetadataMissingError',
    'MetadataParseError',
    'BackendError',
    'EmptyGenerationError',
    'PersistenceError',
    'ConfigurationError',
]
