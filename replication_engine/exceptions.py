"""
Exception hierarchy for the replication engine
"""
from typing import Optional


class ReplicationError(Exception):
    """Base exception for all snapshot, removal and regeneration operations"""
    pass


class TraversalReadError(ReplicationError):
    """Raised when a source file cannot be read during a directory walk"""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"UNREADABLE: {file_path}: {reason}")


class CodebaseNotFoundError(ReplicationError):
    """Raised when the workspace has no codebase (or no parsed snapshot) to work on"""

    def __init__(self, path: str, hint: str = ""):
        self.path = path
        message = f"CODEBASE_NOT_FOUND: {path}"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class SnapshotFormatError(ReplicationError):
    """Raised when a snapshot violates the marker grammar"""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"SNAPSHOT_FORMAT: {message}{location}")


class BlockNotFoundError(ReplicationError):
    """Raised when no file block in a snapshot carries the requested path"""

    def __init__(self, target_path: str):
        self.target_path = target_path
        super().__init__(f"BLOCK_NOT_FOUND: File block not found for: {target_path}")


class MetadataError(ReplicationError):
    """Base class for removed-file record metadata errors"""
    pass


class MetadataMissingError(MetadataError):
    """Raised when a removed-file record has no leading metadata header"""

    def __init__(self, source: str, reason: str = "no leading METADATA_START header"):
        self.source = source
        self.reason = reason
        super().__init__(f"METADATA_MISSING: {source}: {reason}")


class MetadataParseError(MetadataError):
    """Raised when the metadata header is present but cannot be parsed"""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"METADATA_INVALID: {source}: {reason}")


class BackendError(ReplicationError):
    """Raised when a generation backend fails (network, auth, quota, bad response)"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"BACKEND_ERROR [{provider}]: {message}")


class EmptyGenerationError(ReplicationError):
    """Raised when a backend answers successfully but without any content"""

    def __init__(self, provider: str, detail: str = "No response generated"):
        self.provider = provider
        self.detail = detail
        super().__init__(f"EMPTY_GENERATION [{provider}]: {detail}")


class PersistenceError(ReplicationError):
    """Raised when an artifact cannot be written to disk"""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"PERSISTENCE: failed to write {file_path}: {reason}")


class ConfigurationError(ReplicationError):
    """Raised for unknown model profiles or missing credentials"""

    def __init__(self, message: str):
        super().__init__(f"CONFIG: {message}")
