"""
Regeneration orchestrator: removed-file record -> prompt -> backend -> artifacts
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from .blocks import RemovedFileMetadata, RemovedFileRecord, load_record
from .config import ModelConfig, ModelProfile
from .exceptions import BackendError, EmptyGenerationError, PersistenceError, ReplicationError
from .prompts import GenerationRequest, PromptTemplate
from .providers import GenerationBackend, ReasoningResult, call_backend
from .utils import (
    file_timestamp, get_language_tag, sanitize_filename, utc_timestamp, write_text_atomic
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedResult:
    """Exactly one code payload, plus reasoning when it is to be kept"""
    code: str
    reasoning: Optional[str] = None


@dataclass
class RegenerationOutcome:
    output_path: Path
    reasoning_path: Optional[Path]
    log_path: Optional[Path]
    provider: str
    model: str


def normalize_result(result: Any, include_reasoning: bool, provider: str) -> NormalizedResult:
    """
    Resolve a backend result (plain text, ReasoningResult or a
    {"reasoning", "answer"} mapping) to a single code payload.

    Raises:
        EmptyGenerationError: If there is no usable code payload
        BackendError: If the result has an unexpected shape
    """
    reasoning = None
    if isinstance(result, ReasoningResult):
        code, reasoning = result.answer, result.reasoning
    elif isinstance(result, dict) and "answer" in result:
        code, reasoning = result.get("answer"), result.get("reasoning")
    elif isinstance(result, str) or result is None:
        code = result
    else:
        raise BackendError(provider, f"Unexpected response type: {type(result).__name__}")

    if not isinstance(code, str) or not code.strip():
        raise EmptyGenerationError(provider, "Backend returned an empty response")

    if include_reasoning and reasoning:
        return NormalizedResult(code=code, reasoning=reasoning)
    return NormalizedResult(code=code)


def render_raw_response(result: Any) -> str:
    """Exact text of a backend result for the audit log"""
    if isinstance(result, ReasoningResult):
        return json.dumps({"reasoning": result.reasoning, "answer": result.answer}, indent=2, ensure_ascii=False)
    if isinstance(result, dict):
        return json.dumps(result, indent=2, ensure_ascii=False)
    return "" if result is None else str(result)


def reasoning_filename(sanitized_filename: str) -> str:
    return f"{Path(sanitized_filename).stem}_reasoning.md"


class RegenerationOrchestrator:
    """Turns removed-file records into regenerated files via any backend"""

    def __init__(self, output_dir: Path, logs_dir: Path, prompt_template: Optional[PromptTemplate] = None):
        """
        Args:
            output_dir: Root of regenerated artifacts (one sub-folder per backend)
            logs_dir: Root of audit logs (same sub-folder layout)
            prompt_template: Template used to build the request prompt
        """
        self.output_dir = Path(output_dir)
        self.logs_dir = Path(logs_dir)
        self.prompts = prompt_template or PromptTemplate()

    def build_prompt(self, record: RemovedFileRecord) -> str:
        return self.prompts.format(GenerationRequest(
            filename=record.metadata.filename,
            path=record.metadata.path,
            codebase=record.residual_content,
        ))

    def output_path(self, profile: ModelProfile, filename: str) -> Path:
        return self.output_dir / profile.output_folder / sanitize_filename(filename)

    def regenerate(self,
                   record: Union[RemovedFileRecord, Path, str],
                   backend: GenerationBackend,
                   profile: ModelProfile,
                   model_config: Optional[ModelConfig] = None) -> RegenerationOutcome:
        """
        Regenerate the file a record describes and persist the result.

        Args:
            record: Parsed record, or path to a record file
            backend: Backend to call; any GenerationBackend works the same way
            profile: Model profile deciding output folder and log label
            model_config: Generation parameters (defaults to the profile's)

        Returns:
            RegenerationOutcome with the written paths

        Raises:
            MetadataMissingError / MetadataParseError: Unusable record
            BackendError: Backend failure (never retried)
            EmptyGenerationError: Backend answered without content
            PersistenceError: Output could not be written
        """
        if not isinstance(record, RemovedFileRecord):
            record = load_record(Path(record))

        config = model_config or profile.defaults
        metadata = record.metadata
        prompt = self.build_prompt(record)
        timestamp = utc_timestamp()

        print("\n🚀 Starting File Regeneration...")
        print(f"   File: {metadata.path}")
        print(f"   Provider: {profile.display_name}")

        try:
            raw = call_backend(backend, prompt, config)
        except ReplicationError as e:
            self.log_api_call(profile, prompt, f"[ERROR] {e}", metadata, timestamp, backend.model)
            raise

        log_path = self.log_api_call(profile, prompt, render_raw_response(raw), metadata, timestamp, backend.model)

        normalized = normalize_result(raw, config.include_reasoning, profile.provider_type)

        output_path = self.output_path(profile, metadata.filename)
        reasoning_path = None
        if normalized.reasoning is not None:
            reasoning_path = output_path.with_name(reasoning_filename(output_path.name))
            self._write(reasoning_path, self._reasoning_document(metadata, normalized, backend.model, timestamp))
            print(f"🧠 Reasoning saved to: {reasoning_path.name}")

        self._write(output_path, normalized.code)
        print(f"📄 Result saved to: {output_path}")

        return RegenerationOutcome(
            output_path=output_path,
            reasoning_path=reasoning_path,
            log_path=log_path,
            provider=profile.key,
            model=backend.model or "",
        )

    def log_api_call(self, profile: ModelProfile, prompt: str, response: str,
                     metadata: RemovedFileMetadata, timestamp: str, model: Optional[str] = None) -> Optional[Path]:
        """Write the exact prompt and response; failures are reported, not raised"""
        log_name = f"{profile.log_label}_{sanitize_filename(metadata.filename)}_{file_timestamp(timestamp)}.log"
        log_path = self.logs_dir / profile.output_folder / log_name

        log_content = (
            "\n=== API CALL LOG ===\n"
            f"Provider: {profile.log_label}\n"
            f"Model: {model or '-'}\n"
            f"File: {metadata.filename}\n"
            f"Path: {metadata.path}\n"
            f"Timestamp: {timestamp}\n"
            "\n=== PROMPT SENT ===\n"
            f"{prompt}\n"
            "\n=== RESPONSE RECEIVED ===\n"
            f"{response}\n"
            "\n=== END LOG ===\n"
        )

        try:
            write_text_atomic(log_path, log_content)
        except OSError as e:
            print(f"⚠️ Failed to log API call: {e}")
            return None

        print(f"📝 API call logged to: {log_name}")
        return log_path

    @staticmethod
    def _reasoning_document(metadata: RemovedFileMetadata, result: NormalizedResult,
                            model: Optional[str], timestamp: str) -> str:
        return (
            f"# Reasoning Process for {metadata.filename}\n"
            "\n"
            f"## Model: {model or '-'}\n"
            f"## Timestamp: {timestamp}\n"
            "\n---\n\n"
            f"{result.reasoning}\n"
            "\n---\n\n"
            "**Final Code Output:**\n"
            f"```{get_language_tag(metadata.filename)}\n"
            f"{result.code}\n"
            "```\n"
        )

    @staticmethod
    def _write(path: Path, content: str) -> None:
        try:
            write_text_atomic(path, content)
        except OSError as e:
            raise PersistenceError(str(path), e.strerror or str(e)) from e
