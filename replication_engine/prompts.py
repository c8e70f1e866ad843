"""
Prompt template for regenerating a removed file from the rest of the codebase
"""
import re
from dataclasses import dataclass

DEFAULT_TEMPLATE = """You are a senior software developer. Generate the missing file `{filename}` based on the complete codebase provided below.

**RULES:**
- Analyze the codebase to understand existing patterns, imports, and dependencies
- Only use imports and functions that exist in the provided codebase
- Follow the same coding style and structure as similar files
- DO NOT invent or hallucinate imports/libraries that don't exist in the codebase.
- DO NOT assume any other functions/files exist in the codebase apart from the ones provided.
- The file must work correctly with the existing codebase without any changes.

The file will be saved at this path: `{path}` so make sure imports are correct.
Generate only the complete code for `{filename}` - no explanations, no markdown formatting, the response will be saved as `{filename}` and it should be good to go.

**CODEBASE:**
{codebase}"""

_PLACEHOLDER = re.compile(r"\{(filename|path|codebase)\}")


@dataclass(frozen=True)
class GenerationRequest:
    filename: str
    path: str
    codebase: str


class PromptTemplate:
    """Single fixed template with {filename}, {path} and {codebase} placeholders"""

    def __init__(self, template: str = DEFAULT_TEMPLATE):
        self.template = template

    def format(self, request: GenerationRequest) -> str:
        # One pass: text coming from the substituted values is never re-scanned
        values = {
            "filename": request.filename,
            "path": request.path,
            "codebase": request.codebase,
        }
        return _PLACEHOLDER.sub(lambda m: values[m.group(1)], self.template)


def format_prompt(filename: str, path: str, codebase: str, template: str = DEFAULT_TEMPLATE) -> str:
    """Render the regeneration prompt"""
    return PromptTemplate(template).format(GenerationRequest(filename, path, codebase))
