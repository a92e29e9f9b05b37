"""Composite prompt for /generate: repo files wrapped in BEGIN/END markers."""

from __future__ import annotations

MAX_FILE_CHARS = 50_000

SYSTEM_INSTRUCTION = (
    "You are Speckit AI. Follow the project constitution and produce clear, "
    "structured outputs."
)

_PREAMBLE = (
    "Project files provided below. Use them as context and follow the project "
    "constitution rules when generating output.\n\n"
)

_FOOTER = (
    "Produce the requested Speckit output. Use headings, numbered lists, and be "
    "concise. If you need to create a new file, output only the file content "
    'with a top line "FILE: <path>" so the caller can detect it.'
)


def build_composite_prompt(request: str, repo_files: dict[str, str]) -> str:
    """Render the user request plus each file's content into one prompt.

    ``repo_files`` maps repo path → content, in the order the files were read.
    Each file is cut to the first ``MAX_FILE_CHARS`` characters.
    """
    parts = [f"You are Speckit AI. The user requested: {request}\n\n", _PREAMBLE]
    for name, content in repo_files.items():
        body = content[:MAX_FILE_CHARS] if content else "(empty)"
        parts.append(f"--- BEGIN FILE: {name} ---\n{body}\n--- END FILE: {name} ---\n\n")
    parts.append(_FOOTER)
    return "".join(parts)


def generate_messages(command: str, prompt: str, repo_files: dict[str, str]) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTION},
        {"role": "user", "content": build_composite_prompt(f"{command}: {prompt}", repo_files)},
    ]
