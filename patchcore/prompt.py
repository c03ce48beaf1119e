"""Request payload construction."""
import logging
from pathlib import Path
from typing import Sequence

from pattern import formatting_instructions
from .fs import FileReader, FileStoreError, get_display_path, is_binary_file, is_image_file

logger = logging.getLogger(__name__)

LANGUAGE_IDENTIFIERS = {
    "js": "javascript", "ts": "typescript", "jsx": "tsx", "tsx": "tsx",
    "py": "python", "rs": "rust", "go": "go", "java": "java",
    "c": "cpp", "cpp": "cpp", "h": "cpp", "hpp": "cpp",
    "rb": "ruby", "sh": "bash", "md": "markdown", "yml": "yaml",
}

def language_for(path: str) -> str:
    ext = Path(path).suffix.lstrip(".").lower()
    return LANGUAGE_IDENTIFIERS.get(ext, ext)

def build_file_map(paths: Sequence[str]) -> str:
    """Render paths as an indented directory tree."""
    tree: dict = {}
    for path in sorted(paths, key=lambda p: p.replace("\\", "/").lower()):
        node = tree
        for part in [p for p in path.replace("\\", "/").split("/") if p]:
            node = node.setdefault(part, {})

    lines = []

    def render(node: dict, prefix: str) -> None:
        items = sorted(node.items(), key=lambda kv: (not kv[1], kv[0].lower()))
        for i, (name, child) in enumerate(items):
            last = i == len(items) - 1
            lines.append(f"{prefix}{'└── ' if last else '├── '}{name}{'/' if child else ''}")
            render(child, prefix + ("    " if last else "│   "))

    render(tree, "")
    return "\n".join(lines)

def build_file_contents(paths: Sequence[str], reader: FileReader, cwd: Path | None = None) -> str:
    parts = []
    for path in paths:
        if is_image_file(path) or (Path(path).exists() and is_binary_file(path)):
            logger.debug(f"Skipping non-text file {path}")
            continue
        try:
            content = reader.read_file(path)
        except FileStoreError as e:
            logger.error(f"Failed to read {path}: {e}")
            continue
        display = get_display_path(path, cwd)
        parts.append(f"File: {display}\n```{language_for(path)}\n{content}\n```\n")
    return "\n".join(parts)

def build_prompt(paths: Sequence[str], user_prompt: str, reader: FileReader, cwd: Path | None = None, include_instructions: bool = True) -> str:
    """Bundle the selected files and the user's request into one payload."""
    ordered = sorted(dict.fromkeys(paths), key=lambda p: p.replace("\\", "/").lower())
    display = [get_display_path(p, cwd) for p in ordered]

    sections = [
        f"<file_map>\n{build_file_map(display)}\n</file_map>",
        f"<file_contents>\n{build_file_contents(ordered, reader, cwd)}</file_contents>",
    ]
    if include_instructions:
        sections.append(f"<xml_formatting_instructions>\n{formatting_instructions}</xml_formatting_instructions>")
    sections.append(f"<user_instructions>\n{user_prompt}\n</user_instructions>")
    payload = "\n\n".join(sections) + "\n"
    logger.debug(f"Built prompt with {len(ordered)} file(s), {len(payload)} chars")
    return payload
