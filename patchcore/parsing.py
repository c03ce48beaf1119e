"""Change document parsing and serialization."""
import logging
import re
from dataclasses import dataclass, field
from typing import Iterator
from xml.sax.saxutils import escape, unescape

from pattern import (
    FENCE, attribute_pattern, closing_tag_pattern,
    fence_close_pattern, fence_open_pattern, tag_pattern
)
from .models import ChangeAction, ChangeOperation, FileChange, PatchToolError

logger = logging.getLogger(__name__)

_ATTR_ENTITIES = {"&quot;": '"', "&apos;": "'"}

class ParseError(PatchToolError, ValueError):
    """The change document is structurally invalid."""

class InvalidActionError(ParseError):
    def __init__(self, path: str, action: str):
        self.path = path
        self.action = action
        super().__init__(f"{path}: Invalid action '{action}'")

class MalformedDocumentError(ParseError):
    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)

@dataclass
class _RawOperation:
    description: str = ""
    search: str | None = None
    content: str | None = None

@dataclass
class _RawFileBlock:
    path: str
    action: str
    operations: list[_RawOperation] = field(default_factory=list)

def _parse_attributes(attr_text: str) -> dict[str, str]:
    attrs = {}
    for match in attribute_pattern.finditer(attr_text):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attrs[match.group(1).lower()] = unescape(value, _ATTR_ENTITIES)
    return attrs

def _read_body(text: str, pos: int, name: str, path: str) -> tuple[str, int]:
    """Read an element body starting at `pos`; return (body, position after the closing tag)."""
    closer = closing_tag_pattern(name)

    fence = fence_open_pattern.match(text, pos)
    if fence:
        end_fence = fence_close_pattern.search(text, fence.end())
        if end_fence:
            body = text[fence.end():end_fence.start()]
            if body.endswith("\r\n"):
                body = body[:-2]
            elif body.endswith("\n"):
                body = body[:-1]
            close = closer.search(text, end_fence.end())
            if not close:
                raise MalformedDocumentError(f"Unclosed <{name}> element", path)
            return body, close.end()

    close = closer.search(text, pos)
    if not close:
        raise MalformedDocumentError(f"Unclosed <{name}> element", path)
    return text[pos:close.start()].strip(), close.end()

def iter_file_blocks(text: str) -> Iterator[_RawFileBlock]:
    """Yield raw file blocks in document order, without validating actions."""
    pos = 0
    current: _RawFileBlock | None = None
    operation: _RawOperation | None = None

    while True:
        match = tag_pattern.search(text, pos)
        if not match:
            break
        pos = match.end()
        closing, name, attr_text, self_closing = match.groups()
        name = name.lower()

        if current is None:
            if name != "file" or closing:
                continue  # Prose, plans and stray tags outside file blocks
            attrs = _parse_attributes(attr_text)
            path = attrs.get("path", "").strip()
            if not path:
                raise MalformedDocumentError("<file> block without a path")
            current = _RawFileBlock(path=path, action=attrs.get("action", ChangeAction.MODIFY.value))
            if self_closing:
                yield current
                current = None
            continue

        if operation is None:
            if name == "file" and closing:
                yield current
                current = None
            elif name == "change" and not closing:
                operation = _RawOperation()
                if self_closing:
                    current.operations.append(operation)
                    operation = None
            elif name == "file":
                raise MalformedDocumentError("Unclosed <file> block", current.path)
            continue

        if name == "change" and closing:
            current.operations.append(operation)
            operation = None
        elif closing or name in ("file", "change"):
            raise MalformedDocumentError(f"Unclosed <change> element (found <{'/' if closing else ''}{name}>)", current.path)
        elif self_closing:
            if name == "content":
                operation.content = ""
        elif name == "description":
            operation.description, pos = _read_body(text, pos, name, current.path)
        elif name == "search":
            operation.search, pos = _read_body(text, pos, name, current.path)
        elif name == "content":
            operation.content, pos = _read_body(text, pos, name, current.path)

    if operation is not None:
        raise MalformedDocumentError("Unclosed <change> element", current.path)
    if current is not None:
        raise MalformedDocumentError("Unclosed <file> block", current.path)

def _build_file_change(block: _RawFileBlock) -> FileChange:
    try:
        action = ChangeAction.from_wire(block.action)
    except ValueError:
        raise InvalidActionError(block.path, block.action) from None

    if action is ChangeAction.DELETE:
        return FileChange(path=block.path, action=action)

    operations = []
    for raw in block.operations:
        if raw.content is None:
            raise MalformedDocumentError("Change is missing its <content>", block.path)
        operations.append(ChangeOperation(content=raw.content, search=raw.search, description=raw.description))

    if action in (ChangeAction.CREATE, ChangeAction.REWRITE):
        if len(operations) != 1:
            raise MalformedDocumentError(
                f"{action.label} requires exactly one change, found {len(operations)}", block.path
            )
        op = operations[0]
        if op.search is not None:
            logger.debug(f"{block.path}: Ignoring search fragment on {action.label}")
            op = ChangeOperation(content=op.content, description=op.description)
        return FileChange(path=block.path, action=action, operations=(op,))

    if not operations:
        raise MalformedDocumentError("Modify requires at least one change", block.path)
    for index, op in enumerate(operations, start=1):
        if not op.search:
            raise MalformedDocumentError(f"Modify change #{index} has no search text", block.path)
    return FileChange(path=block.path, action=action, operations=tuple(operations))

def parse_change_document(text: str) -> list[FileChange]:
    changes = [_build_file_change(block) for block in iter_file_blocks(text)]
    logger.debug(f"Change document parsing complete. Found {len(changes)} file blocks.")
    return changes

def _fenced(body: str) -> str:
    return f"\n{FENCE}\n{body}\n{FENCE}\n" if body else f"\n{FENCE}\n{FENCE}\n"

def serialize_change_document(changes: list[FileChange]) -> str:
    """Render changes in the wire format accepted by parse_change_document."""
    parts = []
    for change in changes:
        path = escape(change.path, {'"': "&quot;"})
        if change.action is ChangeAction.DELETE:
            parts.append(f'<file path="{path}" action="delete" />')
            continue
        blocks = [f'<file path="{path}" action="{change.action.value}">']
        for op in change.operations:
            blocks.append("<change>")
            if op.description:
                blocks.append(f"<description>{op.description}</description>")
            if op.search is not None:
                blocks.append(f"<search>{_fenced(op.search)}</search>")
            blocks.append(f"<content>{_fenced(op.content)}</content>")
            blocks.append("</change>")
        blocks.append("</file>")
        parts.append("\n".join(blocks))
    return "\n".join(parts) + "\n"
