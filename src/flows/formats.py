"""Parsing and serialization for the structured formats flows can merge.

The format is chosen by file extension. Markdown documents expose their YAML
frontmatter as the structured part and carry the body through untouched.
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import tomli_w
import yaml

from common.errors import MergeError


class FileFormat(Enum):
    JSON = "json"
    JSONC = "jsonc"
    YAML = "yaml"
    TOML = "toml"
    MARKDOWN = "markdown"
    TEXT = "text"


_EXTENSIONS = {
    ".json": FileFormat.JSON,
    ".jsonc": FileFormat.JSONC,
    ".json5": FileFormat.JSONC,
    ".yaml": FileFormat.YAML,
    ".yml": FileFormat.YAML,
    ".toml": FileFormat.TOML,
    ".md": FileFormat.MARKDOWN,
    ".mdc": FileFormat.MARKDOWN,
    ".markdown": FileFormat.MARKDOWN,
}

FRONTMATTER_DELIMITER = "---"


@dataclass
class Document:
    """Parsed file: structured ``data`` plus, for Markdown, the text ``body``."""
    data: Any
    body: Optional[str] = None


def detect_format(path: str) -> FileFormat:
    _, ext = os.path.splitext(path.lower())
    return _EXTENSIONS.get(ext, FileFormat.TEXT)


def is_structured(fmt: FileFormat) -> bool:
    return fmt is not FileFormat.TEXT


def strip_jsonc_comments(content: str) -> str:
    """Strip comments and trailing commas from JSONC content.

    Removes ``// ...`` and ``/* ... */`` comments outside string literals, so
    URLs inside strings survive, and drops commas directly before ``}``/``]``.
    """
    out = []
    i = 0
    n = len(content)
    in_string = False
    while i < n:
        c = content[i]
        if in_string:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(content[i + 1])
                i += 2
                continue
            if c == '"':
                in_string = False
            i += 1
            continue
        if c == '"':
            in_string = True
            out.append(c)
            i += 1
        elif content.startswith("//", i):
            end = content.find("\n", i)
            i = n if end == -1 else end
        elif content.startswith("/*", i):
            end = content.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(c)
            i += 1
    return _strip_trailing_commas("".join(out))


def _strip_trailing_commas(content: str) -> str:
    out = []
    in_string = False
    i = 0
    n = len(content)
    while i < n:
        c = content[i]
        if in_string:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(content[i + 1])
                i += 2
                continue
            if c == '"':
                in_string = False
        elif c == '"':
            in_string = True
            out.append(c)
        elif c == ",":
            j = i + 1
            while j < n and content[j] in " \t\r\n":
                j += 1
            if j >= n or content[j] not in "}]":
                out.append(c)
        else:
            out.append(c)
        i += 1
    return "".join(out)


def split_frontmatter(text: str) -> Tuple[Optional[str], str]:
    """Split ``---\\n<yaml>\\n---\\n<body>`` into (yaml text or None, body)."""
    normalized = text.replace("\r\n", "\n")
    if not normalized.startswith(FRONTMATTER_DELIMITER + "\n"):
        return None, text
    end = normalized.find("\n" + FRONTMATTER_DELIMITER, len(FRONTMATTER_DELIMITER))
    if end == -1:
        return None, text
    frontmatter = normalized[len(FRONTMATTER_DELIMITER) + 1:end + 1]
    rest = normalized[end + 1 + len(FRONTMATTER_DELIMITER):]
    if rest.startswith("\n"):
        rest = rest[1:]
    elif rest:
        # delimiter followed by other text on the same line: not frontmatter
        return None, text
    return frontmatter, rest


def parse_document(text: str, fmt: FileFormat, path: str = "<memory>") -> Document:
    """Parse text in the given format.

    Blank JSON/YAML/TOML content parses as an empty mapping.

    Raises:
        MergeError: when the content is not valid for the format.
    """
    try:
        if fmt is FileFormat.TEXT:
            return Document(data=None, body=text)
        if fmt is FileFormat.MARKDOWN:
            frontmatter, body = split_frontmatter(text)
            data = yaml.safe_load(frontmatter) if frontmatter else {}
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise MergeError(path, "frontmatter must be a mapping")
            return Document(data=data, body=body)
        if not text.strip():
            return Document(data={})
        if fmt is FileFormat.JSON:
            return Document(data=json.loads(text))
        if fmt is FileFormat.JSONC:
            return Document(data=json.loads(strip_jsonc_comments(text)))
        if fmt is FileFormat.YAML:
            data = yaml.safe_load(text)
            return Document(data={} if data is None else data)
        if fmt is FileFormat.TOML:
            return Document(data=tomllib.loads(text))
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise MergeError(path, f"cannot parse as {fmt.value}: {exc}") from exc
    raise MergeError(path, f"unsupported format {fmt.value}")


def serialize_document(document: Document, fmt: FileFormat, path: str = "<memory>") -> str:
    """Serialize a document back to text in the given format.

    Raises:
        MergeError: when the data cannot be represented in the format.
    """
    data = document.data
    try:
        if fmt is FileFormat.TEXT:
            return document.body or ""
        if fmt is FileFormat.MARKDOWN:
            body = document.body or ""
            if not data:
                return body
            frontmatter = yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)
            return f"{FRONTMATTER_DELIMITER}\n{frontmatter}{FRONTMATTER_DELIMITER}\n{body}"
        if fmt in (FileFormat.JSON, FileFormat.JSONC):
            return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        if fmt is FileFormat.YAML:
            return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True, indent=2)
        if fmt is FileFormat.TOML:
            if not isinstance(data, dict):
                raise MergeError(path, "TOML documents must be tables")
            return tomli_w.dumps(data)
    except (TypeError, ValueError, yaml.YAMLError) as exc:
        raise MergeError(path, f"cannot serialize as {fmt.value}: {exc}") from exc
    raise MergeError(path, f"unsupported format {fmt.value}")


def read_document(path: str, fmt: Optional[FileFormat] = None) -> Document:
    """Read and parse a file; its format defaults to the one its extension implies.

    Raises:
        MergeError: on read or parse failure.
    """
    fmt = fmt or detect_format(path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise MergeError(path, f"cannot read file: {exc}") from exc
    return parse_document(text, fmt, path)


def write_document(path: str, document: Document, fmt: Optional[FileFormat] = None) -> None:
    """Serialize and write a document, creating parent directories."""
    fmt = fmt or detect_format(path)
    text = serialize_document(document, fmt, path)
    write_text(path, text)


def write_text(path: str, text: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)
