"""
Default document collaborators.

A vault is a directory of markdown notes. Documents are identified by their
POSIX path relative to the vault root; front matter is the YAML block between
the leading ``---`` fences; relationship values hold ``[[wikilinks]]``.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import yaml

from graphsync.shared.observability import get_logger

logger = get_logger(__name__)

FRONT_MATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
WIKILINK_PATTERN = re.compile(r"^\s*\[\[([^\[\]|#]+)(?:#[^\[\]|]*)?(?:\|[^\[\]]*)?\]\]\s*$")


@dataclass(frozen=True)
class Document:
    path: str
    name: str

    @property
    def directory(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""


def document_name(path: str) -> str:
    """File name without directory and ``.md`` extension"""
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    return name[:-3] if name.endswith(".md") else name


class DocumentSource(Protocol):
    def list_documents(self) -> List[Document]: ...


class MarkdownVault:
    """Markdown files under ``root``, hidden directories skipped, sorted by path."""

    def __init__(self, root: str):
        self.root = Path(root).expanduser()

    def list_documents(self) -> List[Document]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Vault directory not found: {self.root}")
        documents = []
        for file_path in self.root.rglob("*.md"):
            relative = file_path.relative_to(self.root)
            if any(part.startswith(".") for part in relative.parts[:-1]):
                continue
            path = relative.as_posix()
            documents.append(Document(path=path, name=document_name(path)))
        documents.sort(key=lambda d: d.path)
        return documents

    def read_text(self, document: Document) -> str:
        return (self.root / document.path).read_text(encoding="utf-8")

    def read_front_matter(self, document: Document) -> Optional[Dict[str, Any]]:
        try:
            text = self.read_text(document)
        except OSError as e:
            logger.warning("document_read_failed", path=document.path, error=str(e))
            return None
        return parse_front_matter(text, source=document.path)

    def link_extractor(self) -> "WikilinkExtractor":
        return WikilinkExtractor(self.list_documents())


def parse_front_matter(text: str, source: str = "<string>") -> Optional[Dict[str, Any]]:
    """Return the front-matter mapping, or None when absent or unparseable."""
    match = FRONT_MATTER_PATTERN.match(text)
    if not match:
        return None
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning("front_matter_invalid", path=source, error=str(e))
        return None
    if not isinstance(data, dict):
        return None
    return data


def parse_wikilink(value: Any) -> Optional[str]:
    """Link text of a ``[[target]]`` / ``[[target|alias]]`` string, else None"""
    if not isinstance(value, str):
        return None
    match = WIKILINK_PATTERN.match(value)
    if not match:
        return None
    link = match.group(1).strip()
    return link or None


class WikilinkExtractor:
    """
    Resolves wikilinks against a known document list.

    Links that match an existing document (by path, path without ``.md`` or
    bare name) resolve to its path. Links to missing documents keep the link
    text so a placeholder node can still be created for them.
    """

    def __init__(self, documents: Iterable[Document] = ()):
        self._by_path: Dict[str, str] = {}
        self._by_name: Dict[str, str] = {}
        for document in documents:
            self._by_path[document.path] = document.path
            self._by_name.setdefault(document.name, document.path)

    def resolve(self, link: str) -> str:
        if link in self._by_path:
            return self._by_path[link]
        if f"{link}.md" in self._by_path:
            return self._by_path[f"{link}.md"]
        return self._by_name.get(link, link)

    def __call__(self, value: Any) -> List[str]:
        values = value if isinstance(value, list) else [value]
        targets = []
        for entry in values:
            link = parse_wikilink(entry)
            if link is not None:
                targets.append(self.resolve(link))
        return targets


def extract_tags(front_matter: Optional[Dict[str, Any]]) -> List[str]:
    """Normalized ``tags`` from front matter (string or list, leading ``#`` stripped)."""
    if not front_matter:
        return []
    raw = front_matter.get("tags") or []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    tags = []
    for tag in raw:
        if tag is None:
            continue
        text = str(tag).strip()
        if text.startswith("#"):
            text = text[1:]
        if text:
            tags.append(text)
    return tags
