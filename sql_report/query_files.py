from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .config import DEFAULT_QUERY_EXTENSION
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryFile:
    name: str
    stem: str
    path: Path
    text: str

    @property
    def batches(self) -> Tuple[str, ...]:
        # the whole file is sent as one command; GO separators are left to the engine
        return (self.text,)


def resolve_query_folder(folder: Path) -> Path:
    resolved = Path(folder).expanduser().resolve()
    if not resolved.exists():
        raise ConfigurationError(f"SQL folder not found: {resolved}")
    if not resolved.is_dir():
        raise ConfigurationError(f"SQL folder is not a directory: {resolved}")
    return resolved


def list_query_files(folder: Path, extension: str = DEFAULT_QUERY_EXTENSION) -> List[Path]:
    """Return the query scripts directly inside *folder*, sorted by file name."""
    resolved = resolve_query_folder(folder)
    suffix = extension.lower()
    files = [p for p in resolved.iterdir() if p.is_file() and p.suffix.lower() == suffix]
    files.sort(key=lambda p: p.name)
    logger.debug("Found %s query file(s) in %s", len(files), resolved)
    return files


def _bom_encoding(content: bytes) -> Optional[str]:
    if content.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    # UTF-32 LE starts with the UTF-16 LE mark, so check it first
    if content.startswith(b"\x00\x00\xfe\xff") or content.startswith(b"\xff\xfe\x00\x00"):
        return "utf-32"
    if content.startswith(b"\xff\xfe") or content.startswith(b"\xfe\xff"):
        return "utf-16"
    return None


def decode_query_bytes(content: bytes) -> str:
    """
    Decode script bytes, honouring UTF-8/16/32 byte-order marks.

    Without a BOM the text is read as UTF-8, then cp1252 (scripts saved by
    Windows editors), and finally UTF-8 with replacement characters.
    """
    bom_encoding = _bom_encoding(content)
    if bom_encoding is not None:
        try:
            return content.decode(bom_encoding)
        except UnicodeDecodeError:
            logger.warning("Query text is not valid %s, replacing invalid bytes.", bom_encoding)
            return content.decode(bom_encoding, errors="replace")
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        logger.warning("Query text is not valid UTF-8, falling back to cp1252.")
        return content.decode("cp1252")
    except UnicodeDecodeError:
        logger.error("Query text could not be decoded, replacing invalid bytes.")
        return content.decode("utf-8", errors="replace")


def read_query_file(path: Path) -> QueryFile:
    resolved = Path(path).resolve()
    text = decode_query_bytes(resolved.read_bytes())
    return QueryFile(name=resolved.name, stem=resolved.stem, path=resolved, text=text)
