#!/usr/bin/env python3
"""
Build the ordered list of tags to extract from --tag arguments and tag files
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from pydicom.tag import BaseTag

from dicom_tags import ResolutionError, TagDictionary, format_tag, parse_tag, tag_alias

LOGGER = logging.getLogger(__name__)

COMMENT_PREFIX = "#"


@dataclass(frozen=True)
class TagSpec:
    """Immutable, ordered tags to extract. Order is the CSV column order."""

    tags: Tuple[BaseTag, ...] = ()

    def __iter__(self) -> Iterator[BaseTag]:
        return iter(self.tags)

    def __len__(self) -> int:
        return len(self.tags)

    def __getitem__(self, index: int) -> BaseTag:
        return self.tags[index]


class TagFileError(ValueError):
    """A tag file whose contents cannot be decoded"""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = path
        super().__init__(f"Could not read tag file {path}: {reason}")


def read_tag_file(path: Union[str, Path]) -> Iterator[Tuple[int, str]]:
    """Yield ``(line_number, identifier)`` for each meaningful line.

    Blank lines and lines starting with ``#`` are skipped. A file that is
    not UTF-8 raises TagFileError.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise TagFileError(path, f"not valid UTF-8 at byte {exc.start}") from exc
    for line_number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith(COMMENT_PREFIX):
            continue
        yield line_number, stripped


def _resolve(raw: str, source: str, dictionary: Optional[TagDictionary]) -> BaseTag:
    try:
        tag = parse_tag(raw, dictionary)
    except ResolutionError as exc:
        raise ResolutionError(raw, source=source) from exc
    LOGGER.info("Parsed tag: %s %s", tag_alias(tag, dictionary), format_tag(tag))
    return tag


def build_tag_spec(
    tags: Iterable[str] = (),
    tag_files: Iterable[Union[str, Path]] = (),
    dictionary: Optional[TagDictionary] = None,
) -> TagSpec:
    """Resolve inline identifiers, then tag files, into a TagSpec.

    The first identifier that cannot be resolved aborts the whole build.
    Duplicates are kept in the order they appear.
    """
    resolved: List[BaseTag] = []

    for index, raw in enumerate(tags, start=1):
        resolved.append(_resolve(raw, f"--tag argument {index}", dictionary))

    for tag_file in tag_files:
        for line_number, raw in read_tag_file(tag_file):
            resolved.append(_resolve(raw, f"{tag_file}:{line_number}", dictionary))

    return TagSpec(tuple(resolved))
