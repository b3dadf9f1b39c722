#!/usr/bin/env python3
"""
DICOM tag identifiers: parsing user input into tags and naming tags for output.

A tag can be written as ``ggggeeee``, ``gggg,eeee``, ``(gggg,eeee)`` or as a
data dictionary keyword such as ``PatientName``.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from pydicom.datadict import keyword_for_tag, tag_for_keyword
from pydicom.tag import BaseTag, Tag

_HEX = "[0-9A-Fa-f]{4}"
NUMERIC_TAG_PATTERNS = (
    re.compile(rf"^({_HEX})({_HEX})$"),
    re.compile(rf"^({_HEX}),({_HEX})$"),
    re.compile(rf"^\(({_HEX}),({_HEX})\)$"),
)


class ResolutionError(ValueError):
    """Raised when a string is neither a numeric tag nor a known keyword"""

    def __init__(self, raw: str, source: Optional[str] = None):
        self.raw = raw
        self.source = source
        if source:
            message = f"Failed to parse tag {raw!r} ({source})"
        else:
            message = f"Failed to parse tag {raw!r}"
        super().__init__(message)


class TagDictionary(ABC):
    """Lookup interface between tag keywords and tag identifiers"""

    @abstractmethod
    def keyword_to_tag(self, keyword: str) -> Optional[BaseTag]:
        """Return the tag registered under ``keyword`` (case-sensitive)"""
        pass

    @abstractmethod
    def tag_to_keyword(self, tag: BaseTag) -> Optional[str]:
        """Return the keyword of ``tag`` or None when the tag is unknown"""
        pass


class StandardDictionary(TagDictionary):
    """The DICOM standard data dictionary shipped with pydicom"""

    def keyword_to_tag(self, keyword: str) -> Optional[BaseTag]:
        value = tag_for_keyword(keyword)
        if value is None:
            return None
        return Tag(value)

    def tag_to_keyword(self, tag: BaseTag) -> Optional[str]:
        return keyword_for_tag(tag) or None


class MappingDictionary(TagDictionary):
    """Dictionary built from an explicit ``{keyword: tag}`` mapping.

    Useful for private tags or for pinning a dictionary version. Lookups
    that miss can fall through to ``fallback``.
    """

    def __init__(self, entries: Mapping[str, int], fallback: Optional[TagDictionary] = None):
        self._by_keyword: Dict[str, BaseTag] = {
            keyword: Tag(value) for keyword, value in entries.items()
        }
        self._by_tag: Dict[BaseTag, str] = {
            tag: keyword for keyword, tag in self._by_keyword.items()
        }
        self._fallback = fallback

    def keyword_to_tag(self, keyword: str) -> Optional[BaseTag]:
        tag = self._by_keyword.get(keyword)
        if tag is None and self._fallback is not None:
            return self._fallback.keyword_to_tag(keyword)
        return tag

    def tag_to_keyword(self, tag: BaseTag) -> Optional[str]:
        keyword = self._by_tag.get(Tag(tag))
        if keyword is None and self._fallback is not None:
            return self._fallback.tag_to_keyword(tag)
        return keyword


STANDARD_DICTIONARY = StandardDictionary()


def format_tag(tag: BaseTag) -> str:
    """Canonical text form of a tag, e.g. ``(0010,0010)``"""
    tag = Tag(tag)
    return f"({tag.group:04X},{tag.element:04X})"


def _parse_numeric(text: str) -> Optional[BaseTag]:
    for pattern in NUMERIC_TAG_PATTERNS:
        match = pattern.match(text)
        if match:
            return Tag(int(match.group(1), 16), int(match.group(2), 16))
    return None


def parse_tag(raw: str, dictionary: Optional[TagDictionary] = None) -> BaseTag:
    """Resolve a user supplied identifier into a tag.

    Numeric forms are tried before keyword lookup; the first match wins.
    Raises ResolutionError when neither applies.
    """
    dictionary = dictionary or STANDARD_DICTIONARY
    text = raw.strip()
    if not text:
        raise ResolutionError(raw)

    tag = _parse_numeric(text)
    if tag is not None:
        return tag

    tag = dictionary.keyword_to_tag(text)
    if tag is not None:
        return tag

    raise ResolutionError(raw)


def tag_alias(tag: BaseTag, dictionary: Optional[TagDictionary] = None) -> str:
    """Keyword for ``tag``, falling back to its ``(GGGG,EEEE)`` form"""
    dictionary = dictionary or STANDARD_DICTIONARY
    return dictionary.tag_to_keyword(tag) or format_tag(tag)
