#!/usr/bin/env python3
"""
Extract requested DICOM tag values from files.

Each file is read only up to a boundary tag (PixelData by default) so bulk
image data is never decoded. Files are processed in a process pool and the
results come back in input order.
"""

import logging
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.filereader import read_partial
from pydicom.multival import MultiValue
from pydicom.tag import BaseTag, Tag

from dicom_tags import format_tag
from tag_spec import TagSpec

LOGGER = logging.getLogger(__name__)

MAX_DEFAULT_WORKERS = 32
VALUE_DELIMITER = "\\"
FILE_META_GROUP = 0x0002
TEXT_CONTROL_BYTES = frozenset((0x09, 0x0A, 0x0D))
TEXT_RATIO = 0.90


@dataclass(frozen=True)
class ExtractionResult:
    """Values extracted from one file, keyed by tag. Every requested tag is present."""

    path: Path
    values: Dict[BaseTag, str] = field(default_factory=dict)

    def value_for(self, tag: BaseTag) -> str:
        return self.values.get(tag, "")


@dataclass(frozen=True)
class ExtractionFailure:
    """A file that could not be opened or decoded"""

    path: Path
    reason: str


FileOutcome = Union[ExtractionResult, ExtractionFailure]


def _bytes_to_text(tag: BaseTag, raw: bytes) -> str:
    """Decode a byte value that carries text, up to the first NUL.

    Raises ValueError when less than TEXT_RATIO of those bytes are
    printable ASCII, tab, CR or LF.
    """
    head = raw.split(b"\x00", 1)[0]
    if not head:
        return ""
    printable = sum(1 for b in head if b in TEXT_CONTROL_BYTES or 32 <= b <= 126)
    if printable < TEXT_RATIO * len(head):
        raise ValueError(f"{format_tag(tag)} holds binary data")
    return head.decode("latin-1").strip()


def element_to_text(elem: DataElement) -> str:
    """Render an element value as a display string.

    Raises ValueError for values that have no text form (sequences,
    binary payloads).
    """
    if elem.VR == "SQ":
        raise ValueError(f"{format_tag(elem.tag)} is a sequence")

    value = elem.value
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return _bytes_to_text(elem.tag, bytes(value))
    if isinstance(value, (MultiValue, list, tuple)):
        return VALUE_DELIMITER.join(str(item).strip() for item in value)
    return str(value).strip()


def open_dataset(path: Path, until: BaseTag) -> Dataset:
    """Read a DICOM file, stopping before the first top-level tag >= ``until``"""
    boundary = Tag(until)

    def _stop_at_boundary(tag: BaseTag, vr: Optional[str], length: int) -> bool:
        return tag >= boundary

    with open(path, "rb") as fp:
        return read_partial(fp, stop_when=_stop_at_boundary, force=False)


def _lookup(ds: Dataset, tag: BaseTag) -> Optional[DataElement]:
    if tag.group == FILE_META_GROUP:
        file_meta = getattr(ds, "file_meta", None)
        if file_meta is None:
            return None
        return file_meta.get(tag)
    return ds.get(tag)


def extract_tags(path: Path, spec: TagSpec, until: BaseTag) -> FileOutcome:
    """Extract every tag of ``spec`` from one file.

    Missing or unconvertible elements become empty strings. A file that
    cannot be opened is returned as an ExtractionFailure, never raised.
    """
    path = Path(path)
    LOGGER.debug("Processing file: %s", path)
    try:
        ds = open_dataset(path, until)
    except Exception as exc:
        return ExtractionFailure(path, f"{type(exc).__name__}: {exc}")

    values: Dict[BaseTag, str] = {}
    for tag in spec:
        try:
            elem = _lookup(ds, tag)
            value = element_to_text(elem) if elem is not None else ""
        except Exception as exc:
            LOGGER.debug("Tag %s unreadable in %s: %s", format_tag(tag), path.name, exc)
            value = ""
        LOGGER.debug("Tag: %s Value: %s", format_tag(tag), value)
        values[tag] = value

    return ExtractionResult(path, values)


def default_worker_count(file_count: int) -> int:
    return min(MAX_DEFAULT_WORKERS, max(file_count, 1))


def extract_tags_from_paths(
    dcm_paths: Sequence[Path],
    spec: TagSpec,
    until: BaseTag,
    max_workers: Optional[int] = None,
    executor_cls: Type[Executor] = ProcessPoolExecutor,
    worker: Callable[[Path, TagSpec, BaseTag], FileOutcome] = extract_tags,
) -> List[FileOutcome]:
    """Run ``worker`` over every path in a bounded pool.

    The returned list has one outcome per path, in the order of ``dcm_paths``,
    whatever order the tasks finish in.
    """
    paths = [Path(p) for p in dcm_paths]
    if not paths:
        return []

    if max_workers is not None and max_workers < 1:
        raise ValueError("max_workers must be greater than zero")
    workers = max_workers or default_worker_count(len(paths))
    LOGGER.info("Found %d files to process using %d workers", len(paths), workers)

    outcomes: List[Optional[FileOutcome]] = [None] * len(paths)

    with executor_cls(max_workers=workers) as executor:
        futures = {
            executor.submit(worker, path, spec, until): index
            for index, path in enumerate(paths)
        }

        for future in as_completed(futures):
            index = futures[future]
            try:
                outcomes[index] = future.result()
            except Exception as exc:
                outcomes[index] = ExtractionFailure(paths[index], f"{type(exc).__name__}: {exc}")

    LOGGER.info("Finished processing files")
    return outcomes  # type: ignore[return-value]


def partition_results(
    outcomes: Sequence[FileOutcome],
) -> Tuple[List[ExtractionResult], List[ExtractionFailure]]:
    """Split outcomes into successes and failures, keeping input order"""
    successes: List[ExtractionResult] = []
    failures: List[ExtractionFailure] = []
    for outcome in outcomes:
        if isinstance(outcome, ExtractionFailure):
            failures.append(outcome)
        else:
            successes.append(outcome)
    return successes, failures
