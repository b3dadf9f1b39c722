#!/usr/bin/env python3
"""
Write extracted tag values as a CSV table
"""

import csv
import sys
from pathlib import Path
from typing import IO, Iterable, List, Optional, Union

from dicom_tags import TagDictionary, tag_alias
from extract_metadata import ExtractionFailure, ExtractionResult, FileOutcome
from tag_spec import TagSpec

FILE_NAME_COLUMN = "FileName"

Output = Union[str, Path, IO[str], None]


def build_header(spec: TagSpec, dictionary: Optional[TagDictionary] = None) -> List[str]:
    return [FILE_NAME_COLUMN] + [tag_alias(tag, dictionary) for tag in spec]


def build_row(result: ExtractionResult, spec: TagSpec) -> List[str]:
    return [result.path.name] + [result.value_for(tag) for tag in spec]


def _write_rows(
    stream: IO[str],
    outcomes: Iterable[FileOutcome],
    spec: TagSpec,
    dictionary: Optional[TagDictionary],
) -> int:
    writer = csv.writer(stream)
    writer.writerow(build_header(spec, dictionary))
    written = 0
    for outcome in outcomes:
        if isinstance(outcome, ExtractionFailure):
            continue
        writer.writerow(build_row(outcome, spec))
        written += 1
    stream.flush()
    return written


def write_table(
    outcomes: Iterable[FileOutcome],
    spec: TagSpec,
    output: Output = None,
    dictionary: Optional[TagDictionary] = None,
) -> int:
    """Write a header and one row per successful extraction.

    ``output`` may be a path, an open text stream, or None for stdout.
    Failed files contribute no row. Returns the number of rows written.
    """
    if output is None:
        return _write_rows(sys.stdout, outcomes, spec, dictionary)

    if isinstance(output, (str, Path)):
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8", newline="") as fh:
            return _write_rows(fh, outcomes, spec, dictionary)

    return _write_rows(output, outcomes, spec, dictionary)
