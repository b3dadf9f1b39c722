#!/usr/bin/env python3
"""
Dump selected DICOM tags from a batch of files to CSV.

Inputs can be DICOM files or directories; directories contribute their
direct ``.dcm`` entries. Files that cannot be read are skipped and reported,
the rest of the batch is still written.
"""

import argparse
import logging
import sys
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Type, Union

from dicom_tags import ResolutionError, format_tag, parse_tag, tag_alias
from extract_metadata import extract_tags_from_paths, partition_results
from store_metadata import write_table
from tag_spec import TagFileError, build_tag_spec

LOGGER = logging.getLogger(__name__)

DEFAULT_UNTIL = "PixelData"
DICOM_EXTENSION = ".dcm"
LOG_FORMAT = "%(levelname)s: %(message)s"


class InvalidInputError(ValueError):
    """An input path that is neither a regular file nor a directory"""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Invalid input: {path}")


def expand_inputs(
    paths: Sequence[Union[str, Path]],
    extension: str = DICOM_EXTENSION,
) -> List[Path]:
    """Turn files and directories into a flat, ordered list of files.

    Directories contribute their direct entries whose suffix matches
    ``extension`` exactly; files given explicitly are kept as they are.
    """
    dcm_files: List[Path] = []
    for raw_path in paths:
        input_path = Path(raw_path)
        if input_path.is_dir():
            for entry in input_path.iterdir():
                if entry.is_file() and entry.suffix == extension:
                    dcm_files.append(entry)
        elif input_path.is_file():
            dcm_files.append(input_path)
        else:
            raise InvalidInputError(input_path)
    return dcm_files


def process_files(
    inputs: Sequence[Union[str, Path]],
    tags: Sequence[str] = (),
    tag_files: Sequence[Union[str, Path]] = (),
    until: str = DEFAULT_UNTIL,
    jobs: Optional[int] = None,
    output=None,
    timing: bool = False,
    executor_cls: Type[Executor] = ProcessPoolExecutor,
) -> int:
    """Run the whole dump and return a process exit code.

    Args:
        inputs: DICOM files and/or directories
        tags: tag identifiers given on the command line
        tag_files: files with one tag identifier per line
        until: boundary tag; decoding stops before it
        jobs: worker pool size (defaults to min(32, file count))
        output: CSV destination path or stream, stdout when None
        timing: log elapsed extraction time
        executor_cls: executor class that runs the per-file extraction
    """
    if jobs is not None and jobs < 1:
        LOGGER.error("Number of jobs must be greater than zero, got %d", jobs)
        return 2

    try:
        read_until = parse_tag(until)
        LOGGER.info("Read until tag: %s %s", tag_alias(read_until), format_tag(read_until))
        spec = build_tag_spec(tags, tag_files)
    except (ResolutionError, TagFileError) as exc:
        LOGGER.error("%s", exc)
        return 2
    except OSError as exc:
        LOGGER.error("Could not read tag file: %s", exc)
        return 2

    if not spec:
        LOGGER.warning("No tags specified")
        return 0

    try:
        dcm_files = expand_inputs(inputs)
    except (InvalidInputError, OSError) as exc:
        LOGGER.error("%s", exc)
        return 2

    if not dcm_files:
        LOGGER.warning("No DICOM files found")
        return 0

    start = time.perf_counter() if timing else None
    outcomes = extract_tags_from_paths(
        dcm_files,
        spec,
        read_until,
        max_workers=jobs,
        executor_cls=executor_cls,
    )
    if timing and start is not None:
        elapsed = time.perf_counter() - start
        LOGGER.info("Processed %d DICOM file(s) in %.2fs", len(dcm_files), elapsed)

    successes, failures = partition_results(outcomes)
    for failure in failures:
        LOGGER.warning("Skipped %s: %s", failure.path, failure.reason)
    if failures:
        LOGGER.warning("Skipped %d of %d file(s)", len(failures), len(dcm_files))

    try:
        written = write_table(successes, spec, output)
    except OSError as exc:
        LOGGER.error("Failed to write output: %s", exc)
        return 1

    LOGGER.info("Wrote %d row(s)", written)
    return 0


def _split_trailing_output(argv: List[str]):
    if "--" not in argv:
        return argv, []
    index = argv.index("--")
    return argv[:index], argv[index + 1:]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dicom-tag-dump",
        description="Dump DICOM tags to CSV.",
        epilog="An output file may also be given after '--' at the end of the command line.",
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="DICOM files or directories containing .dcm files.",
    )
    parser.add_argument(
        "-t",
        "--tag",
        dest="tags",
        action="append",
        default=[],
        help="Tag to extract: keyword (PatientName), ggggeeee, gggg,eeee or (gggg,eeee). Repeatable.",
    )
    parser.add_argument(
        "-f",
        "--tag-file",
        dest="tag_files",
        action="append",
        type=Path,
        default=[],
        help="Load tags from a file, one per line. Repeatable.",
    )
    parser.add_argument(
        "--until",
        default=DEFAULT_UNTIL,
        help=f"Stop reading each file at this tag (defaults to {DEFAULT_UNTIL}).",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of worker processes (defaults to min(32, file count)).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="CSV file to write. Defaults to stdout.",
    )
    parser.add_argument(
        "--timing",
        action="store_true",
        help="Log elapsed time for the extraction run.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every tag value read.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    raw_args = list(sys.argv[1:] if argv is None else argv)
    option_args, trailing = _split_trailing_output(raw_args)
    args = parser.parse_args(option_args)

    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be greater than zero")
    if len(trailing) > 1:
        parser.error("only one output file may follow '--'")
    if trailing and args.output is not None:
        parser.error("give the output file either with --output or after '--', not both")
    output = Path(trailing[0]) if trailing else args.output

    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
    )

    return process_files(
        args.inputs,
        tags=args.tags,
        tag_files=args.tag_files,
        until=args.until,
        jobs=args.jobs,
        output=output,
        timing=args.timing,
    )


if __name__ == "__main__":
    raise SystemExit(main())
