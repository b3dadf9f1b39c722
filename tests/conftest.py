from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.sequence import Sequence
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

CT_IMAGE_STORAGE = "1.2.840.10008.5.1.4.1.1.2"


def make_dicom(path: Path, **elements: object) -> Path:
    """Write a small explicit VR little endian file with fake pixel bytes."""
    sop_instance_uid = generate_uid()

    ds = Dataset()
    ds.file_meta = FileMetaDataset()
    ds.file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds.file_meta.MediaStorageSOPClassUID = CT_IMAGE_STORAGE
    ds.file_meta.MediaStorageSOPInstanceUID = sop_instance_uid

    ds.SOPClassUID = CT_IMAGE_STORAGE
    ds.SOPInstanceUID = sop_instance_uid
    ds.Modality = "CT"
    for keyword, value in elements.items():
        setattr(ds, keyword, value)
    ds.add_new(0x7FE00010, "OB", b"\x00" * 16)

    path.parent.mkdir(parents=True, exist_ok=True)
    ds.save_as(path, enforce_file_format=True)
    return path


@pytest.fixture
def write_dicom() -> Callable[..., Path]:
    return make_dicom


@pytest.fixture
def corrupt_file(tmp_path: Path) -> Path:
    path = tmp_path / "corrupt.dcm"
    path.write_bytes(b"this is not a DICOM file at all")
    return path


@pytest.fixture
def sequence_item() -> Sequence:
    item = Dataset()
    item.CodeValue = "T-D0050"
    return Sequence([item])
