"""On-disk storage of per-checkpoint output buffers.

Each checkpoint gets its own file of fixed-size binary records, one per
document in document order: a little-endian ``uint32`` arity followed by
``arity`` float64 values (one per output dimension). Files are appended to, so
several dataset parts processed one after another land in the same file.
"""

from __future__ import annotations

import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional

import numpy as np

from staged_eval.utils.logging import get_logger

logger = get_logger(__name__)


def approx_record_dtype(approx_dimension: int) -> np.dtype:
    return np.dtype([("arity", "<u4"), ("values", "<f8", (approx_dimension,))])


def write_approx_records(out: BinaryIO, approx: np.ndarray) -> None:
    """Append one record per document of ``approx`` (shape ``(dimension, docs)``)."""
    records = np.empty(approx.shape[1], dtype=approx_record_dtype(approx.shape[0]))
    records["arity"] = approx.shape[0]
    records["values"] = approx.T
    out.write(records.tobytes())


def read_approx_records(source: BinaryIO, approx_dimension: int, doc_count: int, name: str = "") -> np.ndarray:
    """Read exactly ``doc_count`` records; returns ``(dimension, doc_count)``."""
    dtype = approx_record_dtype(approx_dimension)
    payload = source.read(dtype.itemsize * doc_count)
    if len(payload) != dtype.itemsize * doc_count:
        raise ValueError(
            f"Approx storage {name} is truncated: expected {doc_count} records, "
            f"found {len(payload) // dtype.itemsize}"
        )
    records = np.frombuffer(payload, dtype=dtype)
    if np.any(records["arity"] != approx_dimension):
        raise ValueError(f"Approx storage {name} has records with arity other than {approx_dimension}")
    return np.ascontiguousarray(records["values"].T, dtype=np.float64)


class ApproxReader:
    """Sequential reader over one checkpoint file.

    Resuming accumulation over several dataset parts consumes the file part by
    part, so the position is kept between ``read`` calls.
    """

    def __init__(self, path: Path, approx_dimension: int):
        self.path = path
        self.approx_dimension = approx_dimension
        self._stream: Optional[BinaryIO] = open(path, "rb")

    def read(self, doc_count: int) -> np.ndarray:
        if self._stream is None:
            raise ValueError(f"Reader for {self.path} is closed")
        return read_approx_records(self._stream, self.approx_dimension, doc_count, name=str(self.path))

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class ApproxStorage:
    """Checkpoint index to file mapping under ``tmp_dir``.

    The directory and file names are created on first use. ``cleanup`` must be
    called by the owner on success and failure; it removes every remaining file
    and the directory itself if this object created it.
    """

    def __init__(self, tmp_dir: Path, approx_dimension: int, delete_tmp_dir_on_exit: bool = True):
        self.tmp_dir = Path(tmp_dir)
        self.approx_dimension = approx_dimension
        self.delete_tmp_dir_on_exit = delete_tmp_dir_on_exit
        self._files: Dict[int, Path] = {}
        self._created_tmp_dir = False

    def path_for(self, index: int) -> Path:
        path = self._files.get(index)
        if path is not None:
            return path
        if not self.tmp_dir.exists():
            self.tmp_dir.mkdir(parents=True)
            self._created_tmp_dir = True
        path = self.tmp_dir / f"{uuid.uuid4()}_approx_{index}.tmp"
        if path.exists():
            logger.info("Path already exists %s. Will overwrite file", path)
            path.unlink()
        self._files[index] = path
        return path

    def save(self, index: int, approx: np.ndarray) -> None:
        if approx.shape[0] != self.approx_dimension:
            raise ValueError(f"Expected approx dimension {self.approx_dimension}, got {approx.shape[0]}")
        with open(self.path_for(index), "ab") as out:
            write_approx_records(out, approx)

    def _existing_path(self, index: int) -> Path:
        path = self._files.get(index)
        if path is None or not path.exists():
            raise FileNotFoundError(f"No stored approx for checkpoint index {index}")
        return path

    def load(self, index: int, doc_count: int) -> np.ndarray:
        path = self._existing_path(index)
        with open(path, "rb") as source:
            return read_approx_records(source, self.approx_dimension, doc_count, name=str(path))

    def open_reader(self, index: int) -> ApproxReader:
        return ApproxReader(self._existing_path(index), self.approx_dimension)

    def delete(self, index: int) -> None:
        path = self._files.pop(index, None)
        if path is not None and path.exists():
            path.unlink()

    def stored_indices(self) -> List[int]:
        return sorted(index for index, path in self._files.items() if path.exists())

    def cleanup(self) -> None:
        for index in list(self._files):
            self.delete(index)
        if self._created_tmp_dir and self.delete_tmp_dir_on_exit and self.tmp_dir.exists():
            shutil.rmtree(self.tmp_dir)
            self._created_tmp_dir = False
