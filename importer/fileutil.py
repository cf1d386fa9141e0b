"""
File helpers shared by the pipeline stages: checksums, folder listing,
file comparison and file creation from a stream.
"""

import hashlib
import os
import shutil
from pathlib import Path
from typing import BinaryIO, Callable, List
from pydantic import BaseModel
from core.exceptions import (
    InvalidFolderError,
    InvalidFilePathError,
    ReadWritePermissionError,
    FileAccessError,
)
import logging

logger = logging.getLogger(__name__)

# Bytes of the SHA-256 digest kept in the stored checksum
CHECKSUM_BYTES = 16
_READ_BLOCK = 64 * 1024


class FileMeta(BaseModel):
    """Name, folder and checksum of a file written to disk"""
    file_name: str
    file_path: str
    checksum: str

    @property
    def full_path(self) -> str:
        return os.path.join(self.file_path, self.file_name)


def get_checksum(stream: BinaryIO) -> str:
    """SHA-256 of the stream content, truncated to 16 bytes, hex encoded."""
    if stream is None:
        raise FileAccessError("The given file stream is invalid")

    hasher = hashlib.sha256()
    for block in iter(lambda: stream.read(_READ_BLOCK), b""):
        hasher.update(block)

    return hasher.digest()[:CHECKSUM_BYTES].hex()


def get_checksum_by_name(file_name) -> str:
    """Checksum of the file at the given path"""
    try:
        with open(file_name, "rb") as f:
            return get_checksum(f)
    except FileNotFoundError as e:
        raise InvalidFilePathError(
            "The given file path is invalid",
            context={"file_path": str(file_name)},
            original_exception=e
        )


def list_files_in_folder(folder) -> List[os.DirEntry]:
    """Regular files directly inside the folder; sub-folders are skipped."""
    try:
        with os.scandir(folder) as entries:
            return [entry for entry in entries if entry.is_file()]
    except (FileNotFoundError, NotADirectoryError) as e:
        raise InvalidFolderError(
            "The given path is not a valid folder",
            context={"folder": str(folder)},
            original_exception=e
        )


def compare_files(file_a: BinaryIO, file_b: BinaryIO) -> bool:
    """True when both streams have the same checksum"""
    if file_a is None or file_b is None:
        raise FileAccessError("The given file stream is invalid")
    return get_checksum(file_a) == get_checksum(file_b)


def compare_files_by_name(file_a_name, file_b_name) -> bool:
    return get_checksum_by_name(file_a_name) == get_checksum_by_name(file_b_name)


def _check_is_folder(folder) -> None:
    if not Path(folder).is_dir():
        raise InvalidFolderError(
            "The given path is not a valid folder",
            context={"folder": str(folder)}
        )


def create_from_stream(stream: BinaryIO, folder, new_file_name: Callable[[], str]) -> FileMeta:
    """
    Write the stream into a new file inside folder.

    Args:
        stream: Binary stream with the file content
        folder: Existing, writable destination folder
        new_file_name: Returns the name (with extension) for the new file

    Returns:
        FileMeta of the written file, checksum computed from disk
    """
    if stream is None:
        raise FileAccessError("The given file stream is invalid")

    _check_is_folder(folder)

    file_name = new_file_name()
    full_path = os.path.join(folder, file_name)

    try:
        with open(full_path, "wb") as f:
            shutil.copyfileobj(stream, f)
    except PermissionError as e:
        raise ReadWritePermissionError(
            "User has no permission to write/read files in the given folder",
            context={"folder": str(folder)},
            original_exception=e
        )

    checksum = get_checksum_by_name(full_path)
    logger.debug(f"Created {full_path} (checksum {checksum})")

    return FileMeta(file_name=file_name, file_path=str(folder), checksum=checksum)
