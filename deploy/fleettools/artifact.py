""" Keeps a single validated copy of the runner archive in the fleet's base directory. """

from __future__ import annotations

import logging
import tarfile
import zipfile
import zlib
from pathlib import Path

from fleettools.errors import ArtifactError
from util.io import download_uri

from typing import Union

rootLogger = logging.getLogger()

READ_CHUNK_SIZE = 1 << 20

def is_valid_archive(path: Union[str, Path]) -> bool:
    """Open `path` as a zip or tar archive and read every member to the end.

    Reading every member makes the zip CRC checks and the gzip trailer check
    run, so truncated downloads are caught and not only bad headers.
    """
    path = Path(path)
    if not path.is_file():
        return False

    try:
        if zipfile.is_zipfile(path):
            with zipfile.ZipFile(path) as zf:
                bad_member = zf.testzip()
                if bad_member is not None:
                    rootLogger.debug(f"{path}: bad CRC for member {bad_member}")
                    return False
                return True

        if tarfile.is_tarfile(path):
            with tarfile.open(path) as tf:
                for member in tf:
                    if not member.isfile():
                        continue
                    extracted = tf.extractfile(member)
                    assert extracted is not None
                    while extracted.read(READ_CHUNK_SIZE):
                        pass
            return True
    except (zipfile.BadZipFile, tarfile.TarError, zlib.error, EOFError, OSError) as e:
        rootLogger.debug(f"{path} is not a readable archive: {e}")
        return False

    rootLogger.debug(f"{path} is neither a zip nor a tar archive")
    return False

def ensure_artifact(target_path: Union[str, Path], download_url: str) -> None:
    """Make sure a valid runner archive exists at `target_path`.

    A valid cached copy is kept as-is. A missing or corrupt copy is (re)downloaded
    from `download_url` once and validated again.

    Raises:
        ArtifactError: the download failed or the downloaded file is not a valid archive.
            No invalid file is left at `target_path` in that case.
    """
    target = Path(target_path)

    if target.exists():
        if is_valid_archive(target):
            rootLogger.info(f"Using cached runner archive {target}")
            return
        rootLogger.warning(f"Cached runner archive {target} is corrupt, deleting it.")
        target.unlink()

    rootLogger.info(f"Downloading runner archive {download_url}")
    try:
        download_uri(download_url, target)
    except Exception as e:
        target.unlink(missing_ok=True)
        raise ArtifactError(f"Failed to download {download_url} to {target}: {e}") from e

    if not is_valid_archive(target):
        target.unlink(missing_ok=True)
        raise ArtifactError(f"Downloaded file from {download_url} is not a valid archive")

    rootLogger.info(f"Runner archive saved to {target}")
