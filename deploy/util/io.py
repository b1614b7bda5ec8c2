import logging
from getpass import getpass
from os import fspath
from fsspec.core import url_to_fs # type: ignore
from pathlib import Path
from typing import Optional, Union

rootLogger = logging.getLogger()

def fleet_getpass(prompt: Optional[str] = None) -> str:
    """wrap getpass.getpass() so the prompt shows up in the terminal and the log

    Log the prompt at CRITICAL level so that it will go past the console handler's level.
    Never log the entered text, only the fact that something was entered.
    """
    if prompt:
        rootLogger.critical(prompt)

    res = getpass(prompt="")
    rootLogger.debug("User provided a password (%d characters)", len(res))

    return res

def download_uri(uri: str, local_dest_path: Union[str, Path]) -> None:
    """Uses the fsspec library to fetch the object at `uri` to the local file system.

    Exactly one attempt is made. Any fsspec/transport error propagates to the caller.

    Args:
        uri: uri of an object to be fetched (https://, file://, s3:// ...)
        local_dest_path: path on the local file system to store the uri object
    """
    lpath = Path(local_dest_path)
    if lpath.exists():
        rootLogger.debug(f"Overwriting {lpath.resolve(strict=False)}")
    lpath.parent.mkdir(parents=True, exist_ok=True)

    fs, rpath = url_to_fs(uri)
    rootLogger.debug(f"Downloading '{uri}' to '{lpath}'")
    fs.get_file(rpath, fspath(lpath)) # fspath() b.c. fsspec deals in strings, not PathLike
    rootLogger.debug(f"Successfully fetched '{uri}' to '{lpath}'")
