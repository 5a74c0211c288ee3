"""
Artifact download.

Streams a URL to a local file with httpx, following redirects by hand so
the hop count stays bounded. The body goes to a ".part" file that is
renamed into place on success and removed on any failure.
"""

import logging
import os
import threading
from pathlib import Path

import httpx

from .state import LauncherState

logger = logging.getLogger(__name__)

REDIRECT_CODES = {301, 302, 303, 307, 308}
USER_AGENT = "jarlauncher/0.1"
CHUNK_SIZE = 64 * 1024


class FetchError(Exception):
    """Base class for download failures."""


class BadStatusError(FetchError):
    """The terminal response was not a 2xx."""

    def __init__(self, status_code: int, url: str = ""):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Failed to download {url}: HTTP {status_code}")


class FetchTransportError(FetchError):
    """Connection, DNS or timeout failure."""

    def __init__(self, cause: Exception, url: str = ""):
        self.cause = cause
        self.url = url
        super().__init__(f"Failed to download {url}: {cause!r}")


class InvalidURLError(FetchError):
    """The URL (or a redirect target) could not be parsed."""

    def __init__(self, cause: Exception, url: str = ""):
        self.cause = cause
        self.url = url
        super().__init__(f"Invalid download URL {url}: {cause}")


class FetchCancelled(FetchError):
    """The download was aborted by a stop request."""


class RedirectLimitError(FetchError):
    """Too many redirects."""

    def __init__(self, max_redirects: int, url: str = ""):
        self.max_redirects = max_redirects
        self.url = url
        super().__init__(f"Exceeded {max_redirects} redirects fetching {url}")


def _report(state: LauncherState | None, message: str, level: int = logging.INFO):
    if state is not None:
        state.log(message, level, logger)
    else:
        logger.log(level, message)


def _write_body(
    response: httpx.Response,
    dest: Path,
    state: LauncherState | None,
    cancel: threading.Event | None = None,
) -> int:
    """Stream the response body to dest via a temporary file."""
    total = int(response.headers.get("content-length") or 0) or None
    tmp = dest.with_name(dest.name + ".part")
    written = 0
    next_report = 10

    try:
        with open(tmp, "wb") as fh:
            for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                if cancel is not None and cancel.is_set():
                    raise FetchCancelled(f"Download of {dest.name} cancelled")
                fh.write(chunk)
                written += len(chunk)
                if total:
                    percent = written * 100 // total
                    if percent >= next_report:
                        _report(state, f"Downloaded {written}/{total} bytes ({percent}%)")
                        next_report = (percent // 10 + 1) * 10
        os.replace(tmp, dest)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    return written


def fetch(
    url: str,
    dest: str | Path,
    *,
    client: httpx.Client | None = None,
    state: LauncherState | None = None,
    max_redirects: int = 10,
    timeout: float = 60,
    overwrite: bool = False,
    cancel: threading.Event | None = None,
) -> int:
    """
    Download url to dest and return the number of bytes written.

    Raises BadStatusError for non-2xx terminal responses, FetchTransportError
    for network faults, InvalidURLError for unparseable URLs and
    RedirectLimitError after max_redirects hops. Setting cancel aborts the
    download between chunks with FetchCancelled.
    """
    dest = Path(dest)
    if dest.exists() and not overwrite:
        raise FileExistsError(f"{dest} already exists")
    dest.parent.mkdir(parents=True, exist_ok=True)

    own_client = client is None
    if own_client:
        client = httpx.Client(
            timeout=timeout,
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
        )

    current = url
    try:
        for _ in range(max_redirects + 1):
            with client.stream("GET", current) as response:
                location = response.headers.get("location")
                if response.status_code in REDIRECT_CODES and location:
                    current = str(response.url.join(location))
                    logger.debug(f"Redirected to {current}")
                    continue

                if not response.is_success:
                    raise BadStatusError(response.status_code, current)

                written = _write_body(response, dest, state, cancel)
                _report(state, f"Downloaded {written} bytes to {dest.name}")
                return written

        raise RedirectLimitError(max_redirects, url)

    except httpx.InvalidURL as e:
        raise InvalidURLError(e, current) from e
    except httpx.HTTPError as e:
        raise FetchTransportError(e, current) from e
    finally:
        if own_client:
            client.close()
