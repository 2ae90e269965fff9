"""
Update Check

Compares the running version with the newest release on PyPI. The
running version is computed once at start-up by the caller and passed
in.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from .exceptions import ChainDriveError

logger = logging.getLogger(__name__)

PYPI_URL = "https://pypi.org/pypi/chaindrive/json"


def parse_version(version: str) -> Tuple[int, ...]:
    """Numeric release tuple of a version string ("1.2.3rc1" -> (1, 2, 3))."""
    match = re.match(r"\s*v?(\d+(?:\.\d+)*)", version)
    if not match:
        raise ChainDriveError(f"Unparseable version: {version!r}")
    return tuple(int(p) for p in match.group(1).split("."))


@dataclass(frozen=True)
class UpdateStatus:
    current: str
    latest: str

    @property
    def available(self) -> bool:
        return parse_version(self.latest) > parse_version(self.current)


async def check_update(current_version: str, client: Optional[httpx.AsyncClient] = None,
                       url: str = PYPI_URL) -> UpdateStatus:
    """
    Fetch the latest released version.

    Raises:
        ChainDriveError: the index could not be reached or answered oddly
    """
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await client.get(
            url,
            headers={
                "Accept": "application/json",
                "User-Agent": f"chaindrive/{current_version}",
            },
        )
        response.raise_for_status()
        latest = response.json()["info"]["version"]
    except httpx.HTTPError as e:
        raise ChainDriveError(f"Failed to fetch the latest version: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        raise ChainDriveError(f"Unexpected response from {url}: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    logger.debug(f"Latest version {latest}, running {current_version}")
    return UpdateStatus(current=current_version, latest=latest)
