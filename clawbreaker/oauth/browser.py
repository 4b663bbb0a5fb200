"""Open URLs in the user's default browser."""

import logging
import subprocess

from ..platform import IS_WINDOWS, get_browser_command

logger = logging.getLogger(__name__)


class BrowserLaunchError(Exception):
    """The browser could not be launched."""

    pass


def open_browser(url: str) -> None:
    """Open a URL in the default browser without waiting for it.

    Args:
        url: The URL to open

    Raises:
        BrowserLaunchError: If the platform command could not be started
    """
    command = get_browser_command(url)
    logger.debug(f"Launching browser with {command[0]}")

    try:
        if IS_WINDOWS:
            subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        else:
            subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
    except OSError as e:
        raise BrowserLaunchError(f"Could not run {command[0]}: {e}") from e
