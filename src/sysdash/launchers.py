"""Hand-offs to the desktop: file manager and web browser."""

import subprocess
import sys
import webbrowser
from pathlib import Path
from urllib.parse import quote_plus

import structlog

log = structlog.get_logger()

DEFAULT_SEARCH_URL = "https://www.google.com/search?q={query}"


class LaunchError(Exception):
    """A launcher could not hand off to the OS. The message is user-facing."""


def reveal_command(path: str, platform: str = sys.platform) -> list[str]:
    """Return the command that shows ``path`` in the platform file manager."""
    if platform.startswith("win"):
        return ["explorer.exe", f"/select,{path}"]
    if platform == "darwin":
        return ["open", "-R", path]
    return ["xdg-open", str(Path(path).parent)]


# File manager children still running; finished ones are reaped on the next launch
_launched: list[subprocess.Popen] = []


def _reap() -> None:
    _launched[:] = [proc for proc in _launched if proc.poll() is None]


def open_file_location(path: str) -> None:
    """Reveal an executable in the OS file manager."""
    if not path:
        raise LaunchError("File location is not available for this process")
    command = reveal_command(path)
    _reap()
    try:
        proc = subprocess.Popen(
            command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        log.warning("open_location_failed", path=path, error=str(e))
        raise LaunchError(f"Could not open file location: {e}") from e
    _launched.append(proc)
    log.info("open_location", path=path)


def search_url(name: str, template: str = DEFAULT_SEARCH_URL) -> str:
    return template.format(query=quote_plus(name))


def search_online(name: str, template: str = DEFAULT_SEARCH_URL) -> str:
    """Open a browser search for a process name and return the URL used."""
    url = search_url(name, template)
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        raise LaunchError(f"Could not search online: {e}") from e
    if not opened:
        raise LaunchError("Could not search online: no browser available")
    log.info("search_online", url=url)
    return url
