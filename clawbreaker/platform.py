"""Cross-platform helpers for launching external programs."""

import sys

# Platform detection
IS_WINDOWS = sys.platform == "win32"
IS_MACOS = sys.platform == "darwin"


def get_browser_command(url: str) -> list[str]:
    """Get the command that opens a URL in the default browser.

    On macOS: open <url>
    On Windows: rundll32 url.dll,FileProtocolHandler <url>
    Elsewhere: xdg-open <url>
    """
    if IS_MACOS:
        return ["open", url]
    elif IS_WINDOWS:
        # `cmd /c start` would split the query string on "&"
        return ["rundll32", "url.dll,FileProtocolHandler", url]
    else:
        return ["xdg-open", url]
