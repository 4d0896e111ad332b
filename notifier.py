from enum import Enum

from rewrite_config import log


class ToastStyle(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ANIMATED = "animated"


class Notifier:
    """
    User-visible notices. The console rendition only logs them; the desktop
    app swaps in a subclass that also draws a popup.
    """

    def hud(self, message):
        """Short confirmation that disappears on its own."""
        log(f"[hud] {message}")

    def toast(self, style, title, message=""):
        text = f"[{style.value}] {title}" + (f": {message}" if message else "")
        log(text, error=style is ToastStyle.FAILURE)
