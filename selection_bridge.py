import sys
import time
from enum import Enum

import pyperclip

from rewrite_config import CONFIG, log


class AutomationError(Exception):
    """Clipboard or keystroke simulation failed."""


class CommitOutcome(Enum):
    PASTED = "pasted"
    COPIED_ONLY = "copied_only"  # Clipboard holds the text, paste keystroke failed


def press_shortcut(key):
    """Send Cmd+<key> on macOS, Ctrl+<key> elsewhere, to the foreground app."""
    # pyautogui connects to the display on import
    import pyautogui

    modifier = 'command' if sys.platform == 'darwin' else 'ctrl'
    pyautogui.hotkey(modifier, key)


class ClipboardBridge:
    """
    Captures the current selection through the clipboard and writes text back.

    capture_selection() snapshots the clipboard, clears it, sends the copy
    shortcut and polls until the clipboard is filled or the timeout runs out.
    The snapshot is restored afterwards whatever happened.
    commit_replacement() puts the text on the clipboard and sends paste.
    """

    def __init__(self, read_clipboard=pyperclip.paste, write_clipboard=pyperclip.copy,
                 send_shortcut=press_shortcut, sleep=time.sleep, clock=time.monotonic,
                 settle_delay=None, timeout=None, poll_interval=None):
        self.read_clipboard = read_clipboard
        self.write_clipboard = write_clipboard
        self.send_shortcut = send_shortcut
        self.sleep = sleep
        self.clock = clock
        self.settle_delay = CONFIG['COPY_SETTLE_DELAY'] if settle_delay is None else settle_delay
        self.timeout = CONFIG['COPY_TIMEOUT'] if timeout is None else timeout
        self.poll_interval = CONFIG['COPY_POLL_INTERVAL'] if poll_interval is None else poll_interval

    def capture_selection(self):
        """Return the selected text, "" if nothing was copied, or None on automation failure."""
        try:
            original_clipboard = self.read_clipboard()
        except Exception as e:
            log(f"Error reading clipboard: {e}", error=True)
            return None

        captured = None
        try:
            self.write_clipboard("")
            self.send_shortcut('c')
            captured = self._wait_for_copy()
        except Exception as e:
            log(f"Error getting selected text: {e}", error=True)
            captured = None
        finally:
            try:
                self.write_clipboard(original_clipboard)
            except Exception as e:
                log(f"Error restoring clipboard: {e}", error=True)

        return captured

    def _wait_for_copy(self):
        self.sleep(self.settle_delay)
        deadline = self.clock() + max(self.timeout - self.settle_delay, 0)
        while True:
            text = self.read_clipboard()
            if text:
                return text
            if self.clock() >= deadline:
                log("Clipboard did not change after copy")
                return text or ""
            self.sleep(self.poll_interval)

    def commit_replacement(self, text):
        """Put text on the clipboard and paste it over the selection."""
        try:
            self.write_clipboard(text)
        except Exception as e:
            raise AutomationError(f"Could not write to clipboard: {e}") from e

        try:
            self.send_shortcut('v')
        except Exception as e:
            log(f"Error auto-pasting: {e}", error=True)
            return CommitOutcome.COPIED_ONLY
        return CommitOutcome.PASTED
