import sys
import threading
import tkinter as tk
import traceback

import keyboard

from local_storage import JsonFileStorage
from manage_presets import ManagePresetsWindow
from notifier import Notifier, ToastStyle
from preset_store import PresetStore
from rewrite_config import CONFIG, data_dir, hotkey_label, load_preferences, log
from rewrite_this import RewriteCommand, toggle_preset
from selection_bridge import ClipboardBridge

TOAST_COLORS = {
    ToastStyle.SUCCESS: "#1f7a1f",
    ToastStyle.FAILURE: "#b00020",
    ToastStyle.ANIMATED: "#333333",
}


class TkNotifier(Notifier):
    """Logs like Notifier and also flashes a small topmost popup."""

    def __init__(self, root, duration_ms=2500):
        self.root = root
        self.duration_ms = duration_ms

    def hud(self, message):
        super().hud(message)
        self.root.after(0, self._popup, message, "", "#333333")

    def toast(self, style, title, message=""):
        super().toast(style, title, message)
        self.root.after(0, self._popup, title, message, TOAST_COLORS[style])

    def _popup(self, title, message, color):
        try:
            popup = tk.Toplevel(self.root)
            popup.overrideredirect(True)
            popup.attributes('-topmost', True)
            popup.attributes('-alpha', 0.9)
            popup.configure(bg=color)

            tk.Label(popup, text=title, fg="white", bg=color, font=("Arial", 12, "bold")).pack(padx=16, pady=(10, 2))
            if message:
                tk.Label(popup, text=message, fg="white", bg=color, font=("Arial", 10),
                         wraplength=360).pack(padx=16, pady=(0, 10))

            popup.update_idletasks()
            x = (popup.winfo_screenwidth() - popup.winfo_width()) // 2
            y = popup.winfo_screenheight() // 4
            popup.geometry(f"+{x}+{y}")
            popup.after(self.duration_ms, popup.destroy)
        except tk.TclError as e:
            log(f"Error showing popup: {e}", error=True)


class RewriteApp:
    def __init__(self, root):
        self.root = root
        self.root.title("Rewrite This")
        self.root.withdraw()

        self.notifier = TkNotifier(root)
        storage = JsonFileStorage(data_dir() / CONFIG['STORAGE_FILE'])
        self.store = PresetStore(storage, notifier=self.notifier)
        self.bridge = ClipboardBridge()

        # One command in flight at a time
        self.command_lock = threading.Lock()
        self.manage_window = None

        self.setup_keyboard_hook()
        log("Application started")
        log(f"Running on: {sys.platform} platform")

    def setup_keyboard_hook(self):
        """Set up global hotkeys for the three commands"""
        try:
            keyboard.add_hotkey(CONFIG['HOTKEY_REWRITE'], lambda: self.run_exclusive(self.rewrite))
            keyboard.add_hotkey(CONFIG['HOTKEY_TOGGLE'], lambda: self.run_exclusive(self.toggle))
            keyboard.add_hotkey(CONFIG['HOTKEY_MANAGE'], lambda: self.root.after(0, self.open_manage_presets))
            log("Keyboard hooks set up successfully")
        except Exception as e:
            log(f"Failed to set up keyboard hooks: {e}", error=True)

    def run_exclusive(self, command):
        if not self.command_lock.acquire(blocking=False):
            log("A command is already running, ignoring hotkey")
            return

        def worker():
            try:
                command()
            except Exception as e:
                log(f"Unhandled error in command: {e}", error=True)
                self.notifier.toast(ToastStyle.FAILURE, "Error", str(e))
            finally:
                self.command_lock.release()

        threading.Thread(target=worker, daemon=True).start()

    def rewrite(self):
        # Let the user release the hotkey modifiers before we send Ctrl+C
        keyboard.release(CONFIG['HOTKEY_REWRITE'])
        result = RewriteCommand(self.store, self.bridge, self.notifier).run()
        log(f"Rewrite finished in state {result.state.name}")

    def toggle(self):
        toggle_preset(self.store, self.notifier, load_preferences())

    def open_manage_presets(self):
        try:
            if self.manage_window is not None and self.manage_window.window.winfo_exists():
                self.manage_window.window.deiconify()
                self.manage_window.window.lift()
                self.manage_window.reload()
                return
        except tk.TclError:
            # Window was closed
            pass
        self.manage_window = ManagePresetsWindow(self.root, self.store, self.notifier)


def main():
    """Main entry point"""
    print("-" * 60)
    print("Rewrite This - rewrite selected text with Claude")
    print("-" * 60)
    print(f"Platform detected: {sys.platform}")

    try:
        root = tk.Tk()
        RewriteApp(root)

        print("\nInstructions:")
        print(f"1. Select text in any application and press {hotkey_label(CONFIG['HOTKEY_REWRITE'])}")
        print(f"2. Press {hotkey_label(CONFIG['HOTKEY_TOGGLE'])} to switch to the next preset")
        print(f"3. Press {hotkey_label(CONFIG['HOTKEY_MANAGE'])} to add, edit or delete presets")
        print("\nApplication running... (Press Ctrl+C in this console to exit)")

        root.mainloop()
    except KeyboardInterrupt:
        print("\nApplication terminated by user")
    except Exception as e:
        print(f"Fatal error: {e}")
        traceback.print_exc()


if __name__ == "__main__":
    main()
