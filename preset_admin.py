"""
preset_admin.py

Controller behind the "Manage Presets" window.

Holds the list currently shown to the user and the add / edit / delete /
duplicate actions. Every successful mutation reloads the full list from the
store so the view always matches what is persisted. Deleting asks the
injected confirm callback first. The tkinter window in manage_presets.py only
draws what this class exposes.
"""

import pyperclip

from notifier import ToastStyle
from rewrite_config import log

SUBTITLE_LIMIT = 50


def preset_subtitle(preset):
    if len(preset.prompt) > SUBTITLE_LIMIT:
        return preset.prompt[:SUBTITLE_LIMIT] + "..."
    return preset.prompt


def preset_accessory(preset):
    return "Custom" if preset.is_user_preset else "Default"


def validate_form(name, prompt):
    """Return a dict of field -> error message. Empty when the form is valid."""
    errors = {}
    if not (name or "").strip():
        errors["name"] = "Name is required"
    elif not (prompt or "").strip():
        errors["prompt"] = "Prompt is required"
    return errors


class PresetAdminFlow:
    def __init__(self, store, notifier, confirm, copy_to_clipboard=pyperclip.copy):
        self.store = store
        self.notifier = notifier
        self.confirm = confirm
        self.copy_to_clipboard = copy_to_clipboard
        self.presets = []
        self.is_loading = False

    def refresh(self):
        """Reload the full list from the store."""
        self.is_loading = True
        try:
            self.presets = self.store.list_presets()
        except Exception as e:
            log(f"Error loading presets: {e}", error=True)
            self._failure("Failed to Load Presets", e)
        finally:
            self.is_loading = False
        return self.presets

    def filtered(self, search_text=""):
        needle = (search_text or "").strip().lower()
        if not needle:
            return list(self.presets)
        return [p for p in self.presets if needle in p.name.lower() or needle in p.prompt.lower()]

    def add(self, name, prompt):
        """Returns form errors; an empty dict means the preset was saved."""
        errors = validate_form(name, prompt)
        if errors:
            return errors
        try:
            self.store.add_preset(name, prompt)
        except Exception as e:
            log(f"Error adding preset: {e}", error=True)
            self._failure("Failed to Add Preset", e)
            return {"form": str(e)}
        self.notifier.toast(ToastStyle.SUCCESS, "Preset Added", f'"{name}" has been added to your presets')
        self.refresh()
        return {}

    def edit(self, preset, name, prompt):
        errors = validate_form(name, prompt)
        if errors:
            return errors
        try:
            self.store.edit_preset(preset.id, name, prompt)
        except Exception as e:
            log(f"Error editing preset: {e}", error=True)
            self._failure("Failed to Update Preset", e)
            return {"form": str(e)}
        self.notifier.toast(ToastStyle.SUCCESS, "Preset Updated", f'"{name}" has been updated')
        self.refresh()
        return {}

    def delete(self, preset):
        """Delete after confirmation. Returns True if the preset was deleted."""
        confirmed = self.confirm("Delete Preset", f'Are you sure you want to delete "{preset.name}"?')
        if not confirmed:
            return False
        try:
            self.store.delete_preset(preset.id)
        except Exception as e:
            log(f"Error deleting preset: {e}", error=True)
            self._failure("Failed to Delete Preset", e)
            return False
        self.notifier.toast(ToastStyle.SUCCESS, "Preset Deleted", f'"{preset.name}" has been deleted')
        self.refresh()
        return True

    def duplicate(self, preset):
        try:
            copy = self.store.duplicate_preset(preset)
        except Exception as e:
            log(f"Error duplicating preset: {e}", error=True)
            self._failure("Failed to Duplicate Preset", e)
            return None
        self.notifier.toast(ToastStyle.SUCCESS, "Preset Duplicated", f'Created a copy of "{preset.name}"')
        self.refresh()
        return copy

    def copy_prompt(self, preset):
        self.copy_to_clipboard(preset.prompt)
        self.notifier.hud("Copied prompt to clipboard")

    def _failure(self, title, error):
        self.notifier.toast(ToastStyle.FAILURE, title, str(error) or "Unknown error")
