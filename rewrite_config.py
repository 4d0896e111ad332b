import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Configuration
CONFIG = {
    'DEBUG': True,
    'API_VERSION': '2023-06-01',
    'MAX_TOKENS': 8192,
    'COPY_SETTLE_DELAY': 0.3,  # Minimum wait after the copy keystroke
    'COPY_TIMEOUT': 1.0,  # Give up polling the clipboard after this long
    'COPY_POLL_INTERVAL': 0.05,
    'HOTKEY_REWRITE': 'alt+r',
    'HOTKEY_TOGGLE': 'alt+shift+r',
    'HOTKEY_MANAGE': 'ctrl+alt+p',
    'STORAGE_FILE': 'local_storage.json',
}

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

MODEL_DISPLAY_NAMES = {
    "claude-3-5-sonnet-20241022": "Claude 3.5 Sonnet v2",
    "claude-3-5-sonnet-20240620": "Claude 3.5 Sonnet",
    "claude-3-7-sonnet-20250219": "Claude 3.7 Sonnet",
}

CUSTOM_PRESET_ID = "custom"

_TRUE_VALUES = ("1", "true", "yes", "on")


def log(message, error=False):
    """Log message for debugging"""
    if CONFIG['DEBUG']:
        prefix = "ERROR: " if error else "INFO: "
        print(f"{prefix}{message}")
        if error and sys.exc_info()[0] is not None:
            traceback.print_exc()


def get_model_display_name(model_id):
    """Human readable name for a model identifier."""
    if not model_id:
        return MODEL_DISPLAY_NAMES[DEFAULT_MODEL]
    return MODEL_DISPLAY_NAMES.get(model_id, model_id)


def hotkey_label(hotkey):
    """Turn 'alt+r' into 'Option+R' on macOS and 'Alt+R' elsewhere."""
    parts = []
    for part in hotkey.split('+'):
        if part == 'alt' and sys.platform == 'darwin':
            parts.append('Option')
        elif part == 'ctrl':
            parts.append('Ctrl')
        else:
            parts.append(part.capitalize() if len(part) > 1 else part.upper())
    return '+'.join(parts)


def paste_shortcut_label():
    return "CMD+V" if sys.platform == 'darwin' else "Ctrl+V"


@dataclass(frozen=True)
class Preferences:
    """Read-only settings supplied by the environment at invocation time."""
    api_key: str = ""
    model: str = DEFAULT_MODEL
    avoid_em_dashes: bool = True
    prompt_preset: str = ""
    custom_prompt: str = ""

    @property
    def model_display_name(self):
        return get_model_display_name(self.model)


def _env_flag(value, default):
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def load_preferences(env=None, dotenv_path=None) -> Preferences:
    """
    Build Preferences from environment variables.

    When no explicit mapping is given the process environment is used, seeded
    from a .env file if one exists.
    """
    if env is None:
        load_dotenv(dotenv_path=dotenv_path)
        env = os.environ

    api_key = (env.get("CLAUDE_API_KEY") or env.get("ANTHROPIC_API_KEY") or "").strip()
    model = (env.get("CLAUDE_MODEL") or "").strip() or DEFAULT_MODEL

    return Preferences(
        api_key=api_key,
        model=model,
        avoid_em_dashes=_env_flag(env.get("AVOID_EM_DASHES"), True),
        prompt_preset=(env.get("PROMPT_PRESET") or "").strip(),
        custom_prompt=(env.get("CUSTOM_PROMPT") or "").strip(),
    )


def data_dir(env=None) -> Path:
    """Per-user directory holding the persisted local storage file."""
    env = os.environ if env is None else env
    configured = env.get("REWRITE_DATA_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".rewrite_this"
