"""
preset_store.py

Persistence and resolution of rewrite presets.

A preset is a named rewrite instruction. Four presets are built in and never
change at rest. Everything the user does is recorded in one persisted
collection ("user_presets") holding three kinds of records:

- UserPreset: a preset the user created. Always visible.
- Shadow: a user override of a built-in's name/prompt. The built-in keeps its
  own ID in the resolved list.
- Tombstone: hides a built-in from the resolved list.

The list shown to the user is never stored. It is recomputed on every read
from (built-ins, persisted records):

    drop tombstoned built-ins -> apply shadows -> append user presets

On disk the records keep the prefixed-ID layout ("shadow_<id>",
"deleted_<id>", "user_<timestamp>") so existing data stays readable.
"""

import functools
import json
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from rewrite_config import log

USER_PRESETS_KEY = "user_presets"
CURRENT_PRESET_KEY = "current_preset_id"
HAS_USED_API_KEY = "has_used_claude_api_key"

USER_PREFIX = "user_"
SHADOW_PREFIX = "shadow_"
TOMBSTONE_PREFIX = "deleted_"
TOMBSTONE_TEXT = "DELETED"


class PresetNotFoundError(Exception):
    """Raised when an administration operation names an unknown preset."""


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    prompt: str

    @property
    def is_user_preset(self):
        return self.id.startswith(USER_PREFIX)


@dataclass(frozen=True)
class UserPreset:
    id: str
    name: str
    prompt: str


@dataclass(frozen=True)
class Shadow:
    builtin_id: str
    name: str
    prompt: str


@dataclass(frozen=True)
class Tombstone:
    builtin_id: str


BUILTIN_PRESETS = (
    Preset(
        id="conversational",
        name="Conversational & Human",
        prompt="Rewrite this with correct spelling and grammar. Aim to have a conversational and human tone of voice.",
    ),
    Preset(
        id="formal",
        name="Formal & Professional",
        prompt=(
            "Rewrite this with correct spelling and grammar. Use a formal, professional tone suitable for "
            "business or academic contexts."
        ),
    ),
    Preset(
        id="concise",
        name="Concise & Clear",
        prompt=(
            "Rewrite this to be more concise and clear. Remove unnecessary words and simplify complex "
            "sentences while maintaining the original meaning."
        ),
    ),
    Preset(
        id="grammar",
        name="Fix Grammar Only",
        prompt=(
            "Fix only the spelling and grammar in this text. Don't change the style, tone, or word choice "
            "unless necessary for grammatical correctness."
        ),
    ),
)

BUILTIN_IDS = tuple(p.id for p in BUILTIN_PRESETS)


def decode_record(raw):
    """Turn one persisted {id, name, prompt} object into a record variant."""
    record_id = str(raw.get("id", ""))
    name = raw.get("name", "")
    prompt = raw.get("prompt", "")
    if record_id.startswith(TOMBSTONE_PREFIX):
        return Tombstone(builtin_id=record_id[len(TOMBSTONE_PREFIX):])
    if record_id.startswith(SHADOW_PREFIX):
        return Shadow(builtin_id=record_id[len(SHADOW_PREFIX):], name=name, prompt=prompt)
    return UserPreset(id=record_id, name=name, prompt=prompt)


def encode_record(record):
    if isinstance(record, Tombstone):
        return {"id": TOMBSTONE_PREFIX + record.builtin_id, "name": TOMBSTONE_TEXT, "prompt": TOMBSTONE_TEXT}
    if isinstance(record, Shadow):
        return {"id": SHADOW_PREFIX + record.builtin_id, "name": record.name, "prompt": record.prompt}
    return {"id": record.id, "name": record.name, "prompt": record.prompt}


def resolve_presets(records, builtins=BUILTIN_PRESETS) -> List[Preset]:
    """Compute the visible, ordered preset list from the persisted records."""
    deleted = set()
    shadows = {}
    user_presets = []
    seen_user_ids = set()

    for record in records:
        if isinstance(record, Tombstone):
            deleted.add(record.builtin_id)
        elif isinstance(record, Shadow):
            shadows.setdefault(record.builtin_id, record)
        elif record.id not in seen_user_ids:
            seen_user_ids.add(record.id)
            user_presets.append(Preset(id=record.id, name=record.name, prompt=record.prompt))

    resolved = []
    for builtin in builtins:
        if builtin.id in deleted:
            continue
        shadow = shadows.get(builtin.id)
        if shadow:
            resolved.append(Preset(id=builtin.id, name=shadow.name, prompt=shadow.prompt))
        else:
            resolved.append(builtin)

    return resolved + user_presets


def _synchronized(method):
    """Run a read-modify-write store operation under the store lock."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class PresetStore:
    """
    Preset operations over an injected key/value storage.

    Every mutation reads the whole record collection, changes it and writes it
    back under a single key. An optional notifier receives short confirmation
    messages for the user.
    """

    def __init__(self, storage, notifier=None, clock=time.time):
        self.storage = storage
        self.notifier = notifier
        self.clock = clock
        self._lock = threading.RLock()

    # --------------------- persisted records --------------------- #

    def load_records(self):
        raw = self.storage.get_item(USER_PRESETS_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except (TypeError, ValueError) as e:
            log(f"Ignoring unreadable {USER_PRESETS_KEY}: {e}", error=True)
            return []
        if not isinstance(items, list):
            log(f"Ignoring {USER_PRESETS_KEY}: expected a list", error=True)
            return []
        return [decode_record(item) for item in items if isinstance(item, dict)]

    def save_records(self, records):
        payload = json.dumps([encode_record(r) for r in records], ensure_ascii=False)
        self.storage.set_item(USER_PRESETS_KEY, payload)

    # --------------------- selection pointer --------------------- #

    def current_preset_id(self) -> Optional[str]:
        return self.storage.get_item(CURRENT_PRESET_KEY) or None

    def set_current_preset_id(self, preset_id):
        self.storage.set_item(CURRENT_PRESET_KEY, preset_id)

    def has_used_api_key(self):
        return bool(self.storage.get_item(HAS_USED_API_KEY))

    def mark_api_key_used(self):
        self.storage.set_item(HAS_USED_API_KEY, "true")

    # --------------------- queries --------------------- #

    def list_presets(self) -> List[Preset]:
        return resolve_presets(self.load_records())

    def get_preset_by_id(self, preset_id) -> Optional[Preset]:
        for preset in self.list_presets():
            if preset.id == preset_id:
                return preset
        return None

    # --------------------- mutations --------------------- #

    def _new_user_id(self, records):
        taken = {r.id for r in records if isinstance(r, UserPreset)}
        stamp = int(self.clock() * 1000)
        while f"{USER_PREFIX}{stamp}" in taken:
            stamp += 1
        return f"{USER_PREFIX}{stamp}"

    @_synchronized
    def add_preset(self, name, prompt) -> Preset:
        records = self.load_records()
        preset = Preset(id=self._new_user_id(records), name=name, prompt=prompt)
        records.append(UserPreset(id=preset.id, name=name, prompt=prompt))
        self.save_records(records)
        self.set_current_preset_id(preset.id)
        log(f"Added preset {preset.id}")
        self._notify(f"Added new preset: {name}")
        return preset

    def duplicate_preset(self, preset) -> Preset:
        return self.add_preset(f"{preset.name} (Copy)", preset.prompt)

    @_synchronized
    def edit_preset(self, preset_id, name, prompt):
        if self.get_preset_by_id(preset_id) is None:
            raise PresetNotFoundError(f"Preset '{preset_id}' doesn't exist")

        records = self.load_records()
        if preset_id in BUILTIN_IDS:
            # Copy-on-write: built-ins are overridden by a shadow record
            shadow = Shadow(builtin_id=preset_id, name=name, prompt=prompt)
            for index, record in enumerate(records):
                if isinstance(record, Shadow) and record.builtin_id == preset_id:
                    records[index] = shadow
                    break
            else:
                records.append(shadow)
        else:
            records = [
                UserPreset(id=r.id, name=name, prompt=prompt)
                if isinstance(r, UserPreset) and r.id == preset_id else r
                for r in records
            ]

        self.save_records(records)
        log(f"Updated preset {preset_id}")
        self._notify(f"Updated preset: {name}")

    @_synchronized
    def delete_preset(self, preset_id):
        records = self.load_records()

        if preset_id in BUILTIN_IDS:
            builtin = next(p for p in BUILTIN_PRESETS if p.id == preset_id)
            already_deleted = any(
                isinstance(r, Tombstone) and r.builtin_id == preset_id for r in records
            )
            if not already_deleted:
                records.append(Tombstone(builtin_id=preset_id))
                self.save_records(records)
            deleted_name = builtin.name
        else:
            target = next(
                (r for r in records if isinstance(r, UserPreset) and r.id == preset_id), None
            )
            if target is None:
                raise PresetNotFoundError(f"Preset '{preset_id}' doesn't exist")
            self.save_records([r for r in records if r is not target])
            deleted_name = target.name

        if self.current_preset_id() == preset_id:
            remaining = self.list_presets()
            if remaining:
                self.set_current_preset_id(remaining[0].id)
            else:
                self.storage.remove_item(CURRENT_PRESET_KEY)

        log(f"Deleted preset {preset_id}")
        self._notify(f"Deleted preset: {deleted_name}")

    @_synchronized
    def toggle_to_next_preset(self, fallback_id=None) -> Optional[Preset]:
        """
        Advance the selection pointer cyclically. Returns None if there are no presets.

        fallback_id stands in for the pointer when none is stored, so the
        cycle starts from the preset the rewrite command would use.
        """
        presets = self.list_presets()
        if not presets:
            return None

        current_id = self.current_preset_id() or fallback_id
        index = next((i for i, p in enumerate(presets) if p.id == current_id), 0)
        next_preset = presets[(index + 1) % len(presets)]
        self.set_current_preset_id(next_preset.id)
        return next_preset

    def _notify(self, message):
        if self.notifier is not None:
            self.notifier.hud(message)
