"""
rewrite_this.py

The rewrite command: take the text selected in the foreground application,
send it to Claude with the active preset's instruction, and paste the answer
over the selection.

The command is an explicit state machine. transition() is a pure table lookup
from (state, event) to (next state, effect). RewriteCommand.run() performs the
effects and feeds the resulting events back in until a terminal state is
reached:

    IDLE -> RESOLVING_CONFIG -> CAPTURING_SELECTION -> CALLING_MODEL
         -> APPLYING_RESULT -> DONE

with AWAITING_FIRST_USE and NO_SELECTION as early terminal states and FAILED
reachable from every non-terminal state.
"""

from dataclasses import dataclass, field
from enum import Enum

import anthropic

from notifier import ToastStyle
from preset_store import BUILTIN_PRESETS, Preset
from rewrite_config import (
    CONFIG,
    CUSTOM_PRESET_ID,
    hotkey_label,
    load_preferences,
    log,
    paste_shortcut_label,
)
from selection_bridge import CommitOutcome

NO_TEXT_PLACEHOLDER = "No text returned from Claude"

FALLBACK_PRESET = BUILTIN_PRESETS[0]


class MissingCredentialError(Exception):
    """No API key is configured."""


class UpstreamError(Exception):
    """The rewrite endpoint answered with a non-success status."""


class InvalidTransition(Exception):
    pass


class RewriteState(Enum):
    IDLE = "idle"
    RESOLVING_CONFIG = "resolving_config"
    AWAITING_FIRST_USE = "awaiting_first_use"
    CAPTURING_SELECTION = "capturing_selection"
    NO_SELECTION = "no_selection"
    CALLING_MODEL = "calling_model"
    APPLYING_RESULT = "applying_result"
    DONE = "done"
    FAILED = "failed"


class Event(Enum):
    START = "start"
    CONFIG_RESOLVED = "config_resolved"
    MISSING_CREDENTIAL = "missing_credential"
    FIRST_USE = "first_use"
    SELECTION_CAPTURED = "selection_captured"
    SELECTION_EMPTY = "selection_empty"
    MODEL_RESPONDED = "model_responded"
    UPSTREAM_ERROR = "upstream_error"
    PASTED = "pasted"
    PASTE_FAILED = "paste_failed"
    ERROR = "error"


class Effect(Enum):
    RESOLVE_CONFIG = "resolve_config"
    NOTIFY_ONBOARDING = "notify_onboarding"
    CAPTURE_SELECTION = "capture_selection"
    NOTIFY_NO_SELECTION = "notify_no_selection"
    CALL_MODEL = "call_model"
    COMMIT_REPLACEMENT = "commit_replacement"
    NOTIFY_DONE = "notify_done"
    NOTIFY_MANUAL_PASTE = "notify_manual_paste"
    NOTIFY_FAILURE = "notify_failure"


TERMINAL_STATES = frozenset({
    RewriteState.AWAITING_FIRST_USE,
    RewriteState.NO_SELECTION,
    RewriteState.DONE,
    RewriteState.FAILED,
})

TRANSITIONS = {
    (RewriteState.IDLE, Event.START): (RewriteState.RESOLVING_CONFIG, Effect.RESOLVE_CONFIG),
    (RewriteState.RESOLVING_CONFIG, Event.MISSING_CREDENTIAL): (RewriteState.FAILED, Effect.NOTIFY_FAILURE),
    (RewriteState.RESOLVING_CONFIG, Event.FIRST_USE): (RewriteState.AWAITING_FIRST_USE, Effect.NOTIFY_ONBOARDING),
    (RewriteState.RESOLVING_CONFIG, Event.CONFIG_RESOLVED): (RewriteState.CAPTURING_SELECTION, Effect.CAPTURE_SELECTION),
    (RewriteState.CAPTURING_SELECTION, Event.SELECTION_EMPTY): (RewriteState.NO_SELECTION, Effect.NOTIFY_NO_SELECTION),
    (RewriteState.CAPTURING_SELECTION, Event.SELECTION_CAPTURED): (RewriteState.CALLING_MODEL, Effect.CALL_MODEL),
    (RewriteState.CALLING_MODEL, Event.UPSTREAM_ERROR): (RewriteState.FAILED, Effect.NOTIFY_FAILURE),
    (RewriteState.CALLING_MODEL, Event.MODEL_RESPONDED): (RewriteState.APPLYING_RESULT, Effect.COMMIT_REPLACEMENT),
    (RewriteState.APPLYING_RESULT, Event.PASTED): (RewriteState.DONE, Effect.NOTIFY_DONE),
    (RewriteState.APPLYING_RESULT, Event.PASTE_FAILED): (RewriteState.DONE, Effect.NOTIFY_MANUAL_PASTE),
}


def transition(state, event):
    """Return (next_state, effect) for an event received in state."""
    if state in TERMINAL_STATES:
        raise InvalidTransition(f"{state.name} is terminal")
    if event is Event.ERROR:
        return RewriteState.FAILED, Effect.NOTIFY_FAILURE
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"No transition from {state.name} on {event.name}") from None


# --------------------- request building --------------------- #

def build_system_message(avoid_em_dashes=True):
    message = (
        "You are a helpful text rewriting assistant. Your job is to take the provided text and rewrite it "
        "as instructed while preserving the original line breaks, paragraph structure, emojis, and formatting"
    )
    if avoid_em_dashes:
        message += (
            ". Do not use em dashes (—) in your rewrite. Use other punctuation like commas, parentheses, "
            "or colons instead"
        )
    message += ". You should return ONLY the rewritten text, with no additional commentary."
    return message


def build_user_message(preset_prompt, selected_text):
    return f"{preset_prompt} Here's the text to rewrite:\n\n{selected_text}"


def build_request(preferences, preset_prompt, selected_text):
    return {
        "model": preferences.model,
        "max_tokens": CONFIG['MAX_TOKENS'],
        "system": build_system_message(preferences.avoid_em_dashes),
        "messages": [
            {"role": "user", "content": build_user_message(preset_prompt, selected_text)},
        ],
    }


def _field(obj, name):
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_rewritten_text(response):
    """First text block of a messages response, or a visible placeholder."""
    for block in _field(response, "content") or []:
        if _field(block, "type") == "text":
            return _field(block, "text") or ""
    return NO_TEXT_PLACEHOLDER


def upstream_error_from(error):
    """Build an UpstreamError from an anthropic.APIStatusError."""
    message = None
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        detail = body.get("error")
        if isinstance(detail, dict):
            message = detail.get("message")
    if not message:
        response = getattr(error, "response", None)
        message = getattr(response, "reason_phrase", None) or str(error)
    return UpstreamError(f"Claude API error: {message}")


# --------------------- orchestrator --------------------- #

@dataclass
class RewriteContext:
    preferences: object = None
    preset: Preset = None
    selected_text: str = None
    request: dict = None
    rewritten_text: str = None
    error: Exception = None


@dataclass
class RewriteResult:
    state: RewriteState
    history: list = field(default_factory=list)
    context: RewriteContext = None

    @property
    def error_message(self):
        if self.context is None or self.context.error is None:
            return None
        return str(self.context.error)


class RewriteCommand:
    """Runs one rewrite invocation against injected collaborators."""

    def __init__(self, store, bridge, notifier, preferences=None,
                 client_factory=anthropic.Anthropic, preferences_loader=load_preferences):
        self.store = store
        self.bridge = bridge
        self.notifier = notifier
        self.preferences = preferences
        self.client_factory = client_factory
        self.preferences_loader = preferences_loader

    def run(self) -> RewriteResult:
        context = RewriteContext()
        state, event = RewriteState.IDLE, Event.START
        history = [state]

        while True:
            state, effect = transition(state, event)
            history.append(state)
            try:
                event = self._perform(effect, context)
            except Exception as e:
                log(f"Error during {effect.value}: {e}", error=True)
                if state in TERMINAL_STATES:
                    break
                context.error = e
                event = Event.ERROR
                continue
            if state in TERMINAL_STATES:
                break

        return RewriteResult(state=state, history=history, context=context)

    def _perform(self, effect, context):
        handler = getattr(self, f"_{effect.value}")
        return handler(context)

    # --- effects that move the machine forward ---

    def _resolve_config(self, context):
        preferences = self.preferences or self.preferences_loader()
        context.preferences = preferences
        context.preset = self.active_preset(preferences)

        if not preferences.api_key:
            context.error = MissingCredentialError("Please add your Claude API Key in preferences")
            return Event.MISSING_CREDENTIAL

        if not self.store.has_used_api_key():
            return Event.FIRST_USE

        return Event.CONFIG_RESOLVED

    def active_preset(self, preferences):
        presets = self.store.list_presets()
        pointer = self.store.current_preset_id()

        if pointer is None and preferences.prompt_preset:
            if preferences.prompt_preset == CUSTOM_PRESET_ID and preferences.custom_prompt:
                return Preset(id=CUSTOM_PRESET_ID, name="Custom Prompt", prompt=preferences.custom_prompt)
            pointer = preferences.prompt_preset

        for preset in presets:
            if preset.id == pointer:
                return preset
        if presets:
            return presets[0]
        return FALLBACK_PRESET

    def _capture_selection(self, context):
        text = self.bridge.capture_selection()
        if not text or not text.strip():
            return Event.SELECTION_EMPTY
        context.selected_text = text
        return Event.SELECTION_CAPTURED

    def _call_model(self, context):
        preferences = context.preferences
        self.notifier.toast(
            ToastStyle.ANIMATED,
            f'Rewriting with "{context.preset.name}" style...',
            f"Using {preferences.model_display_name}",
        )

        context.request = build_request(preferences, context.preset.prompt, context.selected_text)
        client = self.client_factory(
            api_key=preferences.api_key,
            default_headers={"anthropic-version": CONFIG['API_VERSION']},
            # No automatic retries
            max_retries=0,
        )
        try:
            response = client.messages.create(**context.request)
        except anthropic.APIStatusError as e:
            context.error = upstream_error_from(e)
            log(str(context.error), error=True)
            return Event.UPSTREAM_ERROR

        context.rewritten_text = extract_rewritten_text(response)
        return Event.MODEL_RESPONDED

    def _commit_replacement(self, context):
        outcome = self.bridge.commit_replacement(context.rewritten_text)
        if outcome is CommitOutcome.PASTED:
            return Event.PASTED
        return Event.PASTE_FAILED

    # --- terminal notifications ---

    def _notify_onboarding(self, context):
        self.store.mark_api_key_used()
        self.notifier.hud(
            "✅ You're ready to rewrite text with Claude! "
            f"Select text and press {hotkey_label(CONFIG['HOTKEY_REWRITE'])}."
        )

    def _notify_no_selection(self, context):
        self.notifier.toast(
            ToastStyle.FAILURE,
            "No Text Selected",
            f"Please select some text before pressing {hotkey_label(CONFIG['HOTKEY_REWRITE'])}",
        )

    def _notify_done(self, context):
        self.notifier.hud(f'✅ Text rewritten using "{context.preset.name}" style')

    def _notify_manual_paste(self, context):
        self.notifier.hud(
            f"✅ Text rewritten and copied to clipboard (press {paste_shortcut_label()} to paste)"
        )

    def _notify_failure(self, context):
        if isinstance(context.error, MissingCredentialError):
            self.notifier.toast(ToastStyle.FAILURE, "Claude API Key Missing", str(context.error))
        else:
            self.notifier.toast(ToastStyle.FAILURE, "Error rewriting text", str(context.error))


def toggle_preset(store, notifier, preferences=None):
    """Cycle to the next preset and tell the user which one is active."""
    fallback_id = preferences.prompt_preset if preferences is not None else None
    try:
        preset = store.toggle_to_next_preset(fallback_id=fallback_id or None)
        if preset is None:
            notifier.toast(
                ToastStyle.FAILURE,
                "No presets available",
                "Add a preset first using the 'Manage Presets' command",
            )
            return None
        notifier.hud(f"Preset changed to: {preset.name}")
        return preset
    except Exception as e:
        log(f"Error toggling preset: {e}", error=True)
        notifier.toast(ToastStyle.FAILURE, "Error toggling preset", str(e))
        return None
