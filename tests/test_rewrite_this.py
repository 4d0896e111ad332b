from functools import partial
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from conftest import FakeBridge, FakeClientFactory, text_response
from notifier import ToastStyle
from rewrite_config import Preferences
from rewrite_this import (
    NO_TEXT_PLACEHOLDER,
    Effect,
    Event,
    InvalidTransition,
    RewriteCommand,
    RewriteState,
    build_system_message,
    extract_rewritten_text,
    toggle_preset,
    transition,
)
from selection_bridge import AutomationError, CommitOutcome


def make_command(store, notifier, preferences, bridge=None, factory=None):
    bridge = bridge or FakeBridge()
    factory = factory or FakeClientFactory(response=text_response("Hello, world."))
    command = RewriteCommand(store, bridge, notifier, preferences=preferences, client_factory=factory)
    return command, bridge, factory


def status_error(status, body):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return anthropic.APIStatusError(f"Error code: {status}", response=response, body=body)


# --------------------- transition table --------------------- #

def test_happy_path_transitions():
    assert transition(RewriteState.IDLE, Event.START) == (RewriteState.RESOLVING_CONFIG, Effect.RESOLVE_CONFIG)
    assert transition(RewriteState.RESOLVING_CONFIG, Event.CONFIG_RESOLVED) == (
        RewriteState.CAPTURING_SELECTION, Effect.CAPTURE_SELECTION)
    assert transition(RewriteState.CAPTURING_SELECTION, Event.SELECTION_CAPTURED) == (
        RewriteState.CALLING_MODEL, Effect.CALL_MODEL)
    assert transition(RewriteState.CALLING_MODEL, Event.MODEL_RESPONDED) == (
        RewriteState.APPLYING_RESULT, Effect.COMMIT_REPLACEMENT)
    assert transition(RewriteState.APPLYING_RESULT, Event.PASTED) == (RewriteState.DONE, Effect.NOTIFY_DONE)


def test_paste_failure_still_reaches_done():
    assert transition(RewriteState.APPLYING_RESULT, Event.PASTE_FAILED) == (
        RewriteState.DONE, Effect.NOTIFY_MANUAL_PASTE)


@pytest.mark.parametrize("state", [
    RewriteState.IDLE,
    RewriteState.RESOLVING_CONFIG,
    RewriteState.CAPTURING_SELECTION,
    RewriteState.CALLING_MODEL,
    RewriteState.APPLYING_RESULT,
])
def test_error_fails_from_any_non_terminal_state(state):
    assert transition(state, Event.ERROR) == (RewriteState.FAILED, Effect.NOTIFY_FAILURE)


@pytest.mark.parametrize("state", [
    RewriteState.AWAITING_FIRST_USE,
    RewriteState.NO_SELECTION,
    RewriteState.DONE,
    RewriteState.FAILED,
])
def test_terminal_states_accept_no_events(state):
    with pytest.raises(InvalidTransition):
        transition(state, Event.ERROR)


def test_unknown_event_is_rejected():
    with pytest.raises(InvalidTransition):
        transition(RewriteState.IDLE, Event.PASTED)


# --------------------- orchestrator --------------------- #

def test_missing_api_key_short_circuits(used_store, notifier):
    command, bridge, factory = make_command(used_store, notifier, Preferences(api_key=""))

    result = command.run()

    assert result.state is RewriteState.FAILED
    assert bridge.capture_calls == 0
    assert factory.init_kwargs == []
    assert notifier.toast_titles() == ["Claude API Key Missing"]


def test_first_use_records_flag_and_stops(store, notifier, preferences):
    command, bridge, factory = make_command(store, notifier, preferences)

    result = command.run()

    assert result.state is RewriteState.AWAITING_FIRST_USE
    assert store.has_used_api_key()
    assert bridge.capture_calls == 0
    assert factory.messages.calls == []
    assert notifier.huds[0].startswith("✅ You're ready to rewrite text with Claude!")

    second = command.run()
    assert second.state is RewriteState.DONE


@pytest.mark.parametrize("selection", [None, "", "   \n\t"])
def test_empty_selection_stops_with_notice(used_store, notifier, preferences, selection):
    command, bridge, factory = make_command(used_store, notifier, preferences,
                                            bridge=FakeBridge(selection=selection))

    result = command.run()

    assert result.state is RewriteState.NO_SELECTION
    assert factory.messages.calls == []
    assert bridge.committed == []
    assert notifier.toast_titles() == ["No Text Selected"]


def test_request_carries_preset_prompt_and_selection(used_store, notifier, preferences):
    used_store.add_preset("Grammar", "Fix grammar")
    command, bridge, factory = make_command(used_store, notifier, preferences,
                                            bridge=FakeBridge(selection="hello   world"))

    result = command.run()

    assert result.state is RewriteState.DONE
    request = factory.messages.calls[0]
    assert "Do not use em dashes" in request["system"]
    assert request["messages"][0]["role"] == "user"
    assert request["messages"][0]["content"].startswith(
        "Fix grammar Here's the text to rewrite:\n\nhello   world")
    assert request["model"] == "claude-3-5-sonnet-20241022"
    assert request["max_tokens"] == 8192
    assert factory.init_kwargs[0]["api_key"] == "sk-test"
    assert bridge.committed == ["Hello, world."]
    assert notifier.huds[-1] == '✅ Text rewritten using "Grammar" style'


def test_em_dash_clause_is_optional():
    assert "em dashes" in build_system_message(True)
    assert "em dashes" not in build_system_message(False)
    assert build_system_message(False).endswith("with no additional commentary.")


def test_in_progress_toast_names_preset_and_model(used_store, notifier, preferences):
    command, _, _ = make_command(used_store, notifier, preferences)

    command.run()

    style, title, message = notifier.toasts[0]
    assert style is ToastStyle.ANIMATED
    assert title == 'Rewriting with "Conversational & Human" style...'
    assert message == "Using Claude 3.5 Sonnet v2"


def test_missing_content_commits_placeholder(used_store, notifier, preferences):
    factory = FakeClientFactory(response=SimpleNamespace(content=None))
    command, bridge, _ = make_command(used_store, notifier, preferences, factory=factory)

    result = command.run()

    assert RewriteState.APPLYING_RESULT in result.history
    assert result.state is RewriteState.DONE
    assert bridge.committed == [NO_TEXT_PLACEHOLDER]


def test_extract_skips_non_text_blocks():
    response = {"content": [{"type": "tool_use", "id": "x"}, {"type": "text", "text": "done"}]}

    assert extract_rewritten_text(response) == "done"
    assert extract_rewritten_text({"content": []}) == NO_TEXT_PLACEHOLDER


def test_upstream_error_uses_message_from_body(used_store, notifier, preferences):
    error = status_error(401, {"type": "error", "error": {"type": "authentication_error",
                                                        "message": "invalid x-api-key"}})
    command, bridge, _ = make_command(used_store, notifier, preferences,
                                      factory=FakeClientFactory(error=error))

    result = command.run()

    assert result.state is RewriteState.FAILED
    assert result.error_message == "Claude API error: invalid x-api-key"
    assert bridge.committed == []
    assert notifier.toasts[-1] == (ToastStyle.FAILURE, "Error rewriting text", "Claude API error: invalid x-api-key")


def test_upstream_error_without_body_uses_status_text(used_store, notifier, preferences):
    command, _, _ = make_command(used_store, notifier, preferences,
                                 factory=FakeClientFactory(error=status_error(503, None)))

    result = command.run()

    assert result.error_message == "Claude API error: Service Unavailable"


def test_paste_failure_degrades_to_manual_paste(used_store, notifier, preferences):
    command, bridge, _ = make_command(used_store, notifier, preferences,
                                      bridge=FakeBridge(outcome=CommitOutcome.COPIED_ONLY))

    result = command.run()

    assert result.state is RewriteState.DONE
    assert "copied to clipboard" in notifier.huds[-1]


def test_unexpected_exception_becomes_single_failure_notice(used_store, notifier, preferences):
    bridge = FakeBridge(capture_error=AutomationError("accessibility permission denied"))
    command, _, _ = make_command(used_store, notifier, preferences, bridge=bridge)

    result = command.run()

    assert result.state is RewriteState.FAILED
    assert notifier.toasts == [(ToastStyle.FAILURE, "Error rewriting text", "accessibility permission denied")]


def test_stale_pointer_falls_back_to_first_preset(used_store, notifier, preferences):
    used_store.set_current_preset_id("user_gone")
    command, _, _ = make_command(used_store, notifier, preferences)

    assert command.active_preset(preferences).id == "conversational"


def test_empty_preset_list_falls_back_to_conversational_prompt(used_store, notifier, preferences):
    for preset_id in ("conversational", "formal", "concise", "grammar"):
        used_store.delete_preset(preset_id)
    command, _, factory = make_command(used_store, notifier, preferences)

    command.run()

    assert factory.messages.calls[0]["messages"][0]["content"].startswith("Rewrite this with correct spelling")


def test_default_preset_preference_applies_when_no_pointer(used_store, notifier):
    prefs = Preferences(api_key="k", prompt_preset="formal")
    command, _, _ = make_command(used_store, notifier, prefs)

    assert command.active_preset(prefs).id == "formal"


def test_custom_prompt_preference(used_store, notifier):
    prefs = Preferences(api_key="k", prompt_preset="custom", custom_prompt="Talk like a pirate.")
    command, _, _ = make_command(used_store, notifier, prefs)

    preset = command.active_preset(prefs)

    assert (preset.id, preset.prompt) == ("custom", "Talk like a pirate.")


# --------------------- toggle command --------------------- #

def test_toggle_preset_announces_new_selection(store, notifier):
    preset = toggle_preset(store, notifier)

    assert preset.id == "formal"
    assert notifier.huds == ["Preset changed to: Formal & Professional"]


def test_toggle_preset_without_presets(store, notifier):
    for preset_id in ("conversational", "formal", "concise", "grammar"):
        store.delete_preset(preset_id)

    assert toggle_preset(store, notifier) is None
    assert notifier.toast_titles() == ["No presets available"]


def test_toggle_preset_starts_from_default_preset_preference(store, notifier):
    preset = toggle_preset(store, notifier, Preferences(api_key="k", prompt_preset="formal"))

    assert preset.id == "concise"


# --------------------- retries --------------------- #

def test_client_is_built_without_automatic_retries(used_store, notifier, preferences):
    command, _, factory = make_command(used_store, notifier, preferences)

    command.run()

    assert factory.init_kwargs[0]["max_retries"] == 0


def test_overloaded_endpoint_is_called_once(used_store, notifier, preferences):
    requests = []

    def overloaded(request):
        requests.append(request)
        return httpx.Response(503, json={"type": "error",
                                         "error": {"type": "overloaded_error", "message": "Overloaded"}})

    http_client = httpx.Client(transport=httpx.MockTransport(overloaded))
    factory = partial(anthropic.Anthropic, http_client=http_client)
    command = RewriteCommand(used_store, FakeBridge(), notifier, preferences=preferences,
                             client_factory=factory)

    result = command.run()

    assert len(requests) == 1
    assert result.state is RewriteState.FAILED
    assert result.error_message == "Claude API error: Overloaded"
