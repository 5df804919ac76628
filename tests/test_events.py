import json
from types import SimpleNamespace as NS

import pytest
from zendriver import cdp

from pagedriver import pcfg
from pagedriver.page.events import PageEvents, event_name

from .fakes import MAIN_FRAME


def main_context(page):
    return page._bridge.windows.lookup(MAIN_FRAME).context_id


def test_event_name_accepts_script_spellings():
    assert event_name("onLoadFinished") == "load_finished"
    assert event_name("loadFinished") == "load_finished"
    assert event_name("on_load_finished") == "load_finished"
    with pytest.raises(ValueError):
        event_name("onFilePicker")


def test_last_registration_wins_and_unsubscribe_is_scoped():
    events = PageEvents()
    first = events.on("alert", lambda msg: "first")
    second = events.on("onAlert", lambda msg: "second")
    first()
    assert events.on_alert is not None
    assert events.on_alert("x") == "second"
    second()
    assert events.on_alert is None
    assert not events.has_handler("alert")


@pytest.mark.asyncio
async def test_console_messages_from_own_frames(opened):
    surface = opened.surface
    messages = []
    opened.on_console_message = lambda *args: messages.append(args)

    await surface.emit(
        cdp.runtime.ConsoleAPICalled,
        args=[NS(value="hello", description=None)],
        execution_context_id=main_context(opened),
        stack_trace=NS(call_frames=[NS(line_number=4, url="http://example.test/a.js")]),
    )
    await surface.emit(
        cdp.runtime.ConsoleAPICalled,
        args=[NS(value=None, description="[object Object]")],
        execution_context_id=main_context(opened),
        stack_trace=None,
    )
    # an extension or devtools context
    await surface.emit(
        cdp.runtime.ConsoleAPICalled,
        args=[NS(value="foreign", description=None)],
        execution_context_id=99999,
        stack_trace=None,
    )
    await surface.flush()

    assert messages == [
        ("hello", 5, "http://example.test/a.js"),
        ("[object Object]", None, ""),
    ]


@pytest.mark.asyncio
async def test_uncaught_errors_report_message_and_trace(opened):
    surface = opened.surface
    errors = []
    opened.on_error = lambda msg, trace: errors.append((msg, trace))

    details = NS(
        execution_context_id=main_context(opened),
        exception=NS(description="TypeError: x is undefined\n    at f (a.js:10)", value=None),
        text="Uncaught",
        stack_trace=NS(
            call_frames=[
                NS(url="http://example.test/a.js", line_number=9, function_name="f"),
                NS(url="http://example.test/a.js", line_number=19, function_name=""),
            ]
        ),
        url=None,
    )
    await surface.emit(cdp.runtime.ExceptionThrown, exception_details=details)
    await surface.emit(
        cdp.runtime.ExceptionThrown,
        exception_details=NS(
            execution_context_id=424242,
            exception=None,
            text="not ours",
            stack_trace=None,
            url=None,
        ),
    )
    await surface.flush()

    assert errors == [
        (
            "TypeError: x is undefined",
            [
                {"file": "http://example.test/a.js", "line": 10, "function": "f"},
                {"file": "http://example.test/a.js", "line": 20, "function": None},
            ],
        )
    ]


async def dialog(surface, kind, message="?", default_prompt=None):
    await surface.emit(
        cdp.page.JavascriptDialogOpening,
        type_=kind,
        message=message,
        default_prompt=default_prompt,
    )
    return surface.sent("dialog")[-1]


@pytest.mark.asyncio
async def test_alert_is_reported_and_dismissed(opened):
    alerts = []
    opened.on_alert = alerts.append
    assert await dialog(opened.surface, "alert", "hi") == ("dialog", True, None)
    assert alerts == ["hi"]


@pytest.mark.asyncio
async def test_confirm_answers(opened):
    surface = opened.surface
    assert await dialog(surface, "confirm") == ("dialog", False, None)
    opened.on_confirm = lambda msg: msg == "ok?"
    assert await dialog(surface, "confirm", "ok?") == ("dialog", True, None)

    async def reluctant(msg):
        return 0

    opened.on_confirm = reluctant
    assert await dialog(surface, "confirm", "ok?") == ("dialog", False, None)


@pytest.mark.asyncio
async def test_prompt_answers(opened):
    surface = opened.surface
    assert await dialog(surface, "prompt", "name?", "anon") == ("dialog", True, "anon")
    opened.on_prompt = lambda msg, default: None
    assert await dialog(surface, "prompt", "name?", "anon") == ("dialog", False, None)
    opened.on_prompt = lambda msg, default: 42
    assert await dialog(surface, "prompt", "name?", "anon") == ("dialog", True, "42")


async def binding_call(page, call_id, value):
    surface = page.surface
    await surface.emit(
        cdp.runtime.BindingCalled,
        name=pcfg.CALLBACK_BINDING,
        payload=json.dumps({"id": call_id, "value": value}),
        execution_context_id=main_context(page),
    )
    return surface.evaluated[-1]


@pytest.mark.asyncio
async def test_callback_result_returns_to_page(opened):
    opened.on_callback = lambda value: {"doubled": value * 2}
    expression, context_id = await binding_call(opened, 3, 21)
    assert "__pagedriverSettle(3, true, {\"doubled\": 42})" in expression
    assert context_id == main_context(opened)


@pytest.mark.asyncio
async def test_callback_error_rejects_in_page(opened):
    def broken(value):
        raise ValueError("no thanks")

    opened.on_callback = broken
    expression, _ = await binding_call(opened, 4, None)
    assert "__pagedriverSettle(4, false, \"no thanks\")" in expression


@pytest.mark.asyncio
async def test_callback_without_handler_resolves_null(opened):
    expression, _ = await binding_call(opened, 5, "x")
    assert "__pagedriverSettle(5, true, null)" in expression


@pytest.mark.asyncio
async def test_callback_bridge_is_installed_on_attach(opened):
    surface = opened.surface
    assert ("binding", pcfg.CALLBACK_BINDING) in surface.commands
    assert surface.sent("init_script")
    assert any(pcfg.CALLBACK_FUNCTION in expr for expr, _ in surface.evaluated)


@pytest.mark.asyncio
async def test_async_handlers_are_awaited(opened):
    seen = []

    async def on_alert(message):
        seen.append(message)

    opened.on("onAlert", on_alert)
    await dialog(opened.surface, "alert", "async")
    assert seen == ["async"]
