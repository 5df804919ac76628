import pytest
import pytest_asyncio
from zendriver import cdp

from pagedriver import ByIndex, ByName, FocusSwitch, NoWindowError
from pagedriver.frames.locator import (
    FrameNode,
    coerce_selector,
    path_to_frame,
    resolve_frame,
)

from .fakes import MAIN_FRAME


def tree():
    return FrameNode(
        MAIN_FRAME,
        "",
        "http://example.test/",
        [
            FrameNode("left", "nav", "http://example.test/nav"),
            FrameNode(
                "right",
                "",
                "http://example.test/right",
                [FrameNode("deep", "inner", "http://example.test/inner")],
            ),
        ],
    )


@pytest_asyncio.fixture
async def framed(opened):
    surface = opened.surface
    surface.children = tree().children
    contexts = {}
    for frame_id in ("left", "right", "deep"):
        contexts[frame_id] = await surface.new_context(frame_id)
    await surface.flush()
    surface.contexts = contexts
    return opened


def test_coerce_selector():
    assert coerce_selector(1) == ByIndex(1)
    assert coerce_selector("nav") == ByName("nav")
    assert coerce_selector(ByName("x")) == ByName("x")
    with pytest.raises(TypeError):
        coerce_selector(True)
    with pytest.raises(TypeError):
        coerce_selector(1.5)


def test_resolve_frame_stops_at_first_unresolved_step():
    top = tree()
    assert resolve_frame(top, []).id == MAIN_FRAME
    assert resolve_frame(top, [ByIndex(1), ByName("inner")]).id == "deep"
    assert resolve_frame(top, [ByName("nav"), ByIndex(0)]) is None
    assert resolve_frame(top, [ByIndex(-1)]) is None


def test_path_to_frame_prefers_names():
    top = tree()
    assert path_to_frame(top, "deep") == (
        FocusSwitch.SWITCHED,
        [ByIndex(1), ByName("inner")],
    )
    assert path_to_frame(top, MAIN_FRAME) == (FocusSwitch.SWITCHED, [])
    assert path_to_frame(top, "gone") == (FocusSwitch.UNREACHABLE, [])


@pytest.mark.asyncio
async def test_switching_frames(framed):
    assert await framed.frames_count() == 2
    assert await framed.frames_name() == ["nav", ""]
    assert await framed.frame_name() == ""

    assert await framed.switch_to_frame("nav")
    assert await framed.frame_name() == "nav"
    assert await framed.child_frames_count() == 0

    assert framed.switch_to_parent_frame()
    assert not framed.switch_to_parent_frame()

    assert await framed.switch_to_frame(1)
    assert await framed.switch_to_child_frame("inner")
    assert framed.frame_path == (ByIndex(1), ByName("inner"))
    assert await framed.current_frame_name() == "inner"

    framed.switch_to_main_frame()
    assert framed.frame_path == ()


@pytest.mark.asyncio
async def test_failed_switch_leaves_path_unchanged(framed):
    assert await framed.switch_to_frame(1)
    assert not await framed.switch_to_frame("missing")
    assert not await framed.switch_to_frame(7)
    assert framed.frame_path == (ByIndex(1),)


@pytest.mark.asyncio
async def test_frame_accessors_evaluate_in_current_frame(framed):
    surface = framed.surface
    by_context = {ctx: frame for frame, ctx in surface.contexts.items()}
    surface.scripts["location.href"] = lambda expr, ctx: "url of %s" % by_context.get(ctx, "top")
    surface.scripts["document.title"] = lambda expr, ctx: "title of %s" % by_context.get(ctx, "top")

    await framed.switch_to_frame("nav")
    assert await framed.frame_url() == "url of left"
    assert await framed.frame_title() == "title of left"
    # page-level accessors always read the top frame
    assert await framed.title() == "title of top"


@pytest.mark.asyncio
async def test_evaluate_runs_in_current_frame(framed):
    surface = framed.surface
    await framed.switch_to_frame(1)
    await framed.evaluate("function (a, b) { return a + b; }", 1, 2)
    expression, context_id = surface.evaluated[-1]
    assert context_id == surface.contexts["right"]
    assert "[1, 2]" in expression


@pytest.mark.asyncio
async def test_frame_without_window_raises(framed):
    surface = framed.surface
    await surface.emit(
        cdp.runtime.ExecutionContextDestroyed,
        execution_context_id=surface.contexts["left"],
    )
    await surface.flush()
    await framed.switch_to_frame("nav")
    with pytest.raises(NoWindowError):
        await framed.evaluate("function () { return 1; }")
    assert await framed.frame_url() == ""


@pytest.mark.asyncio
async def test_switch_to_focused_frame(framed):
    surface = framed.surface
    surface.focused = "deep"
    assert await framed.switch_to_focused_frame() is FocusSwitch.SWITCHED
    assert framed.frame_path == (ByIndex(1), ByName("inner"))
    assert await framed.focused_frame_name() == "inner"


@pytest.mark.asyncio
async def test_switch_to_focused_frame_without_focus(framed):
    framed.surface.focused = None
    assert await framed.switch_to_focused_frame() is FocusSwitch.NO_FOCUSED_WINDOW
    assert framed.frame_path == ()
    assert await framed.focused_frame_name() == ""


@pytest.mark.asyncio
async def test_load_keeps_frame_path(framed):
    await framed.switch_to_frame("nav")
    await framed.reload()
    await framed.surface.flush()
    assert framed.frame_path == (ByName("nav"),)
