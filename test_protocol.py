import re
from io import BytesIO

import pytest
from PIL import Image

from page_capture.core.config import ERROR_PAGE_SELECTOR, MESSAGE_SELECTOR
from page_capture.core.errors import ScreenshotError
from page_capture.core.protocol import (
    capture_page,
    capture_task,
    clamp_wait_ms,
    is_mount_error,
    is_sequential,
    take_sequential_screenshots,
)
from page_capture.core.types import ActionSequence, CaptureTask, Click, Wait

URL = "https://scada.local/#/Overview"
MOUNT_TEXT = "No view configured for center mount 'main'"


def _capture(page, rasterizer, messages, task=None, **kwargs):
    kwargs.setdefault("wait_seconds", 1)
    return capture_page(page, task or CaptureTask(URL, 0), rasterizer=rasterizer, progress=messages.append, **kwargs)


def _emit_mount_error_on(ms):
    def hook(page, waited):
        if waited == ms:
            page.emit_console("error", MOUNT_TEXT)
    return hook


def test_capture_produces_labelled_result(page, rasterizer, messages):
    result = _capture(page, rasterizer, messages)

    assert rasterizer.calls == [(URL, 1920, 1080)]
    assert (result.width, result.height, result.preset) == (1920, 1080, "fullHD")
    assert result.url == URL
    assert re.fullmatch(r"Overview_\d{8}_\d{6}\.png", result.filename)
    assert Image.open(BytesIO(result.thumbnail)).size == (120, 90)
    assert result.elapsed >= 0
    assert result.sequence_name is None
    assert "Capturing screenshot (1920x1080)..." in messages


def test_surface_is_reset_and_listener_removed(page, rasterizer, messages):
    _capture(page, rasterizer, messages)

    assert page.url == "about:blank"
    assert page.visited == [URL, "about:blank"]
    assert page.listeners["console"] == []


def test_preset_sets_capture_size(page, rasterizer, messages):
    result = _capture(page, rasterizer, messages, task=CaptureTask(URL, 0, preset="mobile"))

    assert rasterizer.calls == [(URL, 375, 812)]
    assert (result.width, result.height) == (375, 812)


def test_full_page_uses_content_height(page, rasterizer, messages):
    page.scroll_height = 600

    result = _capture(page, rasterizer, messages, task=CaptureTask(URL, 0, full_page=True))

    assert rasterizer.calls == [(URL, 1920, 600)]
    assert result.height == 600


def test_viewport_sized_to_preset_before_loading(page, rasterizer, messages):
    seen = []
    original_goto = page.goto

    def goto(url, **kwargs):
        seen.append((url, list(page.viewports)))
        original_goto(url, **kwargs)

    page.goto = goto

    _capture(page, rasterizer, messages, task=CaptureTask(URL, 0, preset="tablet"))

    assert seen[0] == (URL, [{"width": 768, "height": 1024}])


def test_full_page_height_measured_at_preset_width(page, rasterizer, messages):
    page.scroll_height_by_width = {375: 2400, 1920: 900}

    result = _capture(page, rasterizer, messages, task=CaptureTask(URL, 0, preset="mobile", full_page=True))

    assert rasterizer.calls == [(URL, 375, 2400)]
    assert (result.width, result.height) == (375, 2400)


def test_settle_counts_down_each_second(page, rasterizer, messages):
    _capture(page, rasterizer, messages, wait_seconds=3)

    countdown = [m for m in messages if m.startswith("Waiting for")]
    assert countdown == [
        f"Waiting for {URL} to render... (3s remaining)",
        f"Waiting for {URL} to render... (2s remaining)",
        f"Waiting for {URL} to render... (1s remaining)",
    ]
    assert page.waits == [1000, 1000, 1000]


def test_wait_is_clamped():
    assert clamp_wait_ms(0) == 1000
    assert clamp_wait_ms(4) == 4000
    assert clamp_wait_ms(500) == 120000


def test_navigation_failure_raises_and_resets(page, rasterizer, messages):
    page.fail_urls.add(URL)

    with pytest.raises(ScreenshotError) as excinfo:
        _capture(page, rasterizer, messages)

    assert excinfo.value.url == URL
    assert "Failed to load" in excinfo.value.message
    assert rasterizer.calls == []
    assert page.visited[-1] == "about:blank"


def test_failing_action_fails_the_capture(page, rasterizer, messages, element_factory):
    page.dom["css=#open"] = [element_factory("open", fail_on={"click"})]

    with pytest.raises(ScreenshotError) as excinfo:
        _capture(page, rasterizer, messages, steps=[Click("#open")])

    assert "click" in excinfo.value.reason
    assert rasterizer.calls == []


def test_missing_click_target_still_captures(page, rasterizer, messages):
    result = _capture(page, rasterizer, messages, steps=[Click("#nowhere")])

    assert result.url == URL
    assert "Performing action: click on #nowhere" in messages


def test_mount_error_in_dom_fails_capture(page, rasterizer, messages, element_factory):
    page.dom_by_url[URL] = {MESSAGE_SELECTOR: [element_factory("msg", text=MOUNT_TEXT)]}

    with pytest.raises(ScreenshotError) as excinfo:
        _capture(page, rasterizer, messages, wait_seconds=5)

    assert is_mount_error(excinfo.value)
    assert "in DOM" in excinfo.value.message
    # Detected on the first tick, not after the full wait.
    assert page.waits == [1000]


def test_unrelated_error_message_is_ignored(page, rasterizer, messages, element_factory):
    page.dom_by_url[URL] = {MESSAGE_SELECTOR: [element_factory("msg", text="Session expires soon")]}

    assert _capture(page, rasterizer, messages).url == URL


def test_error_page_fails_capture(page, rasterizer, messages, element_factory):
    page.dom_by_url[URL] = {ERROR_PAGE_SELECTOR: [element_factory("404")]}

    with pytest.raises(ScreenshotError) as excinfo:
        _capture(page, rasterizer, messages)

    assert excinfo.value.reason == "Page not found or error page detected"
    assert not is_mount_error(excinfo.value)


def test_console_mount_error_fails_capture(page, rasterizer, messages):
    page.console_on_load[URL] = [("warning", MOUNT_TEXT)]

    with pytest.raises(ScreenshotError) as excinfo:
        _capture(page, rasterizer, messages)

    assert "in console" in excinfo.value.message


def test_console_noise_is_ignored(page, rasterizer, messages):
    page.console_on_load[URL] = [("error", "Failed to load favicon.ico"), ("log", MOUNT_TEXT)]

    assert _capture(page, rasterizer, messages).url == URL


def test_mount_error_raised_by_actions(page, rasterizer, messages):
    page.wait_hooks.append(_emit_mount_error_on(777))

    with pytest.raises(ScreenshotError) as excinfo:
        _capture(page, rasterizer, messages, steps=[Wait(777)])

    assert excinfo.value.reason == "Mount error detected after actions"
    assert is_mount_error(excinfo.value)


def test_pending_pause_lets_capture_finish(page, rasterizer, messages):
    result = _capture(page, rasterizer, messages, checkpoint=lambda: True)

    assert result.url == URL
    assert rasterizer.calls == [(URL, 1920, 1080)]
    assert f"Pause requested; finishing capture of {URL} first" in messages
    assert page.url == "about:blank"


def test_retry_marker_in_filename(page, rasterizer, messages):
    result = _capture(page, rasterizer, messages, task=CaptureTask(URL, 0, is_retry=True))

    assert re.fullmatch(r"Overview_Retry_\d{8}_\d{6}\.png", result.filename)


# --- Sequential capture ---

def _sequential_task(*sequences):
    return CaptureTask(URL, 0, sequences=tuple(sequences))


def test_sequential_skips_mount_error_sequence(page, rasterizer, messages):
    page.wait_hooks.append(_emit_mount_error_on(777))
    task = _sequential_task(
        ActionSequence((Wait(777),), name="Broken view"),
        ActionSequence((Wait(10),), name="Alarm list"),
    )

    outcomes = take_sequential_screenshots(page, task, progress=messages.append, rasterizer=rasterizer, wait_seconds=1)

    assert [o.error for o in outcomes] == [True, False]
    assert outcomes[0].sequence_name == "Broken view (Error: No view configured)"
    assert outcomes[1].result.sequence_name == "Alarm list"
    assert outcomes[1].result.sequence_index == 1
    assert re.fullmatch(r"Overview_Alarm_list_\d{8}_\d{6}\.png", outcomes[1].result.filename)
    assert "Skipped sequence: Broken view due to mount error (1/2)" in messages
    assert "Completed sequence: Alarm list (2/2)" in messages


def test_sequential_aborts_on_other_errors(page, rasterizer, messages):
    page.fail_urls.add(URL)
    task = _sequential_task(ActionSequence((), name="A"), ActionSequence((), name="B"))

    with pytest.raises(ScreenshotError) as excinfo:
        take_sequential_screenshots(page, task, progress=messages.append, rasterizer=rasterizer, wait_seconds=1)

    assert excinfo.value.message.startswith("Error in sequential screenshots")
    assert page.captured_urls() == [URL]


def test_unnamed_sequences_get_step_names(page, rasterizer, messages):
    task = _sequential_task(ActionSequence(()), ActionSequence(()))

    results = capture_task(page, task, progress=messages.append, rasterizer=rasterizer, wait_seconds=1)

    assert [r.sequence_name for r in results] == ["Step 1", "Step 2"]


def test_single_unnamed_sequence_is_not_sequential(page, rasterizer, messages):
    task = _sequential_task(ActionSequence((Wait(10),)))

    assert not is_sequential(task)
    assert is_sequential(_sequential_task(ActionSequence((), name="Only")))

    results = capture_task(page, task, progress=messages.append, rasterizer=rasterizer, wait_seconds=1)
    assert len(results) == 1
    assert results[0].sequence_name is None


def test_all_sequences_failing_fails_the_page(page, rasterizer, messages):
    page.console_on_load[URL] = [("error", MOUNT_TEXT)]
    task = _sequential_task(ActionSequence((), name="A"), ActionSequence((), name="B"))

    with pytest.raises(ScreenshotError) as excinfo:
        capture_task(page, task, progress=messages.append, rasterizer=rasterizer, wait_seconds=1)

    assert "All action sequences failed" in excinfo.value.message
