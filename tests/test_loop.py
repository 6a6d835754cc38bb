import asyncio
import json

import pytest

from accessai.agent.history import ConversationHistory
from accessai.agent.loop import (
    STATUS_BUSY,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_EXHAUSTED,
    AgenticToolLoop,
    prune_messages,
)
from accessai.agent.tools import BrowserToolbox
from accessai.completions import CompletionResult

from .conftest import BUSINESS_PAGE, FakePageDriver, RecordingSleep, ScriptedCompletions, completion, tool_call


def make_loop(driver, completions, **kwargs):
    kwargs.setdefault("sleep", RecordingSleep())
    return AgenticToolLoop(completions, BrowserToolbox(driver), ConversationHistory(), **kwargs)


async def test_model_that_never_stops_is_cut_off_at_eighteen_steps(driver):
    completions = ScriptedCompletions([completion(tool_calls=[tool_call("scroll_page", {"direction": "down"})])])
    loop = make_loop(driver, completions)

    result = await loop.run("find the footer")

    assert result.status == STATUS_EXHAUSTED
    assert len(completions.requests) == 18
    assert result.steps == 18
    assert "(18)" in result.text
    assert len(driver.actions) == 18


async def test_tool_call_then_reply(driver):
    completions = ScriptedCompletions(
        [
            completion(tool_calls=[tool_call("click_element", {"index": 1}, call_id="call_a")]),
            completion("I opened Courses."),
        ]
    )
    sleep = RecordingSleep()
    loop = make_loop(driver, completions, sleep=sleep, settle_delay=0.6)

    result = await loop.run("click the 2nd link")

    assert result.status == STATUS_COMPLETED
    assert result.text == "I opened Courses."
    assert result.actions == ['Clicking "Courses"']
    assert driver.actions[0][2] == "Courses"
    assert sleep.delays == [0.6]

    second = completions.requests[1]
    assert second[0]["role"] == "system"
    assistant, tool_message, refreshed = second[-3:]
    assert assistant["tool_calls"][0]["id"] == "call_a"
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "call_a"
    assert json.loads(tool_message["content"]) == {"ok": True, "clicked": "Courses"}
    assert refreshed["role"] == "user"
    assert "Task: click the 2nd link" in refreshed["content"]

    assert [e.text for e in loop.history.entries] == ["click the 2nd link", "I opened Courses."]


async def test_failed_tool_is_reported_to_the_model(driver):
    completions = ScriptedCompletions(
        [
            completion(tool_calls=[tool_call("click_element", {"selector": "quantum widget"})]),
            completion("I could not find that."),
        ]
    )
    result = await make_loop(driver, completions).run("click the quantum widget")

    assert result.status == STATUS_COMPLETED
    tool_message = completions.requests[1][-2]
    payload = json.loads(tool_message["content"])
    assert payload["ok"] is False
    assert payload["kind"] == "element_not_found"


async def test_multiple_tool_calls_run_in_order(driver):
    completions = ScriptedCompletions(
        [
            completion(
                tool_calls=[
                    tool_call("type_text", {"text": "accounting"}, call_id="c1"),
                    tool_call("press_key", {"key": "Enter"}, call_id="c2"),
                ]
            ),
            completion("Searching for accounting."),
        ]
    )
    await make_loop(driver, completions).run("search for accounting")

    assert [a[0] for a in driver.actions] == ["fill", "press"]
    ids = [m.get("tool_call_id") for m in completions.requests[1] if m["role"] == "tool"]
    assert ids == ["c1", "c2"]


async def test_first_message_carries_page_context_and_navigation_hint(driver):
    completions = ScriptedCompletions([completion("Done.")])
    await make_loop(driver, completions).run("show me business courses")

    first_user = completions.requests[0][-1]["content"]
    assert first_user.startswith("Command: show me business courses")
    assert "Domain: www.open.example" in first_user
    assert "Site navigation labels: Courses | Business & Management | About us" in first_user
    assert "Navigation labels matching the request: Courses | Business & Management" in first_user
    assert '[2] link "Business & Management"' in first_user


async def test_business_courses_clicks_the_nav_item_instead_of_searching():
    driver = FakePageDriver(BUSINESS_PAGE)
    completions = ScriptedCompletions(
        [
            completion(tool_calls=[tool_call("find_elements", {"description": "business courses"}, "c1")]),
            completion(tool_calls=[tool_call("click_element", {"selector": "business courses"}, "c2")]),
            completion("Opened Business & Management."),
        ]
    )
    result = await make_loop(driver, completions).run("show me business courses")

    first_user = completions.requests[0][-1]["content"]
    assert "Navigation labels matching the request: Business & Management" in first_user
    found = json.loads(next(m["content"] for m in completions.requests[1] if m["role"] == "tool"))
    assert found["matches"][0]["description"] == "Business & Management"

    assert result.status == STATUS_COMPLETED
    assert [(a[0], a[2]) for a in driver.actions] == [("click", "Business & Management")]
    assert result.actions == ['Clicking "Business & Management"']


async def test_confirmed_commands_are_marked(driver):
    completions = ScriptedCompletions([completion("Done.")])
    await make_loop(driver, completions).run("buy the shoes", confirmed=True)
    assert "(the user has confirmed this action)" in completions.requests[0][-1]["content"]


async def test_history_is_included_in_later_commands(driver):
    completions = ScriptedCompletions([completion("First reply.")])
    loop = make_loop(driver, completions)
    await loop.run("first command")
    await loop.run("second command")

    contents = [m["content"] for m in completions.requests[1]]
    assert "first command" in contents
    assert "First reply." in contents


async def test_request_failure(driver):
    completions = ScriptedCompletions([CompletionResult(success=False, error="rate limited")])
    loop = make_loop(driver, completions)

    result = await loop.run("open courses")

    assert result.status == STATUS_ERROR
    assert "rate limited" in result.text
    assert loop.history.entries == []


async def test_empty_response(driver):
    completions = ScriptedCompletions([CompletionResult(success=True, data={"choices": []})])
    result = await make_loop(driver, completions).run("open courses")
    assert result.status == STATUS_ERROR
    assert result.text == "No response received."


async def test_second_command_while_busy(driver):
    release = asyncio.Event()

    class SlowCompletions:
        async def request(self, messages, **kwargs):
            await release.wait()
            return completion("Done.")

    loop = make_loop(driver, SlowCompletions())
    first = asyncio.ensure_future(loop.run("open courses"))
    await asyncio.sleep(0.01)
    assert loop.running

    busy = await loop.run("open about")
    release.set()
    done = await first

    assert busy.status == STATUS_BUSY
    assert done.status == STATUS_COMPLETED
    assert not loop.running


async def test_cancel_stops_at_next_step(driver):
    loop_holder = {}

    class CancellingCompletions:
        calls = 0

        async def request(self, messages, **kwargs):
            CancellingCompletions.calls += 1
            loop_holder["loop"].cancel()
            return completion(tool_calls=[tool_call("scroll_page", {"direction": "down"})])

    loop = make_loop(driver, CancellingCompletions())
    loop_holder["loop"] = loop
    result = await loop.run("scroll forever")

    assert result.status == "cancelled"
    assert CancellingCompletions.calls == 1


class TestPruneMessages:
    def conversation(self, exchanges):
        messages = [{"role": "system", "content": "sys"}]
        for i in range(exchanges):
            messages.append({"role": "assistant", "tool_calls": [{"id": f"c{i}"}]})
            messages.append({"role": "tool", "tool_call_id": f"c{i}", "content": "{}"})
            messages.append({"role": "user", "content": f"snapshot {i}"})
        return messages

    def test_short_conversations_are_untouched(self):
        messages = self.conversation(2)
        assert prune_messages(messages, 40) is messages

    def test_keeps_system_prompt_and_newest_exchange(self):
        messages = self.conversation(20)
        pruned = prune_messages(messages, 10)

        assert len(pruned) <= 10
        assert pruned[0] == {"role": "system", "content": "sys"}
        assert pruned[-1] == {"role": "user", "content": "snapshot 19"}

    def test_tool_results_stay_with_their_call(self):
        pruned = prune_messages(self.conversation(20), 10)
        body = pruned[1:]
        assert body[0]["role"] == "assistant"
        for idx, message in enumerate(body):
            if message["role"] == "tool":
                assert body[idx - 1]["role"] == "assistant"

    def test_newest_exchange_survives_even_when_too_large(self):
        messages = [{"role": "system", "content": "sys"}, {"role": "assistant", "tool_calls": []}]
        messages += [{"role": "tool", "tool_call_id": str(i), "content": "{}"} for i in range(5)]
        pruned = prune_messages(messages, 3)
        assert pruned == messages


@pytest.mark.parametrize("max_steps", [1, 3])
async def test_step_ceiling_is_configurable(driver, max_steps):
    completions = ScriptedCompletions([completion(tool_calls=[tool_call("read_page", {})])])
    result = await make_loop(driver, completions, max_steps=max_steps).run("read")
    assert result.status == STATUS_EXHAUSTED
    assert len(completions.requests) == max_steps
