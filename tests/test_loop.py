"""Tests for the observe / evaluate / act state machine."""

from __future__ import annotations

from typing import List

import pytest

from explorer.browser import ActionError
from explorer.checkpoint import MemoryCheckpointStore
from explorer.loop import ExplorationLoop, Phase, StepBudgetExceeded
from explorer.models import Action, ErrorRecord, ScoredElement
from explorer.state import CrawlState, apply_update

from fakes import ABOUT, HOME, FakeBrowser, button, link, text_input


class RecordingStore(MemoryCheckpointStore):
    """Keeps every committed snapshot, not only the latest."""

    def __init__(self) -> None:
        super().__init__()
        self.history: List[CrawlState] = []

    def commit(self, run_id, state):
        super().commit(run_id, state)
        self.history.append(state.snapshot())


def _loop(browser, checkpoints=None, **kwargs) -> ExplorationLoop:
    return ExplorationLoop(browser, checkpoints or MemoryCheckpointStore(), **kwargs)


def _queued(state: CrawlState, *elements) -> CrawlState:
    return apply_update(
        state, {"element_queue": [ScoredElement(element=e, score=0) for e in elements]}
    )


class TestObserve:
    @pytest.mark.asyncio
    async def test_drains_errors_and_scores_elements(self):
        error = ErrorRecord(kind="pageerror", message="boom", url=HOME)
        browser = FakeBrowser(
            {HOME: [button("#delete-account", "Delete account")]}, errors={HOME: [error]}
        )
        await browser.initialize(HOME)
        loop = _loop(browser)

        update = await loop.observe(CrawlState.initial(HOME))

        assert update["errors"] == [error]
        assert [(item.selector, item.score) for item in update["element_queue"]] == [
            ("#delete-account", 65)
        ]
        second = await loop.observe(CrawlState.initial(HOME))
        assert second["errors"] == []


class TestEvaluate:
    def test_dead_page_yields_no_action(self):
        update = _loop(FakeBrowser({})).evaluate(CrawlState.initial(HOME))
        assert update["next_action"] is None
        assert update["element_queue"] == []

    def test_prefers_highest_scoring_element(self):
        state = _queued(
            CrawlState.initial(HOME),
            link("#about-link", ABOUT, "About"),
            button("#delete-account", "Delete account"),
        )
        action = _loop(FakeBrowser({})).evaluate(state)["next_action"]
        assert action == Action.interact(button("#delete-account", "Delete account"))

    def test_link_becomes_navigate_with_normalized_target(self):
        state = _queued(CrawlState.initial(HOME), link("#about-link", "/about#team", "About"))
        action = _loop(FakeBrowser({})).evaluate(state)["next_action"]
        assert action.kind == "navigate"
        assert action.url == ABOUT

    def test_skips_visited_external_and_unparseable_links(self):
        state = _queued(
            CrawlState.initial(HOME),
            link("#self", HOME + "#top", "Home"),
            link("#external", "https://other.test/", "Elsewhere"),
            link("#js", "javascript:void(0)", "Script"),
        )
        assert _loop(FakeBrowser({})).evaluate(state)["next_action"] is None

    def test_subdomain_links_follow_config(self):
        start = "https://www.example.com/"
        state = _queued(CrawlState.initial(start), link("#docs", "https://docs.example.com/", "Docs"))
        assert _loop(FakeBrowser({})).evaluate(state)["next_action"] is None
        action = _loop(FakeBrowser({}), include_subdomains=True).evaluate(state)["next_action"]
        assert action.url == "https://docs.example.com/"

    def test_link_without_href_is_interacted(self):
        element = link("#menu", "", "Menu")
        action = _loop(FakeBrowser({})).evaluate(_queued(CrawlState.initial(HOME), element))[
            "next_action"
        ]
        assert action.kind == "interact"

    def test_text_entry_gets_fill_value(self):
        state = _queued(CrawlState.initial(HOME), text_input("#city", "City"))
        action = _loop(FakeBrowser({}), fill_value="hello").evaluate(state)["next_action"]
        assert action == Action.interact(text_input("#city", "City"), "hello")

    def test_submit_input_is_not_filled(self):
        state = _queued(CrawlState.initial(HOME), text_input("#go", "Go", input_type="submit"))
        action = _loop(FakeBrowser({})).evaluate(state)["next_action"]
        assert action.value is None

    @pytest.mark.parametrize("input_type", ["number", "date", "datetime-local", "time"])
    def test_typed_inputs_are_clicked_not_filled(self, input_type):
        when = text_input("#when", "When", input_type=input_type)
        action = _loop(FakeBrowser({})).evaluate(_queued(CrawlState.initial(HOME), when))
        assert action["next_action"] == Action.interact(when)

    def test_skips_selectors_already_interacted_on_this_page(self):
        delete = button("#delete-account", "Delete account")
        about = link("#about-link", ABOUT, "About")
        state = apply_update(
            _queued(CrawlState.initial(HOME), delete, about),
            {"crawl_map": {HOME: [Action.interact(delete)]}},
        )
        update = _loop(FakeBrowser({})).evaluate(state)
        assert update["next_action"] == Action.navigate(about, ABOUT)
        assert [item.score for item in update["element_queue"]] == [15, 10]

    def test_interaction_history_is_per_page(self):
        delete = button("#delete-account", "Delete account")
        state = apply_update(
            _queued(CrawlState.initial(HOME), delete),
            {"crawl_map": {ABOUT: [Action.interact(delete)]}},
        )
        assert _loop(FakeBrowser({})).evaluate(state)["next_action"] == Action.interact(delete)


class TestRouting:
    def test_no_action_terminates(self):
        loop = _loop(FakeBrowser({}))
        assert loop.route_after_evaluate(CrawlState.initial(HOME)) is Phase.terminated
        assert loop.stop_reason == "no_action"

    def test_visited_limit_terminates(self):
        loop = _loop(FakeBrowser({}), max_visited_urls=1)
        state = apply_update(
            CrawlState.initial(HOME),
            {"visited_urls": {ABOUT}, "next_action": Action.interact(button("#a"))},
        )
        assert loop.route_after_evaluate(state) is Phase.terminated
        assert loop.stop_reason == "visited_limit"

    def test_action_within_budget_goes_to_act(self):
        state = apply_update(
            CrawlState.initial(HOME), {"next_action": Action.interact(button("#a"))}
        )
        assert _loop(FakeBrowser({})).route_after_evaluate(state) is Phase.act

    @pytest.mark.asyncio
    async def test_transition_out_of_terminated_is_an_error(self):
        with pytest.raises(ValueError):
            await _loop(FakeBrowser({})).transition(Phase.terminated, CrawlState.initial(HOME))


class TestAct:
    @pytest.mark.asyncio
    async def test_navigate_records_new_url(self, account_site):
        await account_site.initialize(HOME)
        about = link("#about-link", ABOUT, "About")
        state = apply_update(
            CrawlState.initial(HOME), {"next_action": Action.navigate(about, ABOUT)}
        )

        update = await _loop(account_site).act(state)

        assert account_site.act_calls == [("#about-link", "click", None)]
        assert account_site.settle_calls == 1
        assert update == {
            "current_url": ABOUT,
            "visited_urls": {ABOUT},
            "crawl_map": {HOME: [Action.navigate(about, ABOUT)]},
        }

    @pytest.mark.asyncio
    async def test_text_entry_is_filled(self):
        field = text_input("#city", "City")
        browser = FakeBrowser({HOME: [field]})
        await browser.initialize(HOME)
        state = apply_update(
            CrawlState.initial(HOME), {"next_action": Action.interact(field, "test content")}
        )

        update = await _loop(browser).act(state)

        assert browser.act_calls == [("#city", "fill", "test content")]
        assert update["current_url"] == HOME

    @pytest.mark.asyncio
    async def test_action_error_only_records_error(self):
        browser = FakeBrowser({HOME: [button("#gone")]}, fail_on_act={1})
        await browser.initialize(HOME)
        state = apply_update(
            CrawlState.initial(HOME), {"next_action": Action.interact(button("#gone"))}
        )

        update = await _loop(browser).act(state)

        assert list(update) == ["errors"]
        [error] = update["errors"]
        assert error.kind == "action_error"
        assert error.url == HOME
        assert "not attached" in error.message
        assert browser.settle_calls == 0

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded_as_action_error(self):
        class BrokenBrowser(FakeBrowser):
            async def act(self, selector, kind, value=None):
                raise TimeoutError("page crashed")

        browser = BrokenBrowser({})
        await browser.initialize(HOME)
        state = apply_update(
            CrawlState.initial(HOME), {"next_action": Action.interact(button("#a"))}
        )

        update = await _loop(browser).act(state)
        assert update["errors"][0].message == "page crashed"


class TestRun:
    @pytest.mark.asyncio
    async def test_dead_page_terminates_without_acting(self):
        browser = FakeBrowser({HOME: []})
        await browser.initialize(HOME)
        loop = _loop(browser)

        final = await loop.run(CrawlState.initial(HOME), "run")

        assert loop.steps_taken == 2
        assert loop.stop_reason == "no_action"
        assert browser.act_calls == []
        assert final.visited_urls == {HOME}
        assert final.crawl_map == {}

    @pytest.mark.asyncio
    async def test_explores_destructive_button_then_links(self, account_site):
        await account_site.initialize(HOME)
        loop = _loop(account_site)

        final = await loop.run(CrawlState.initial(HOME), "run")

        assert account_site.act_calls == [
            ("#delete-account", "click", None),
            ("#about-link", "click", None),
        ]
        assert final.crawl_map[HOME][0].kind == "interact"
        assert final.crawl_map[HOME][0].element.selector == "#delete-account"
        assert final.crawl_map[HOME][1] == Action.navigate(
            link("#about-link", ABOUT, "About", id="el_0"), ABOUT
        )
        assert final.visited_urls == {HOME, ABOUT}
        assert final.current_url == ABOUT
        assert loop.stop_reason == "no_action"
        assert loop.steps_taken == 8

    @pytest.mark.asyncio
    async def test_visited_limit_stops_at_second_distinct_url(self):
        pages = {
            HOME: [link("#a", "/a", "First")],
            "https://example.test/a": [link("#b", "/b", "Second")],
            "https://example.test/b": [link("#c", "/c", "Third")],
        }
        browser = FakeBrowser(pages)
        await browser.initialize(HOME)
        loop = _loop(browser, max_visited_urls=1)

        final = await loop.run(CrawlState.initial(HOME), "run")

        assert final.visited_urls == {HOME, "https://example.test/a"}
        assert loop.stop_reason == "visited_limit"
        assert len(browser.act_calls) == 1

    @pytest.mark.asyncio
    async def test_step_budget_raises_and_keeps_last_commit(self):
        buttons = [button(f"#btn-{i}", f"Toggle {i}") for i in range(30)]
        browser = FakeBrowser({HOME: buttons})
        await browser.initialize(HOME)
        store = MemoryCheckpointStore()
        loop = _loop(browser, store, max_steps=5)

        with pytest.raises(StepBudgetExceeded) as excinfo:
            await loop.run(CrawlState.initial(HOME), "run")

        assert excinfo.value.max_steps == 5
        assert loop.steps_taken == 5
        assert loop.stop_reason == "step_budget"
        snapshot = store.get_latest_snapshot("run")
        assert [a.element.selector for a in snapshot.crawl_map[HOME]] == ["#btn-0"]
        assert snapshot.next_action.element.selector == "#btn-1"

    @pytest.mark.asyncio
    async def test_commits_after_every_step(self, account_site):
        await account_site.initialize(HOME)
        store = RecordingStore()
        loop = _loop(account_site, store)

        final = await loop.run(CrawlState.initial(HOME), "run")

        assert len(store.history) == loop.steps_taken + 1
        assert store.history[0] == CrawlState.initial(HOME)
        assert store.history[-1] == final

    @pytest.mark.asyncio
    async def test_accumulating_fields_grow_monotonically(self):
        error = ErrorRecord(kind="network_error", url=ABOUT + "/x.js", status=404, page_url=ABOUT)
        browser = FakeBrowser(
            {
                HOME: [link("#about-link", ABOUT, "About"), text_input("#q", "Query")],
                ABOUT: [button("#save", "Save"), link("#home-link", HOME, "Home")],
            },
            errors={ABOUT: [error]},
        )
        await browser.initialize(HOME)
        store = RecordingStore()

        await _loop(browser, store).run(CrawlState.initial(HOME), "run")

        for before, after in zip(store.history, store.history[1:]):
            assert before.visited_urls <= after.visited_urls
            assert after.errors[: len(before.errors)] == before.errors
            for url, actions in before.crawl_map.items():
                assert after.crawl_map[url][: len(actions)] == actions
        assert store.history[-1].errors == [error]

    @pytest.mark.asyncio
    async def test_action_error_is_recorded_and_run_continues(self, account_site):
        account_site.fail_on_act = {1}
        await account_site.initialize(HOME)
        loop = _loop(account_site)

        final = await loop.run(CrawlState.initial(HOME), "run")

        assert [error.kind for error in final.errors] == ["action_error"]
        assert final.errors[0].url == HOME
        assert final.visited_urls == {HOME, ABOUT}
        assert loop.stop_reason == "no_action"

    @pytest.mark.asyncio
    async def test_number_input_does_not_block_links(self):
        class StrictInputs(FakeBrowser):
            async def act(self, selector, kind, value=None):
                if kind == "fill":
                    self.act_calls.append((selector, kind, value))
                    raise ActionError(selector, "Cannot type text into input[type=number]")
                await super().act(selector, kind, value)

        browser = StrictInputs(
            {
                HOME: [
                    text_input("#qty", "Quantity", input_type="number"),
                    link("#about-link", ABOUT, "About", id="el_1"),
                ],
                ABOUT: [],
            }
        )
        await browser.initialize(HOME)
        loop = _loop(browser, max_steps=50)

        final = await loop.run(CrawlState.initial(HOME), "run")

        assert browser.act_calls == [
            ("#qty", "click", None),
            ("#about-link", "click", None),
        ]
        assert final.errors == []
        assert ABOUT in final.visited_urls
        assert loop.stop_reason == "no_action"
