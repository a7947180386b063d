"""The observe → evaluate → act exploration state machine."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Literal, Optional, Tuple

from .browser import ActionError, BrowseProvider
from .checkpoint import CheckpointStore
from .config import DEFAULT_FILL_VALUE, DEFAULT_MAX_STEPS, DEFAULT_MAX_VISITED_URLS
from .curiosity import prioritize, score_element
from .models import Action, ErrorRecord, ScoredElement
from .state import CrawlState, StateUpdate, apply_update, page_key
from .urls import UnnormalizableURL, is_same_origin, normalize_url

LOGGER = logging.getLogger(__name__)

StopReason = Literal["no_action", "visited_limit", "step_budget", "error"]


class Phase(str, Enum):
    """States of the exploration loop."""

    observe = "observe"
    evaluate = "evaluate"
    act = "act"
    terminated = "terminated"


class StepBudgetExceeded(RuntimeError):
    """Raised when a run executes more steps than it is allowed."""

    def __init__(self, max_steps: int, run_id: str):
        self.max_steps = max_steps
        self.run_id = run_id
        super().__init__(f"Run {run_id} exceeded its step budget of {max_steps}")


class ExplorationLoop:
    """Drives one browse session through the exploration state machine.

    The loop owns its CrawlState exclusively. Every step returns a partial
    update that is merged with :func:`apply_update` and committed to the
    checkpoint store before the next step starts.
    """

    def __init__(
        self,
        browser: BrowseProvider,
        checkpoints: CheckpointStore,
        *,
        max_visited_urls: int = DEFAULT_MAX_VISITED_URLS,
        max_steps: int = DEFAULT_MAX_STEPS,
        fill_value: str = DEFAULT_FILL_VALUE,
        include_subdomains: bool = False,
    ) -> None:
        self.browser = browser
        self.checkpoints = checkpoints
        self.max_visited_urls = max_visited_urls
        self.max_steps = max_steps
        self.fill_value = fill_value
        self.include_subdomains = include_subdomains
        self.steps_taken = 0
        self.stop_reason: Optional[StopReason] = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def observe(self, state: CrawlState) -> StateUpdate:
        """Drain buffered anomalies and capture the visible elements."""
        LOGGER.info("[Observe] Looking at %s", state.current_url)
        errors = self.browser.observe_errors()
        elements = await self.browser.observe_elements()
        for error in errors:
            LOGGER.debug("[Observe] %s on %s: %s", error.kind, error.url, error.describe())
        return {
            "errors": errors,
            "element_queue": [
                ScoredElement(element=element, score=score_element(element))
                for element in elements
            ],
        }

    def evaluate(self, state: CrawlState) -> StateUpdate:
        """Rank the observed elements and choose the next action, if any."""
        history = state.actions_here()
        acted_selectors = {action.element.selector for action in history}
        interacted = {
            action.element.selector for action in history if action.kind == "interact"
        }

        ranked = prioritize((item.element for item in state.element_queue), acted_selectors)
        LOGGER.info("[Evaluate] Curiosity engine scored %d element(s)", len(ranked))

        next_action: Optional[Action] = None
        for candidate in ranked:
            element = candidate.element
            if element.is_link and element.href:
                try:
                    target = normalize_url(element.href, state.current_url)
                except UnnormalizableURL:
                    continue
                if target in state.visited_urls:
                    continue
                if not is_same_origin(
                    target, state.current_url, include_subdomains=self.include_subdomains
                ):
                    continue
                next_action = Action.navigate(element, target)
                break

            if element.selector in interacted:
                continue
            value = self.fill_value if element.is_text_entry else None
            next_action = Action.interact(element, value)
            break

        if next_action is None and ranked:
            LOGGER.info("[Evaluate] No unvisited actions found, stopping.")

        return {"element_queue": ranked, "next_action": next_action}

    def route_after_evaluate(self, state: CrawlState) -> Phase:
        if state.next_action is None:
            self.stop_reason = "no_action"
            return Phase.terminated
        if len(state.visited_urls) > self.max_visited_urls:
            LOGGER.info(
                "[Evaluate] Visited %d URLs (limit %d). Stopping.",
                len(state.visited_urls),
                self.max_visited_urls,
            )
            self.stop_reason = "visited_limit"
            return Phase.terminated
        return Phase.act

    async def act(self, state: CrawlState) -> StateUpdate:
        """Perform the chosen action and report where the browser ended up."""
        action = state.next_action
        if action is None:
            return {}

        element = action.element
        try:
            if action.kind == "navigate":
                LOGGER.info(
                    "[Act] Navigating to %s via click on %s", action.url, element.selector
                )
                await self.browser.act(element.selector, "click")
            elif element.is_text_entry:
                LOGGER.info("[Act] Filling %s", element.selector)
                await self.browser.act(element.selector, "fill", action.value)
            else:
                LOGGER.info("[Act] Clicking %s (%s)", element.selector, element.tag.value)
                await self.browser.act(element.selector, "click")
            await self.browser.settle()
            new_url = self.browser.current_url()
        except ActionError as exc:
            LOGGER.warning("[Act] Error during action: %s", exc.message)
            return {"errors": [_action_error(exc.message, state.current_url)]}
        except Exception as exc:
            LOGGER.warning("[Act] Unexpected failure during action: %s", exc)
            return {"errors": [_action_error(str(exc), state.current_url)]}

        return {
            "current_url": new_url,
            "visited_urls": {page_key(new_url)},
            "crawl_map": {state.page_key: [action]},
        }

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def transition(
        self, phase: Phase, state: CrawlState
    ) -> Tuple[Phase, StateUpdate]:
        """Execute the step for ``phase`` and return the next phase and update."""
        if phase is Phase.observe:
            return Phase.evaluate, await self.observe(state)
        if phase is Phase.evaluate:
            update = self.evaluate(state)
            return self.route_after_evaluate(apply_update(state, update)), update
        if phase is Phase.act:
            return Phase.observe, await self.act(state)
        raise ValueError(f"No transition out of {phase.value}")

    async def run(self, initial: CrawlState, run_id: str) -> CrawlState:
        """Run the state machine from Observe until it terminates.

        Raises:
            StepBudgetExceeded: If the run needs more than ``max_steps`` steps.
                The last committed snapshot stays available for recovery.
        """
        state = initial
        phase = Phase.observe
        self.steps_taken = 0
        self.stop_reason = None
        self.checkpoints.commit(run_id, state)

        try:
            while phase is not Phase.terminated:
                if self.steps_taken >= self.max_steps:
                    self.stop_reason = "step_budget"
                    raise StepBudgetExceeded(self.max_steps, run_id)
                phase, update = await self.transition(phase, state)
                state = apply_update(state, update)
                self.steps_taken += 1
                self.checkpoints.commit(run_id, state)
        except Exception:
            if self.stop_reason is None:
                self.stop_reason = "error"
            raise

        LOGGER.info(
            "Run %s terminated after %d step(s) (%s)",
            run_id,
            self.steps_taken,
            self.stop_reason,
        )
        return state


def _action_error(message: str, url: str) -> ErrorRecord:
    return ErrorRecord(kind="action_error", message=message, url=url)
