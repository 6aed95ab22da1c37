"""Mermaid diagram rendering inside a live document session.

Every diagram container in the page goes through a small state machine::

    unrendered --> rendered
               \\-> errored

The page's own bootstrap script starts rendering on ``DOMContentLoaded``.
:class:`DiagramRenderCoordinator` then sweeps whatever is still unrendered,
waits (bounded) for every block to reach a terminal state, and forces the
SVG colors into inline styles so Chromium's print path keeps them.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Optional

from .console import Console
from .errors import RenderTimeoutError


class DiagramState(Enum):
    UNRENDERED = "unrendered"
    RENDERED = "rendered"
    ERRORED = "errored"


# Values of the data-rendered attribute written by the in-page scripts
_ATTRIBUTE_STATES = {
    "true": DiagramState.RENDERED,
    "error": DiagramState.ERRORED,
}


@dataclass
class DiagramBlock:
    """A diagram found in the source document, indexed in source order."""
    index: int
    source: str
    state: DiagramState = DiagramState.UNRENDERED
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not DiagramState.UNRENDERED


class DiagramReport(NamedTuple):
    total: int
    rendered: int
    errored: int
    timed_out: bool


DIAGRAM_STATES_SCRIPT = """() => {
  return Array.from(document.querySelectorAll('.mermaid[data-diagram-index]')).map(el => ({
    index: Number(el.getAttribute('data-diagram-index')),
    rendered: el.getAttribute('data-rendered'),
    error: el.getAttribute('data-error'),
  }));
}"""

RENDER_DIAGRAM_SCRIPT = """async ({ index, id, source }) => {
  const element = document.querySelector(`.mermaid[data-diagram-index="${index}"]`);
  if (!element) {
    return { rendered: 'error', error: 'Diagram container not found' };
  }
  if (element.hasAttribute('data-rendered')) {
    return { rendered: element.getAttribute('data-rendered'), error: element.getAttribute('data-error') };
  }
  try {
    if (typeof mermaid === 'undefined') {
      throw new Error('Mermaid engine is not loaded');
    }
    const { svg } = await mermaid.render(id, source);
    element.innerHTML = svg;
    element.setAttribute('data-rendered', 'true');
    return { rendered: 'true', error: null };
  } catch (error) {
    const message = error && error.message ? error.message : String(error);
    const leftover = document.getElementById('d' + id);
    if (leftover) {
      leftover.remove();
    }
    const box = document.createElement('div');
    box.className = 'diagram-error';
    box.textContent = 'Diagram Error: ' + message;
    element.replaceChildren(box);
    element.setAttribute('data-error', message);
    element.setAttribute('data-rendered', 'error');
    return { rendered: 'error', error: message };
  }
}"""

MARK_DIAGRAM_ERROR_SCRIPT = """({ index, message }) => {
  const element = document.querySelector(`.mermaid[data-diagram-index="${index}"]`);
  if (!element || element.hasAttribute('data-rendered')) {
    return false;
  }
  const box = document.createElement('div');
  box.className = 'diagram-error';
  box.textContent = 'Diagram Error: ' + message;
  element.replaceChildren(box);
  element.setAttribute('data-error', message);
  element.setAttribute('data-rendered', 'error');
  return true;
}"""

ALL_DIAGRAMS_SETTLED_SCRIPT ="""() => {
  return Array.from(document.querySelectorAll('.mermaid')).every(el => el.hasAttribute('data-rendered'));
}"""

ENFORCE_SVG_COLORS_SCRIPT = """() => {
  let styled = 0;
  document.querySelectorAll('.mermaid[data-rendered="true"] svg').forEach(svg => {
    for (const attribute of ['fill', 'stroke']) {
      svg.querySelectorAll(`[${attribute}]`).forEach(element => {
        const value = element.getAttribute(attribute);
        if (value && value !== 'none' && value !== 'transparent') {
          element.style.setProperty(attribute, value, 'important');
          styled++;
        }
      });
    }
  });
  return styled;
}"""


class DiagramRenderCoordinator:
    """Drives every :class:`DiagramBlock` out of the unrendered state.

    All session calls are awaited one at a time in source order. Render ids
    combine the sweep's start time, a per-coordinator attempt counter and
    the block index, so a retry never reuses an id from an earlier attempt.
    A single render that takes longer than ``renderTimeoutMs`` marks its
    block errored and the sweep moves on.
    """

    def __init__(self, session, config: dict, console: Optional[Console] = None,
                 clock: Callable[[], float] = time.time):
        mermaid = config.get("mermaid") or {}
        self.session = session
        self.console = console or Console()
        self.clock = clock
        self.settle_delay_ms = mermaid.get("settleDelayMs", 500)
        self.initial_wait_ms = mermaid.get("initialWaitMs", 2000)
        self.poll_interval_ms = mermaid.get("pollIntervalMs", 500)
        self.render_timeout_ms = mermaid.get("renderTimeoutMs", 15000)
        self.render_ids: List[str] = []
        self._attempt = 0

    async def run(self, blocks: List[DiagramBlock]) -> DiagramReport:
        await asyncio.sleep(self.settle_delay_ms / 1000)

        if not blocks:
            self.console.debug("No Mermaid diagrams found")
            return DiagramReport(0, 0, 0, False)

        self.console.info(f"Found {len(blocks)} Mermaid diagrams, waiting for rendering...")
        await asyncio.sleep(self.initial_wait_ms / 1000)

        await self.sweep(blocks, "diagram")

        timed_out = False
        try:
            await self.session.wait_for(
                ALL_DIAGRAMS_SETTLED_SCRIPT,
                timeout_ms=self.render_timeout_ms,
                poll_ms=self.poll_interval_ms,
            )
        except RenderTimeoutError as e:
            timed_out = True
            self.console.warning(f"Mermaid diagrams may not have fully rendered: {e}")
            await self.sweep(blocks, "fallback")

        styled = await self.session.evaluate(ENFORCE_SVG_COLORS_SCRIPT)
        self.console.debug(f"Forced inline colors on {styled} SVG elements")

        await self.refresh_states(blocks)
        report = DiagramReport(
            total=len(blocks),
            rendered=sum(1 for b in blocks if b.state is DiagramState.RENDERED),
            errored=sum(1 for b in blocks if b.state is DiagramState.ERRORED),
            timed_out=timed_out,
        )
        self.console.info(f"Mermaid rendering complete: {report.rendered}/{report.total} diagrams rendered")
        if report.errored:
            self.console.warning(f"{report.errored} diagram(s) failed to render and were replaced by an error notice")
        return report

    async def refresh_states(self, blocks: List[DiagramBlock]) -> None:
        """Copy the terminal states recorded in the page onto the blocks."""
        page_states: Dict[int, dict] = {
            entry["index"]: entry for entry in await self.session.evaluate(DIAGRAM_STATES_SCRIPT)
        }
        for block in blocks:
            entry = page_states.get(block.index)
            if entry is not None and not block.is_terminal:
                self._record(block, entry.get("rendered"), entry.get("error"))

    async def sweep(self, blocks: List[DiagramBlock], prefix: str) -> None:
        """Render every block that is still unrendered, one at a time."""
        await self.refresh_states(blocks)
        pending = [block for block in blocks if not block.is_terminal]
        if not pending:
            return

        self._attempt += 1
        stamp = int(self.clock() * 1000)
        self.console.debug(f"Force-rendering {len(pending)} diagram(s), attempt {self._attempt}")
        for block in pending:
            diagram_id = f"{prefix}-{stamp}-{self._attempt}-{block.index}"
            self.render_ids.append(diagram_id)
            try:
                result = await asyncio.wait_for(
                    self.session.evaluate(
                        RENDER_DIAGRAM_SCRIPT,
                        {"index": block.index, "id": diagram_id, "source": block.source},
                    ),
                    timeout=self.render_timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                message = f"Rendering did not finish within {self.render_timeout_ms}ms"
                self.console.warning(f"Diagram {block.index + 1} could not be rendered: {message}")
                await self.mark_errored(block, message)
                continue
            except Exception as e:
                self.console.warning(f"Diagram {block.index + 1} could not be rendered: {e}")
                await self.mark_errored(block, str(e))
                continue
            self._record(block, result.get("rendered"), result.get("error"))
            if block.state is DiagramState.RENDERED:
                self.console.debug(f"Rendered diagram {block.index + 1}")

    async def mark_errored(self, block: DiagramBlock, message: str) -> None:
        """Mark ``block`` errored here and, if the page still answers, in the page too.

        The page element gets the same error box and attributes as a failed
        render, so the settle condition holds and no raw source is printed.
        """
        self._record(block, "error", message)
        try:
            await asyncio.wait_for(
                self.session.evaluate(MARK_DIAGRAM_ERROR_SCRIPT, {"index": block.index, "message": message}),
                timeout=self.render_timeout_ms / 1000,
            )
        except Exception as e:
            self.console.debug(f"Could not mark diagram {block.index + 1} as failed in the page: {e}")

    def _record(self, block: DiagramBlock, rendered: Optional[str], error: Optional[str]) -> None:
        state = _ATTRIBUTE_STATES.get(rendered or "")
        if state is None:
            return
        block.state = state
        if state is DiagramState.ERRORED:
            block.error = error or "Unknown error occurred during diagram rendering"
            self.console.warning(f"Diagram {block.index + 1} failed: {block.error}")
