"""
Tests for md2pdf/diagrams.py - the diagram render coordinator
"""
import asyncio

import pytest

from md2pdf.diagrams import (
    RENDER_DIAGRAM_SCRIPT,
    DiagramBlock,
    DiagramRenderCoordinator,
    DiagramReport,
    DiagramState,
)

from conftest import FakeSession

VALID = "graph TD\n  A-->B"
BROKEN = "graph TD\n  INVALID -->"


def make_blocks(sources):
    return [DiagramBlock(index=i, source=s) for i, s in enumerate(sources)]


class TickingClock:
    """Each call returns a later time, in seconds."""

    def __init__(self, start=1760000000.0):
        self.now = start

    def __call__(self):
        self.now += 0.001
        return self.now


@pytest.mark.asyncio
@pytest.mark.parametrize("sources, expected_errors", [
    ([VALID], 0),
    ([BROKEN], 1),
    ([VALID, BROKEN, VALID, BROKEN, BROKEN], 3),
])
async def test_every_block_ends_terminal(config, console, sources, expected_errors):
    session = FakeSession(sources)
    blocks = make_blocks(sources)

    report = await DiagramRenderCoordinator(session, config, console).run(blocks)

    assert report == DiagramReport(len(sources), len(sources) - expected_errors, expected_errors, False)
    assert all(block.is_terminal for block in blocks)
    for block in blocks:
        if "INVALID" in block.source:
            assert block.state is DiagramState.ERRORED
            assert block.error == "Parse error on line 1"
        else:
            assert block.state is DiagramState.RENDERED
            assert block.error is None


@pytest.mark.asyncio
async def test_no_blocks_skips_rendering(config, console):
    session = FakeSession([])
    report = await DiagramRenderCoordinator(session, config, console).run([])

    assert report == DiagramReport(0, 0, 0, False)
    assert session.render_calls == []
    assert session.wait_calls == []


@pytest.mark.asyncio
async def test_prerendered_blocks_are_not_rendered_again(config, console):
    session = FakeSession([VALID, VALID, BROKEN], prerendered=[0])
    blocks = make_blocks([VALID, VALID, BROKEN])

    report = await DiagramRenderCoordinator(session, config, console).run(blocks)

    assert [call["index"] for call in session.render_calls] == [1, 2]
    assert report.rendered == 2
    assert report.errored == 1


@pytest.mark.asyncio
async def test_timeout_triggers_fallback_with_fresh_ids(config, console):
    session = FakeSession([VALID, VALID, BROKEN], stuck=[1])
    blocks = make_blocks([VALID, VALID, BROKEN])
    coordinator = DiagramRenderCoordinator(session, config, console, clock=TickingClock())

    report = await coordinator.run(blocks)

    assert report.timed_out is True
    assert session.wait_calls == [(50, 10)]
    ids = coordinator.render_ids
    assert len(ids) == len(set(ids))
    first_pass = [i for i in ids if i.startswith("diagram-")]
    fallback = [i for i in ids if i.startswith("fallback-")]
    assert len(first_pass) == 3
    # Only the stuck block is retried
    assert len(fallback) == 1 and fallback[0].endswith("-1")
    assert blocks[1].state is DiagramState.UNRENDERED
    assert (report.rendered, report.errored) == (1, 1)


@pytest.mark.asyncio
async def test_ids_differ_across_attempts_with_frozen_clock(config, console):
    session = FakeSession([VALID], stuck=[0])
    coordinator = DiagramRenderCoordinator(session, config, console, clock=lambda: 1760000000.0)

    await coordinator.run(make_blocks([VALID]))

    assert coordinator.render_ids == ["diagram-1760000000000-1-0", "fallback-1760000000000-2-0"]


@pytest.mark.asyncio
async def test_evaluation_failure_only_affects_its_block(config, console):
    class FlakySession(FakeSession):
        def _render(self, arg):
            if arg["index"] == 1:
                raise RuntimeError("Execution context was destroyed")
            return super()._render(arg)

    session = FlakySession([VALID, VALID, VALID])
    blocks = make_blocks([VALID, VALID, VALID])

    report = await DiagramRenderCoordinator(session, config, console).run(blocks)

    assert [b.state for b in blocks] == [DiagramState.RENDERED, DiagramState.ERRORED, DiagramState.RENDERED]
    assert blocks[1].error == "Execution context was destroyed"
    assert report.rendered == 2
    assert report.errored == 1
    # The page shows the error box too, so the settle wait is not exhausted
    assert session.diagrams[1]["rendered"] == "error"
    assert session.diagrams[1]["error"] == "Execution context was destroyed"
    assert report.timed_out is False
    assert session.wait_calls == [(50, 10)]


@pytest.mark.asyncio
async def test_render_that_never_returns_is_abandoned(config, console):
    class HangingSession(FakeSession):
        async def evaluate(self, script, arg=None):
            if script == RENDER_DIAGRAM_SCRIPT and arg["index"] == 0:
                await asyncio.sleep(3600)
            return await super().evaluate(script, arg)

    session = HangingSession([VALID, VALID])
    blocks = make_blocks([VALID, VALID])

    report = await asyncio.wait_for(DiagramRenderCoordinator(session, config, console).run(blocks), timeout=5)

    assert blocks[0].state is DiagramState.ERRORED
    assert "50ms" in blocks[0].error
    assert blocks[1].state is DiagramState.RENDERED
    assert session.diagrams[0]["rendered"] == "error"
    assert (report.rendered, report.errored, report.timed_out) == (1, 1, False)
