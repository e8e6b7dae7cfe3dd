"""
Heartbeat Responder Unit Tests
==============================

[HEARTBEAT] Node.initiate without the gRPC layer:
- busy node answers a single BUSY
- idle node streams IN_PROGRESS and then DONE
- failed sub-computation ends the stream without a result
"""

import asyncio
from typing import List

import pytest

from core.node import Node
from core.protocol import Heartbeat, HeartbeatKind

from conftest import (
    BrokenComputation,
    FakeInvoker,
    FakeProber,
    LetterComputation,
    SlowComputation,
)


pytestmark = pytest.mark.asyncio


def make_node(settings, computation=None) -> Node:
    return Node(
        "Bob",
        settings.network.discovery_port,
        0,
        computation or LetterComputation(),
        settings=settings,
        prober=FakeProber(max_peers=0),
        invoker=FakeInvoker(),
    )


async def collect(node: Node, argument: str) -> List[Heartbeat]:
    return [heartbeat async for heartbeat in node.initiate(argument)]


async def test_idle_node_returns_result(settings):
    node = make_node(settings)

    heartbeats = await collect(node, "abc")

    assert heartbeats[-1] == Heartbeat.done("res(a),res(b),res(c)")
    assert all(h.kind is HeartbeatKind.IN_PROGRESS for h in heartbeats[:-1])
    assert not node.is_computing


async def test_busy_node_returns_single_busy(settings):
    node = make_node(settings)
    node._is_computing = True

    heartbeats = await collect(node, "abc")

    assert heartbeats == [Heartbeat.busy()]
    assert LetterComputation.calls == []
    assert node.is_computing


async def test_long_computation_streams_progress(settings):
    node = make_node(settings, computation=SlowComputation(delay=0.2))

    heartbeats = await collect(node, "ab")

    kinds = [h.kind for h in heartbeats]
    assert HeartbeatKind.IN_PROGRESS in kinds
    assert kinds[-1] is HeartbeatKind.DONE
    assert heartbeats[-1].value == "res(a),res(b)"


async def test_second_request_while_computing_is_busy(settings):
    node = make_node(settings, computation=SlowComputation(delay=0.2))

    first = asyncio.create_task(collect(node, "ab"))
    while not node.is_computing:
        await asyncio.sleep(0.01)

    second = await collect(node, "cd")
    first_heartbeats = await first

    assert second == [Heartbeat.busy()]
    assert first_heartbeats[-1] == Heartbeat.done("res(a),res(b)")
    assert sorted(LetterComputation.calls) == ["a", "b"]


async def test_failed_computation_ends_without_result(settings):
    settings.compute.max_cycles = 2
    node = make_node(settings, computation=BrokenComputation())

    heartbeats = await collect(node, "ab")

    assert all(h.kind is HeartbeatKind.IN_PROGRESS for h in heartbeats)
    assert not node.is_computing


async def test_stop_cancels_child_computation(settings):
    node = make_node(settings, computation=SlowComputation(delay=0.3))
    stream = node.initiate("abc")

    first = await stream.__anext__()
    assert first == Heartbeat.in_progress()
    assert node.is_computing

    await node.stop()

    assert not node.is_computing
    await stream.aclose()
