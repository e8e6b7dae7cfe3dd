"""
Local Executor Unit Tests
=========================
"""

from typing import List

import pytest

from computations import SumComputation
from computations.base import Computation
from core.executor import LocalExecutor

from conftest import BrokenComputation, LetterComputation


pytestmark = pytest.mark.asyncio


class NumberComputation(Computation):
    """compute_item returns an int instead of a string."""

    @property
    def name(self) -> str:
        return "Numbers"

    def derive_items(self, seed: str) -> List[str]:
        return [seed]

    def compute_item(self, item: str):
        return len(item)

    def compose_results(self, results: List[str]) -> str:
        return ""


async def test_thread_mode_returns_result():
    executor = LocalExecutor(LetterComputation(), mode="thread")

    assert await executor.run("x") == "res(x)"
    assert LetterComputation.calls == ["x"]


async def test_failure_is_swallowed():
    executor = LocalExecutor(BrokenComputation(), mode="thread")

    assert await executor.run("x") is None


async def test_non_string_result_is_a_failure():
    executor = LocalExecutor(NumberComputation(), mode="thread")

    assert await executor.run("abc") is None


async def test_unknown_mode():
    with pytest.raises(ValueError):
        LocalExecutor(LetterComputation(), mode="fiber")


@pytest.mark.slow
async def test_process_mode_returns_result():
    executor = LocalExecutor(SumComputation(chunk_size=10), mode="process")

    assert await executor.run("1-10") == "55"


@pytest.mark.slow
async def test_process_mode_failure_is_swallowed():
    executor = LocalExecutor(SumComputation(), mode="process")

    assert await executor.run("not a range") is None
