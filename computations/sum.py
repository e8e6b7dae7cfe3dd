"""
Sum - Сумма целых чисел на отрезке.

Seed: "<start>-<end>" (включительно) или "<n>" как сокращение для "1-<n>".
Аргументы - непересекающиеся подотрезки длиной не более chunk_size.
"""

import re
from typing import List, Tuple

from .base import Computation

_RANGE_RE = re.compile(r"^\s*(-?\d+)\s*-\s*(-?\d+)\s*$")
_COUNT_RE = re.compile(r"^\s*(\d+)\s*$")


def parse_range(text: str) -> Tuple[int, int]:
    match = _RANGE_RE.match(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _COUNT_RE.match(text)
    if match:
        return 1, int(match.group(1))
    raise ValueError(f"Invalid range: {text!r}")


class SumComputation(Computation):
    """Распределённая сумма отрезка целых чисел."""

    def __init__(self, chunk_size: int = 100_000):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        super().__init__(chunk_size=chunk_size)
        self.chunk_size = chunk_size

    @property
    def name(self) -> str:
        return "Sum"

    def derive_items(self, seed: str) -> List[str]:
        start, end = parse_range(seed)
        items = []
        low = start
        while low <= end:
            high = min(low + self.chunk_size - 1, end)
            items.append(f"{low}-{high}")
            low = high + 1
        return items

    def compute_item(self, item: str) -> str:
        start, end = parse_range(item)
        return str(sum(range(start, end + 1)))

    def compose_results(self, results: List[str]) -> str:
        return str(sum(int(value) for value in results))
