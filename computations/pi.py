"""
Pi - Оценка числа Пи методом Монте-Карло.

Seed: "<samples>", "<samples>:<rng seed>" или "<offset>:<count>:<rng seed>".
Все точки берутся из одного потока PCG64(rng seed): точка i - это
выходы 2i и 2i+1 потока. Аргумент "<offset>:<count>:<seed>" - отрезок
[offset, offset + count) этого потока, поэтому результат не зависит от
того, как (и на каких узлах) отрезок был разбит.

Результат аргумента и итог - "<hits>/<count>", поэтому итог дочернего
узла можно снова складывать у родителя.
"""

from typing import List, Tuple

import numpy as np

from .base import Computation


def parse_batch(text: str) -> Tuple[int, int, int]:
    """Разобрать аргумент в (offset, count, seed)."""
    parts = text.strip().split(":")
    if len(parts) == 1:
        offset, count, seed = 0, int(parts[0]), 0
    elif len(parts) == 2:
        offset, count, seed = 0, int(parts[0]), int(parts[1])
    elif len(parts) == 3:
        offset, count, seed = (int(part) for part in parts)
    else:
        raise ValueError(f"Invalid batch: {text!r}")
    if offset < 0 or count < 0 or seed < 0:
        raise ValueError(f"Invalid batch: {text!r}")
    return offset, count, seed


def parse_ratio(text: str) -> Tuple[int, int]:
    hits_text, separator, count_text = text.partition("/")
    if not separator:
        raise ValueError(f"Invalid ratio: {text!r}")
    return int(hits_text), int(count_text)


class PiComputation(Computation):
    """Монте-Карло оценка Пи по точкам единичного квадрата."""

    def __init__(self, chunk_size: int = 1_000_000):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        super().__init__(chunk_size=chunk_size)
        self.chunk_size = chunk_size

    @property
    def name(self) -> str:
        return "Pi"

    def derive_items(self, seed: str) -> List[str]:
        offset, count, rng_seed = parse_batch(seed)
        if count <= self.chunk_size:
            return [f"{offset}:{count}:{rng_seed}"]

        items = []
        for start in range(offset, offset + count, self.chunk_size):
            size = min(self.chunk_size, offset + count - start)
            items.append(f"{start}:{size}:{rng_seed}")
        return items

    def compute_item(self, item: str) -> str:
        offset, count, seed = parse_batch(item)
        bit_generator = np.random.PCG64(seed)
        # Две 64-битные выдачи на точку (x, y)
        bit_generator.advance(2 * offset)
        points = np.random.Generator(bit_generator).random((count, 2))
        hits = int(np.count_nonzero(np.sum(points * points, axis=1) <= 1.0))
        return f"{hits}/{count}"

    def compose_results(self, results: List[str]) -> str:
        hits = 0
        count = 0
        for value in results:
            h, c = parse_ratio(value)
            hits += h
            count += c
        return f"{hits}/{count}"

    @staticmethod
    def estimate(result: str) -> float:
        hits, count = parse_ratio(result)
        if count == 0:
            raise ValueError("No samples were computed")
        return 4.0 * hits / count
