"""
Computations - Реестр встроенных вычислений
===========================================

[REGISTRY] Вычисление выбирается по имени (--computation в main.py).
Имя совпадает с идентификатором вычисления в протоколе обнаружения.
"""

from typing import Dict, Type

from .base import (
    Computation,
    ComputationSpec,
    ComputationNotFoundError,
    load_computation,
)
from .sum import SumComputation
from .pi import PiComputation

COMPUTATIONS: Dict[str, Type[Computation]] = {
    "Sum": SumComputation,
    "Pi": PiComputation,
}


def get_computation(name: str, **params) -> Computation:
    """Создать встроенное вычисление по имени."""
    try:
        cls = COMPUTATIONS[name]
    except KeyError:
        known = ", ".join(sorted(COMPUTATIONS))
        raise ComputationNotFoundError(f"Unknown computation {name!r} (known: {known})") from None
    return cls(**params)


__all__ = [
    "Computation",
    "ComputationSpec",
    "ComputationNotFoundError",
    "COMPUTATIONS",
    "PiComputation",
    "SumComputation",
    "get_computation",
    "load_computation",
]
