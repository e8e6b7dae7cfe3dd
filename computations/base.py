"""
Computation - Интерфейс делимого вычисления
===========================================

[CAPABILITY] Каждое вычисление реализует три операции:
- derive_items(seed): разбить seed на упорядоченный список аргументов
- compute_item(item): вычислить один аргумент (исключение = неудача)
- compose_results(results): собрать результаты в исходном порядке

[TREE] Дочерний узел получает аргумент родителя как собственный seed,
поэтому compose_results(derive_items(x)) должен давать то же, что
compute_item(x). Иначе родитель не сможет собрать результаты детей.

[ISOLATION] Живые объекты не пересекают границу процесса. Вместо них
передаётся ComputationSpec - путь к классу и параметры конструктора,
из которых вычисление восстанавливается на стороне worker.
"""

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class ComputationNotFoundError(LookupError):
    """Вычисление не найдено по имени или пути."""
    pass


@dataclass(frozen=True)
class ComputationSpec:
    """
    Описание вычисления, пригодное для передачи между процессами.

    path: "<module>:<qualname>" класса вычисления
    params: аргументы конструктора (только простые типы)
    """

    path: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComputationSpec":
        return cls(path=data["path"], params=dict(data.get("params", {})))


class Computation(ABC):
    """
    Абстрактный базовый класс для вычислений.

    Подклассы передают свои параметры в super().__init__(**params),
    чтобы spec() мог воспроизвести экземпляр в другом процессе.
    """

    def __init__(self, **params: Any):
        self.params: Dict[str, Any] = params

    @property
    @abstractmethod
    def name(self) -> str:
        """Идентификатор вычисления в протоколе обнаружения."""
        pass

    @abstractmethod
    def derive_items(self, seed: str) -> List[str]:
        """Разбить seed на аргументы."""
        pass

    @abstractmethod
    def compute_item(self, item: str) -> str:
        """Вычислить один аргумент."""
        pass

    @abstractmethod
    def compose_results(self, results: List[str]) -> str:
        """Собрать результаты (в порядке аргументов) в итог."""
        pass

    def spec(self) -> ComputationSpec:
        cls = type(self)
        return ComputationSpec(
            path=f"{cls.__module__}:{cls.__qualname__}",
            params=dict(self.params),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.params}>"


def load_computation(spec: ComputationSpec) -> Computation:
    """Восстановить вычисление из ComputationSpec."""
    module_name, _, qualname = spec.path.partition(":")
    if not module_name or not qualname:
        raise ComputationNotFoundError(f"Invalid computation path: {spec.path!r}")

    try:
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as e:
        raise ComputationNotFoundError(f"Cannot resolve {spec.path!r}: {e}") from e

    if not (isinstance(target, type) and issubclass(target, Computation)):
        raise ComputationNotFoundError(f"{spec.path!r} is not a Computation")

    return target(**spec.params)
