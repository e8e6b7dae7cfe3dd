"""
Heartbeat Protocol - Сообщения gRPC сервиса узла
================================================

[RPC] Сервис dartminator.Node (core/dartminator.proto) содержит одну
server-streaming операцию:

    Initiate(ComputationArgument) -> stream ComputationHeartbeat

[CODEGEN] Модули dartminator_pb2 / dartminator_pb2_grpc генерируются
из .proto при импорте (grpcio-tools, grpc.protos_and_services).
Путь к .proto разрешается относительно sys.path, поэтому корень
проекта должен быть в sys.path (установка пакета или запуск из корня).

[HEARTBEAT] ComputationHeartbeat - размеченное объединение:
- empty=true                          -> BUSY (узел уже вычисляет)
- result.done=false                   -> IN_PROGRESS (результата пока нет)
- result.done=true, result.result=... -> DONE (терминальное, несёт результат)

Heartbeat - тонкое отображение pb сообщения, с которым работает узел.
"""

from dataclasses import dataclass
from enum import Enum

import grpc

dartminator_pb2, dartminator_pb2_grpc = grpc.protos_and_services("core/dartminator.proto")


class HeartbeatKind(Enum):
    """Семантический вариант heartbeat сообщения."""
    BUSY = "busy"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass(frozen=True)
class Heartbeat:
    """
    Heartbeat сообщение.

    Используйте фабрики busy(), in_progress() и done(value)
    вместо прямого конструктора.
    """

    kind: HeartbeatKind
    value: str = ""

    @classmethod
    def busy(cls) -> "Heartbeat":
        return cls(HeartbeatKind.BUSY)

    @classmethod
    def in_progress(cls) -> "Heartbeat":
        return cls(HeartbeatKind.IN_PROGRESS)

    @classmethod
    def done(cls, value: str) -> "Heartbeat":
        return cls(HeartbeatKind.DONE, value)

    @property
    def is_terminal(self) -> bool:
        """BUSY и DONE завершают поток."""
        return self.kind is not HeartbeatKind.IN_PROGRESS

    def to_pb(self):
        if self.kind is HeartbeatKind.BUSY:
            return dartminator_pb2.ComputationHeartbeat(empty=True)
        return dartminator_pb2.ComputationHeartbeat(
            result=dartminator_pb2.ComputationResult(
                done=self.kind is HeartbeatKind.DONE,
                result=self.value,
            ),
        )

    @classmethod
    def from_pb(cls, message) -> "Heartbeat":
        # empty важнее result
        if message.empty:
            return cls.busy()
        if message.result.done:
            return cls.done(message.result.result)
        return cls.in_progress()


def make_argument(argument: str):
    """Запрос Initiate для аргумента."""
    return dartminator_pb2.ComputationArgument(argument=argument)
