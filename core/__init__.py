"""
Core Dartminator Module
=======================
Содержит основные компоненты узла дерева вычислений:
- Node: цикл распределения аргументов и heartbeat ответчик
- Discovery: UDP приглашения и ответы (Responder / Prober)
- RPC: gRPC сервис Initiate и клиент дочерних узлов
- Executor: изолированное вычисление одного аргумента
- Protocol / Wire: форматы сообщений (pb модули из dartminator.proto)
"""

from .node import Node, NodeBusyError, DispatchExhaustedError
from .discovery import DiscoveryProber, DiscoveryResponder
from .rpc import HeartbeatServer, PeerInvoker, InvokerState
from .executor import LocalExecutor
from .protocol import Heartbeat, HeartbeatKind, dartminator_pb2, dartminator_pb2_grpc
from .wire import Invitation, Reply, WireError, InvalidMagicError, MalformedDatagramError
from .events import EventBus, event_bus

__all__ = [
    "Node",
    "NodeBusyError",
    "DispatchExhaustedError",
    "DiscoveryProber",
    "DiscoveryResponder",
    "HeartbeatServer",
    "PeerInvoker",
    "InvokerState",
    "LocalExecutor",
    "dartminator_pb2",
    "dartminator_pb2_grpc",
    "Heartbeat",
    "HeartbeatKind",
    "Invitation",
    "Reply",
    "WireError",
    "InvalidMagicError",
    "MalformedDatagramError",
    "EventBus",
    "event_bus",
]
