"""
Dartminator Configuration
=========================
Централизованная конфигурация для всех модулей узла.

Все таймауты и порты можно переопределить через переменные окружения
(или .env файл, который загружает main.py).
"""

from dataclasses import dataclass, field
from typing import Optional

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


# ============================================================================
# Environment overrides
# ============================================================================

DISCOVERY_PORT: int = _env_int("DARTMINATOR_DISCOVERY_PORT", 4040)
RPC_PORT: int = _env_int("DARTMINATOR_RPC_PORT", 50051)
BROADCAST_ADDRESS: str = os.getenv("DARTMINATOR_BROADCAST", "255.255.255.255").strip()
MAX_PEERS: int = _env_int("DARTMINATOR_MAX_PEERS", 4)
WORKER_MODE: str = os.getenv("DARTMINATOR_WORKER_MODE", "process").lower()
if WORKER_MODE not in ("process", "thread"):
    WORKER_MODE = "process"

# Магическая строка протокола обнаружения
DISCOVERY_MAGIC = "Dartminator"


@dataclass
class NetworkConfig:
    """Настройки сетевого слоя."""

    # UDP порт обнаружения (общий для Responder и Prober)
    discovery_port: int = DISCOVERY_PORT

    # TCP порт gRPC сервиса (одинаковый для всех узлов сети)
    rpc_port: int = RPC_PORT

    # Адрес, на котором слушают сокеты узла
    bind_host: str = "0.0.0.0"

    # Адрес для рассылки приглашений
    broadcast_address: str = BROADCAST_ADDRESS

    # Максимальное количество дочерних узлов за цикл
    max_peers: int = MAX_PEERS

    # Таймаут поиска дочерних узлов (секунды)
    discovery_timeout: float = _env_float("DARTMINATOR_DISCOVERY_TIMEOUT", 3.0)

    # Таймаут установки gRPC соединения (секунды)
    rpc_connect_timeout: float = _env_float("DARTMINATOR_RPC_CONNECT_TIMEOUT", 5.0)

    # Дедлайн всего gRPC вызова (секунды)
    rpc_call_timeout: float = _env_float("DARTMINATOR_RPC_CALL_TIMEOUT", 600.0)

    # Интервал между heartbeat сообщениями (секунды)
    heartbeat_interval: float = _env_float("DARTMINATOR_HEARTBEAT_INTERVAL", 1.0)

    # Пауза без heartbeat, после которой пир считается потерянным (секунды)
    heartbeat_stale_after: float = _env_float("DARTMINATOR_HEARTBEAT_STALE_AFTER", 30.0)


@dataclass
class ComputeConfig:
    """Настройки исполнения вычислений."""

    # process: каждый аргумент в отдельном процессе; thread: в пуле потоков
    worker_mode: str = WORKER_MODE

    # Пауза после цикла, который не заполнил ни одного слота (секунды)
    retry_backoff: float = 0.5

    # Предел числа циклов (None = повторять бесконечно)
    max_cycles: Optional[int] = None


@dataclass
class Config:
    """Главный конфигурационный класс."""

    network: NetworkConfig = field(default_factory=NetworkConfig)
    compute: ComputeConfig = field(default_factory=ComputeConfig)


# Глобальный экземпляр конфигурации
config = Config()
