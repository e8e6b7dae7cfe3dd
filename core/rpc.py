"""
RPC Layer - gRPC сервис heartbeat и клиент дочерних узлов
=========================================================

[SERVER] HeartbeatServer - реализация NodeServicer (dartminator.proto)
на grpc.aio. Поток heartbeat сообщений формирует обработчик узла
(Node.initiate), сервер только переводит его в pb сообщения.

[CLIENT] PeerInvoker открывает канал к дочернему узлу, вызывает
NodeStub.Initiate(argument) и читает поток как явный автомат состояний:

    WAIT_BUSY_CHECK --IN_PROGRESS--> STREAMING --DONE/BUSY--> DONE
           |                                                  ^
           +-------------------DONE/BUSY----------------------+

- BUSY        -> результата нет, чтение прекращается
- DONE        -> результат захвачен, чтение прекращается
- IN_PROGRESS -> ждём дальше (ограничено дедлайном вызова и
                 heartbeat_stale_after между сообщениями)

[ERRORS] Любая ошибка соединения (dial, дедлайн, обрыв потока)
превращается в None и не доходит до цикла вычисления. Канал
закрывается на любом пути выхода.
"""

import asyncio
import logging
from enum import Enum, auto
from typing import Any, AsyncIterator, Callable, List, Optional, Tuple

import grpc
from grpc import aio as grpc_aio

from .protocol import (
    dartminator_pb2_grpc,
    Heartbeat,
    HeartbeatKind,
    make_argument,
)

logger = logging.getLogger(__name__)


GRPC_OPTIONS: List[Tuple[str, Any]] = [
    ("grpc.keepalive_time_ms", 30000),
    ("grpc.keepalive_timeout_ms", 5000),
    ("grpc.keepalive_permit_without_calls", True),
    ("grpc.http2.max_pings_without_data", 0),
    ("grpc.so_reuseport", 0),
]

HeartbeatHandler = Callable[[str], AsyncIterator[Heartbeat]]


class HeartbeatServer(dartminator_pb2_grpc.NodeServicer):
    """
    gRPC сервер операции Initiate.

    [USAGE]
    ```python
    server = HeartbeatServer(node.initiate, host="0.0.0.0", port=50051)
    await server.start()
    ...
    await server.stop()
    ```
    """

    def __init__(self, handler: HeartbeatHandler, host: str = "0.0.0.0", port: int = 50051):
        self.handler = handler
        self.host = host
        self.port = port
        self._server: Optional[grpc_aio.Server] = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        if self._server is not None:
            return

        server = grpc_aio.server(options=GRPC_OPTIONS)
        dartminator_pb2_grpc.add_NodeServicer_to_server(self, server)

        # Порт 0 выбирает свободный порт; узнаём реальный
        self.port = server.add_insecure_port(f"{self.host}:{self.port}")
        await server.start()
        self._server = server

        logger.info(f"[RPC] Heartbeat service listening on {self.host}:{self.port}")

    async def stop(self, grace: Optional[float] = None) -> None:
        if self._server is not None:
            await self._server.stop(grace)
            self._server = None
            logger.info("[RPC] Heartbeat service stopped")

    async def Initiate(self, request, context):
        logger.debug(f"[RPC] Heartbeat request: {request.argument!r} from {context.peer()}")
        async for heartbeat in self.handler(request.argument):
            yield heartbeat.to_pb()


class InvokerState(Enum):
    """Состояние чтения потока heartbeat."""
    WAIT_BUSY_CHECK = auto()
    STREAMING = auto()
    DONE = auto()


class PeerInvoker:
    """
    Клиент Initiate для одного аргумента на одном дочернем узле.

    invoke() никогда не выбрасывает исключения соединения.
    """

    def __init__(
        self,
        port: int,
        connect_timeout: float = 5.0,
        call_timeout: Optional[float] = 600.0,
        stale_after: Optional[float] = 30.0,
    ):
        self.port = port
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self.stale_after = stale_after

    async def invoke(self, host: str, item: str) -> Optional[str]:
        """
        Передать аргумент дочернему узлу и дождаться результата.

        Returns:
            Результат или None (занят, недоступен, оборвал поток)
        """
        target = f"{host}:{self.port}"
        logger.debug(f"[RPC] Started child handler for {target}")

        channel = grpc_aio.insecure_channel(target, options=GRPC_OPTIONS)
        try:
            await asyncio.wait_for(channel.channel_ready(), timeout=self.connect_timeout)

            stub = dartminator_pb2_grpc.NodeStub(channel)
            call = stub.Initiate(make_argument(item), timeout=self.call_timeout)
            try:
                return await self._consume(host, call)
            finally:
                if not call.done():
                    call.cancel()
        except asyncio.TimeoutError:
            logger.error(f"[RPC] The connection with child {host} has timed out")
            return None
        except grpc.RpcError as e:
            logger.error(f"[RPC] The connection with child {host} has failed: {e}")
            return None
        except OSError as e:
            logger.error(f"[RPC] The connection with child {host} has failed: {e}")
            return None
        finally:
            await channel.close()

    async def _consume(self, host: str, call: Any) -> Optional[str]:
        state = InvokerState.WAIT_BUSY_CHECK
        result: Optional[str] = None

        while state is not InvokerState.DONE:
            message = await asyncio.wait_for(call.read(), timeout=self.stale_after)

            if message is grpc_aio.EOF:
                logger.warning(f"[RPC] The child {host} closed the stream without a result")
                break

            heartbeat = Heartbeat.from_pb(message)
            logger.debug(f"[RPC] Response from child {host}: {heartbeat.kind.value}")

            if heartbeat.kind is HeartbeatKind.BUSY:
                logger.warning(f"[RPC] The child {host} is already in a computation")
            elif heartbeat.kind is HeartbeatKind.DONE:
                logger.debug(f"[RPC] The child {host} has finished with {heartbeat.value!r}")
                result = heartbeat.value

            state = InvokerState.DONE if heartbeat.is_terminal else InvokerState.STREAMING

        return result
