"""
Discovery - Обнаружение дочерних узлов в локальной сети
=======================================================

[DISCOVERY] Два участника протокола (формат датаграмм см. core/wire.py):

1. DiscoveryResponder - постоянно слушает порт обнаружения и отвечает
   каждому приглашающему с другим именем и тем же вычислением.
   Флаг занятости НЕ проверяется: занятость выясняется позже через
   heartbeat (BUSY).

2. DiscoveryProber - один раз за цикл рассылает приглашение и собирает
   ответы в набор пиров:
   - сокет начинает слушать ДО отправки (быстрый ответ не теряется)
   - пир принимается, если имя не своё, адрес ещё не известен
     и набор не достиг max_peers
   - при достижении limit сокет закрывается
   - по таймауту возвращается то, что успели собрать (это не ошибка)

[LAN] Протокол работает только в пределах одного broadcast домена.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from .wire import Invitation, Reply, WireError

logger = logging.getLogger(__name__)


class UDPDiscoveryProtocol(asyncio.DatagramProtocol):
    """Протокол для UDP discovery: передаёт датаграммы владельцу."""

    def __init__(self, owner):
        self.owner = owner

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.owner.connection_made(transport)

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.owner.datagram_received(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"[DISCOVERY] Socket error: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.owner.connection_lost(exc)


class DiscoveryResponder:
    """
    Отвечает на приглашения к вычислению.

    [USAGE]
    ```python
    responder = DiscoveryResponder("Bob", "Sum", port=4040)
    await responder.start()
    ...
    await responder.stop()
    ```
    """

    def __init__(
        self,
        name: str,
        computation_name: str,
        port: int,
        host: str = "0.0.0.0",
    ):
        self.name = name
        self.computation_name = computation_name
        self.port = port
        self.host = host
        self._transport: Optional[asyncio.DatagramTransport] = None

    @property
    def is_running(self) -> bool:
        return self._transport is not None

    async def start(self) -> None:
        """Начать слушать порт обнаружения."""
        if self._transport is not None:
            return

        loop = asyncio.get_running_loop()
        await loop.create_datagram_endpoint(
            lambda: UDPDiscoveryProtocol(self),
            local_addr=(self.host, self.port),
            allow_broadcast=True,
        )
        logger.info(f"[DISCOVERY] Listening for potential computation on port {self.port}")

    async def stop(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._transport = None

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        reply = self.handle_invitation(data)
        if reply is not None and self._transport is not None:
            self._transport.sendto(reply, addr)

    def handle_invitation(self, data: bytes) -> Optional[bytes]:
        """
        Разобрать приглашение и решить, отвечать ли на него.

        Returns:
            Ответная датаграмма или None
        """
        try:
            invitation = Invitation.decode(data)
        except WireError as e:
            logger.warning(f"[DISCOVERY] Could not parse invitation: {e}")
            return None

        if invitation.sender_name == self.name:
            return None
        if invitation.computation != self.computation_name:
            logger.debug(
                f"[DISCOVERY] Ignoring {invitation.computation} invitation "
                f"from {invitation.sender_name}"
            )
            return None

        logger.debug(f"[DISCOVERY] Found a new potential computation from {invitation.sender_name}")
        return Reply(self.name).encode()


class _ProbeSession:
    """Состояние одной рассылки приглашения."""

    def __init__(self, name: str, known: Sequence[str], max_peers: int, limit: int):
        self.name = name
        self.known = list(known)
        self.max_peers = max_peers
        self.limit = limit
        self.accepted: List[str] = []
        self.finished = asyncio.Event()
        self._transport: Optional[asyncio.DatagramTransport] = None

    @property
    def size(self) -> int:
        return len(self.known) + len(self.accepted)

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.finished.set()

    def send(self, data: bytes, addr: Tuple[str, int]) -> None:
        if self._transport is not None:
            self._transport.sendto(data, addr)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self.finished.set()

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        if self.finished.is_set():
            return
        try:
            reply = Reply.decode(data)
        except WireError as e:
            logger.warning(f"[DISCOVERY] Could not parse incoming reply: {e}")
            return

        host = addr[0]
        logger.debug(f"[DISCOVERY] Got response from {reply.responder_name} at {host}")

        if reply.responder_name == self.name:
            return
        if host in self.known or host in self.accepted:
            return
        if self.size >= self.max_peers:
            return

        logger.debug(f"[DISCOVERY] Adding {reply.responder_name} at {host} to children")
        self.accepted.append(host)

        if self.size >= self.limit:
            self.close()


class DiscoveryProber:
    """
    Ищет дочерние узлы для текущего цикла вычисления.

    probe() не изменяет переданный набор пиров: новые адреса
    возвращаются, а добавляет их цикл вычисления.
    """

    def __init__(
        self,
        name: str,
        computation_name: str,
        port: int,
        max_peers: int,
        timeout: float,
        broadcast_address: str = "255.255.255.255",
        host: str = "0.0.0.0",
    ):
        self.name = name
        self.computation_name = computation_name
        self.port = port
        self.max_peers = max_peers
        self.timeout = timeout
        self.broadcast_address = broadcast_address
        self.host = host

    async def probe(self, known: Sequence[str], limit: int) -> List[str]:
        """
        Разослать одно приглашение и собрать ответы.

        Args:
            known: Уже известные пиры
            limit: Желаемый размер набора пиров (вместе с known)

        Returns:
            Новые адреса пиров в порядке получения ответов
        """
        limit = min(limit, self.max_peers)
        if len(known) >= limit:
            return []

        logger.debug("[DISCOVERY] Starting the search for children")
        session = _ProbeSession(self.name, known, self.max_peers, limit)
        loop = asyncio.get_running_loop()

        try:
            # Port 0: эфемерный порт, не конфликтует с Responder
            await loop.create_datagram_endpoint(
                lambda: UDPDiscoveryProtocol(session),
                local_addr=(self.host, 0),
                allow_broadcast=True,
            )
        except OSError as e:
            logger.error(f"[DISCOVERY] Could not open probing socket: {e}")
            return []

        try:
            session.send(
                Invitation(self.name, self.computation_name).encode(),
                (self.broadcast_address, self.port),
            )
            await asyncio.wait_for(session.finished.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(
                f"[DISCOVERY] The child search has finished with "
                f"{session.size} child nodes"
            )
        finally:
            session.close()

        return list(session.accepted)
