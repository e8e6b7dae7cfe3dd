"""
Node - Главный класс узла дерева вычислений
===========================================

[TREE] Каждый узел одновременно:
- корень для вычисления, которое он запустил сам (start)
- дочерний узел для аргумента, полученного через Initiate
  (и корень поддерева для собственных "внуков")

[DISPATCH] Цикл вычисления (compute) повторяется, пока все слоты
результатов не заполнены:

1. Себе - последний пустой слот (аргументы берутся с конца)
2. Ёмкость - child_limit = min(пустые - 1, max_peers);
   если известных пиров меньше, запускается поиск
3. Детям - каждому пиру последний свободный слот; пир сразу
   удаляется из набора независимо от исхода (detach-on-use)
4. Ожидание - все единицы работы этого цикла
5. Учёт - remaining = всего - заполнено

[SINGLE WRITER] Слоты и набор пиров меняет только цикл вычисления.
Единицы работы сообщают (index, result) через asyncio.Queue,
которую цикл вычитывает между точками ожидания.

[RETRY] Неудача (пир занят/недоступен, ошибка вычисления) оставляет
слот пустым, и он переназначается в следующем цикле.
"""

import asyncio
import logging
from contextlib import suppress
from typing import AsyncIterator, List, Optional, Sequence, Set, Tuple

from config import config as default_config, Config
from computations.base import Computation

from .discovery import DiscoveryProber, DiscoveryResponder
from .events import event_bus, COMPUTATION_FINISHED, PROGRESS
from .executor import LocalExecutor
from .protocol import Heartbeat
from .rpc import HeartbeatServer, PeerInvoker

logger = logging.getLogger(__name__)

SELF_UNIT = "self"

Report = Tuple[int, Optional[str]]


class NodeBusyError(RuntimeError):
    """Узел уже участвует в вычислении."""
    pass


class DispatchExhaustedError(RuntimeError):
    """Исчерпан лимит циклов (compute.max_cycles)."""
    pass


class Node:
    """
    Узел дерева вычислений.

    [USAGE]
    ```python
    node = Node("Alice", 4040, 4, SumComputation())
    await node.init()                    # слушать приглашения
    result = await node.start("1-1000")  # запустить как корень
    await node.stop()
    ```
    """

    def __init__(
        self,
        name: str,
        discovery_port: int,
        max_peers: int,
        computation: Computation,
        settings: Optional[Config] = None,
        executor: Optional[LocalExecutor] = None,
        prober: Optional[DiscoveryProber] = None,
        invoker: Optional[PeerInvoker] = None,
    ):
        """
        Args:
            name: Имя узла (уникальное в сети)
            discovery_port: UDP порт обнаружения
            max_peers: Верхняя граница числа дочерних узлов
            computation: Вычисление, в котором участвует узел
            settings: Конфигурация (по умолчанию глобальная)
        """
        self.name = name
        self.discovery_port = discovery_port
        self.max_peers = max(0, max_peers)
        self.settings = settings or default_config

        network = self.settings.network

        # Количество оставшихся аргументов текущего вычисления
        self._remaining = 0

        # Дочерние узлы текущего цикла (адреса)
        self._children: List[str] = []

        self._computation = computation

        # Участвует ли узел в вычислении
        self._is_computing = False

        # Вычисления, запущенные через Initiate
        self._tasks: Set[asyncio.Task] = set()

        self.executor = executor or LocalExecutor(
            computation, mode=self.settings.compute.worker_mode
        )
        self.prober = prober or DiscoveryProber(
            name,
            computation.name,
            port=discovery_port,
            max_peers=self.max_peers,
            timeout=network.discovery_timeout,
            broadcast_address=network.broadcast_address,
            host=network.bind_host,
        )
        self.invoker = invoker or PeerInvoker(
            port=network.rpc_port,
            connect_timeout=network.rpc_connect_timeout,
            call_timeout=network.rpc_call_timeout,
            stale_after=network.heartbeat_stale_after,
        )
        self.responder = DiscoveryResponder(
            name, computation.name, port=discovery_port, host=network.bind_host
        )
        self.rpc_server = HeartbeatServer(
            self.initiate, host=network.bind_host, port=network.rpc_port
        )

        logger.info(f"[NODE] Created node {name} for the {computation.name} computation")

    @property
    def computation(self) -> Computation:
        return self._computation

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> None:
        """
        Подготовить узел к работе в сети.

        Запускает ответчик обнаружения и gRPC сервис heartbeat,
        после чего узел может получать приглашения.
        """
        await self.responder.start()
        try:
            await self.rpc_server.start()
        except Exception:
            await self.responder.stop()
            raise

    async def stop(self) -> None:
        logger.info(f"[NODE] Stopping {self.name}...")

        for task in list(self._tasks):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

        await self.rpc_server.stop(grace=1.0)
        await self.responder.stop()

        logger.info(f"[NODE] Stopped {self.name}")

    # =========================================================================
    # Root computation
    # =========================================================================

    async def start(self, seed: str) -> str:
        """
        Запустить вычисление на этом узле как корень.

        Args:
            seed: Исходный аргумент вычисления

        Returns:
            Итоговый результат (compose_results в исходном порядке)

        Raises:
            NodeBusyError: узел уже вычисляет
        """
        if self._is_computing:
            raise NodeBusyError(f"Node {self.name} is already in a computation")

        logger.info(f"[DISPATCH] Starting the computation with seed {seed!r}")

        items = self._computation.derive_items(seed)
        results = await self.compute(items)
        composed = self._computation.compose_results(results)

        logger.info(f"[DISPATCH] All of the computations are completed. The result is: {composed}")
        await event_bus.broadcast(
            COMPUTATION_FINISHED,
            {"node": self.name, "seed": seed, "result": composed},
        )
        return composed

    async def compute(self, items: Sequence[str]) -> List[str]:
        """
        Вычислить все аргументы на этом узле и дочерних узлах.

        Returns:
            Результаты в порядке аргументов
        """
        owner = not self._is_computing
        self._is_computing = True
        try:
            return await self._dispatch(list(items))
        finally:
            if owner:
                self._is_computing = False

    async def _dispatch(self, items: List[str]) -> List[str]:
        total = len(items)
        results = [""] * total
        completed = 0
        cycle = 0
        max_cycles = self.settings.compute.max_cycles
        retry_backoff = self.settings.compute.retry_backoff

        self._remaining = total
        logger.info(f"[DISPATCH] Starting the computation of {total} chunks")

        while completed < total:
            cycle += 1
            if max_cycles is not None and cycle > max_cycles:
                raise DispatchExhaustedError(
                    f"{total - completed} chunk(s) unresolved after {max_cycles} cycles"
                )

            reports: "asyncio.Queue[Report]" = asyncio.Queue()
            in_flight: Set[int] = set()
            units: List[asyncio.Task] = []

            def drain() -> None:
                while True:
                    try:
                        index, value = reports.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    # Заполненный слот не перезаписывается
                    if value and not results[index]:
                        results[index] = value

            def next_index() -> int:
                drain()
                for index in range(total - 1, -1, -1):
                    if not results[index] and index not in in_flight:
                        return index
                return -1

            # 1. Аргумент для этого узла
            index = next_index()
            if index > -1:
                in_flight.add(index)
                units.append(asyncio.create_task(
                    self._run_unit(SELF_UNIT, index, items[index], reports)
                ))

            # 2. Поиск дочерних узлов (один аргумент уже занят этим узлом)
            spare = sum(
                1 for i, value in enumerate(results) if not value and i not in in_flight
            )
            child_limit = min(spare, self.max_peers)

            if len(self._children) < child_limit:
                logger.info("[DISPATCH] Redistributing the computation to child nodes")
                found = await self.prober.probe(self._children, child_limit)
                self._children.extend(found)

            # 3. Аргументы для дочерних узлов
            for child in list(self._children):
                index = next_index()
                if index < 0:
                    break
                in_flight.add(index)
                self._children.remove(child)
                units.append(asyncio.create_task(
                    self._run_unit(child, index, items[index], reports)
                ))

            # 4. Ожидание всех единиц работы цикла
            await asyncio.gather(*units)
            drain()

            previous = completed
            completed = sum(1 for value in results if value)
            self._remaining = total - completed

            logger.info(
                f"[DISPATCH] Finished computation cycle {cycle}. "
                f"{self._remaining} chunk(s) remaining"
            )
            await event_bus.broadcast(PROGRESS, {
                "node": self.name,
                "cycle": cycle,
                "total": total,
                "remaining": self._remaining,
                "peers": len(self._children),
            })

            if completed < total and completed == previous and retry_backoff > 0:
                await asyncio.sleep(retry_backoff)

        return results

    async def _run_unit(
        self,
        target: str,
        index: int,
        item: str,
        reports: "asyncio.Queue[Report]",
    ) -> None:
        """Одна единица работы: результат уходит в очередь отчётов."""
        result: Optional[str] = None
        try:
            if target == SELF_UNIT:
                result = await self.executor.run(item)
            else:
                result = await self.invoker.invoke(target, item)
                logger.debug(f"[DISPATCH] The computation of child {target} has finished with {result!r}")
        except Exception as e:
            logger.error(f"[DISPATCH] Unit {target} failed on chunk {index}: {e}", exc_info=True)
            result = None
        reports.put_nowait((index, result))

    # =========================================================================
    # Heartbeat responder
    # =========================================================================

    async def initiate(self, argument: str) -> AsyncIterator[Heartbeat]:
        """
        Обработать приглашение к вычислению от родителя.

        [HEARTBEAT] Idle -> Busy-check -> Computing -> Finished:
        - уже занят: единственный BUSY, вычисление не запускается
        - иначе: IN_PROGRESS каждые heartbeat_interval, затем DONE
        """
        logger.debug(f"[HEARTBEAT] Heartbeat request: {argument!r}")

        if self._is_computing:
            logger.info("[HEARTBEAT] Received a heartbeat request while in a computation. Returning busy response")
            yield Heartbeat.busy()
            return

        self._is_computing = True
        logger.info("[HEARTBEAT] Starting the computation as a child")

        task = asyncio.create_task(self._compute_as_child(argument))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        interval = self.settings.network.heartbeat_interval
        while True:
            done, _ = await asyncio.wait({task}, timeout=interval)
            if done:
                break
            logger.debug(f"[HEARTBEAT] Still computing. Returning a heartbeat and waiting for {interval}s")
            yield Heartbeat.in_progress()

        try:
            result = task.result()
        except Exception as e:
            logger.error(f"[HEARTBEAT] The computation of {argument!r} has failed: {e}")
            return

        logger.info("[HEARTBEAT] Finished computation. Returning heartbeat with the result")
        yield Heartbeat.done(result)

    async def _compute_as_child(self, argument: str) -> str:
        try:
            items = self._computation.derive_items(argument)
            results = await self.compute(items)
            return self._computation.compose_results(results)
        finally:
            self._is_computing = False

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def is_computing(self) -> bool:
        """Участвует ли узел в вычислении."""
        return self._is_computing

    @property
    def connected_children(self) -> int:
        """Количество известных дочерних узлов."""
        return len(self._children)

    @property
    def remaining_chunks(self) -> int:
        """Количество оставшихся аргументов текущего вычисления."""
        return self._remaining
