#!/usr/bin/env python3
"""
Dartminator Node
================

[TREE] Этот скрипт запускает узел дерева вычислений:
- Слушает приглашения к вычислению на UDP порту обнаружения
- Публикует gRPC сервис heartbeat для родительских узлов
- С --start запускает вычисление как корень и печатает результат

Использование:
    python main.py [--name NAME] [--computation Sum] [--start SEED]

Примеры:
    # Узел-работник (ждёт приглашений)
    python main.py --computation Sum

    # Корень: сумма 1..10^7 по всем найденным узлам
    python main.py --computation Sum --start 1-10000000

    # Оценка Пи по 10^8 точкам
    python main.py --computation Pi --start 100000000:42
"""

import argparse
import asyncio
import logging
import signal
import sys
import uuid
from contextlib import suppress
from typing import Any, Dict

# Загрузка переменных окружения из .env файла
from dotenv import load_dotenv

load_dotenv()

from config import config
from computations import COMPUTATIONS, PiComputation, get_computation
from core.events import event_bus, PROGRESS
from core.logger import setup_logging
from core.node import Node

logger = logging.getLogger("dartminator")


def generate_name() -> str:
    """Сгенерировать имя узла."""
    return f"node-{uuid.uuid4().hex[:8]}"


def format_result(computation_name: str, result: str) -> str:
    if computation_name == "Pi":
        return f"{result} (pi ~ {PiComputation.estimate(result):.6f})"
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Dartminator node (self-organizing computation tree)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Terminal 1..N: workers
  python main.py --computation Sum

  # Terminal 0: root
  python main.py --computation Sum --start 1-10000000
""",
    )
    parser.add_argument(
        "--name", "-n",
        type=str,
        default="",
        help="Node name (default: generated)",
    )
    parser.add_argument(
        "--computation", "-c",
        type=str,
        default="Sum",
        choices=sorted(COMPUTATIONS),
        help="Computation to take part in (default: Sum)",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=0,
        help="Chunk size of the computation (default: computation's own)",
    )
    parser.add_argument(
        "--discovery-port", "-d",
        type=int,
        default=config.network.discovery_port,
        help=f"UDP discovery port (default: {config.network.discovery_port})",
    )
    parser.add_argument(
        "--rpc-port", "-r",
        type=int,
        default=config.network.rpc_port,
        help=f"gRPC heartbeat port (default: {config.network.rpc_port})",
    )
    parser.add_argument(
        "--max-peers", "-m",
        type=int,
        default=config.network.max_peers,
        help=f"Maximum child nodes per cycle (default: {config.network.max_peers})",
    )
    parser.add_argument(
        "--worker-mode",
        type=str,
        default=config.compute.worker_mode,
        choices=["process", "thread"],
        help=f"Local worker isolation (default: {config.compute.worker_mode})",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=0,
        help="Give up after this many dispatch cycles (0 = retry forever)",
    )
    parser.add_argument(
        "--start", "-s",
        type=str,
        default="",
        help="Run the computation from this seed as the root node and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


async def main() -> int:
    """
    Главная функция - точка входа.
    """
    args = build_parser().parse_args()

    setup_logging(args.verbose)

    config.network.rpc_port = args.rpc_port
    config.network.discovery_port = args.discovery_port
    config.network.max_peers = args.max_peers
    config.compute.worker_mode = args.worker_mode
    config.compute.max_cycles = args.max_cycles or None

    params = {"chunk_size": args.chunk_size} if args.chunk_size > 0 else {}
    computation = get_computation(args.computation, **params)

    node = Node(
        args.name or generate_name(),
        args.discovery_port,
        args.max_peers,
        computation,
        settings=config,
    )

    async def on_progress(payload: Dict[str, Any]) -> None:
        logger.info(
            f"[MAIN] {payload['node']}: {payload['remaining']}/{payload['total']} "
            f"chunk(s) remaining after cycle {payload['cycle']}"
        )

    await event_bus.subscribe(PROGRESS, on_progress)

    try:
        await node.init()
    except (OSError, RuntimeError) as e:
        logger.error(f"[MAIN] Could not start listening: {e}")
        return 1

    # Graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("[MAIN] Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            pass

    exit_code = 0
    try:
        if args.start:
            root = asyncio.create_task(node.start(args.start))
            stop = asyncio.create_task(shutdown_event.wait())
            done, _ = await asyncio.wait({root, stop}, return_when=asyncio.FIRST_COMPLETED)
            if root in done:
                result = root.result()
                print(format_result(computation.name, result))
            else:
                root.cancel()
                with suppress(asyncio.CancelledError):
                    await root
                exit_code = 130
            stop.cancel()
            with suppress(asyncio.CancelledError):
                await stop
        else:
            logger.info(f"[MAIN] Node {node.name} is waiting for computations. Press Ctrl+C to stop")
            await shutdown_event.wait()
    except Exception as e:
        logger.error(f"[MAIN] Computation failed: {e}")
        exit_code = 1
    finally:
        await node.stop()
        logger.info("[MAIN] Shutdown complete")

    return exit_code


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
