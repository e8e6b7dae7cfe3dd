"""
Wire Format - Формат датаграмм обнаружения
==========================================

[DISCOVERY] Текстовый протокол поверх UDP broadcast (ASCII/UTF-8):

    Приглашение:  Dartminator-Name<senderName>-Computation<computationId>
    Ответ:        Dartminator-Name<responderName>

Приглашение рассылается на broadcast адрес и порт обнаружения.
Ответ отправляется напрямую (unicast) на адрес и порт приглашающего.

[PARSING] Имя отправителя может содержать дефисы, поэтому граница
имени и вычисления ищется по последнему вхождению "-Computation".
"""

from dataclasses import dataclass

from config import DISCOVERY_MAGIC

NAME_TAG = "Name"
COMPUTATION_TAG = "Computation"

_NAME_PREFIX = f"{DISCOVERY_MAGIC}-{NAME_TAG}"
_COMPUTATION_SEPARATOR = f"-{COMPUTATION_TAG}"


class WireError(Exception):
    """Ошибки wire протокола."""
    pass


class InvalidMagicError(WireError):
    """Неверный Magic - не наш протокол."""
    pass


class MalformedDatagramError(WireError):
    """Датаграмма не соответствует формату."""
    pass


def _decode_text(data: bytes) -> str:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDatagramError(f"Datagram is not valid UTF-8: {e}") from e

    if not text.startswith(_NAME_PREFIX):
        raise InvalidMagicError(f"Unexpected datagram prefix: {text[:32]!r}")
    return text[len(_NAME_PREFIX):]


@dataclass(frozen=True)
class Invitation:
    """Приглашение к вычислению."""

    sender_name: str
    computation: str

    def encode(self) -> bytes:
        return (
            f"{_NAME_PREFIX}{self.sender_name}"
            f"{_COMPUTATION_SEPARATOR}{self.computation}"
        ).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "Invitation":
        body = _decode_text(data)
        sender, separator, computation = body.rpartition(_COMPUTATION_SEPARATOR)
        if not separator:
            raise MalformedDatagramError("Invitation has no computation field")
        if not sender or not computation:
            raise MalformedDatagramError("Invitation has an empty field")
        return cls(sender_name=sender, computation=computation)


@dataclass(frozen=True)
class Reply:
    """Ответ на приглашение."""

    responder_name: str

    def encode(self) -> bytes:
        return f"{_NAME_PREFIX}{self.responder_name}".encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "Reply":
        name = _decode_text(data)
        if not name:
            raise MalformedDatagramError("Reply has an empty name")
        return cls(responder_name=name)
