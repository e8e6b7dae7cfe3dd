"""
Wire Format Unit Tests
======================

Discovery datagrams: invitation and reply encoding/parsing.
"""

import pytest

from core.wire import (
    Invitation,
    Reply,
    WireError,
    InvalidMagicError,
    MalformedDatagramError,
)


class TestInvitation:
    """Test invitation datagrams."""

    def test_encode_matches_wire_format(self):
        assert Invitation("Alice", "Sum").encode() == b"Dartminator-NameAlice-ComputationSum"

    def test_decode(self):
        invitation = Invitation.decode(b"Dartminator-NameAlice-ComputationSum")

        assert invitation.sender_name == "Alice"
        assert invitation.computation == "Sum"

    def test_name_with_dashes(self):
        """Generated names like node-1a2b must survive the round trip."""
        data = Invitation("node-1a2b-c", "Pi").encode()

        assert Invitation.decode(data) == Invitation("node-1a2b-c", "Pi")

    def test_missing_computation_field(self):
        with pytest.raises(MalformedDatagramError):
            Invitation.decode(b"Dartminator-NameAlice")

    def test_empty_sender(self):
        with pytest.raises(MalformedDatagramError):
            Invitation.decode(b"Dartminator-Name-ComputationSum")

    def test_foreign_magic(self):
        with pytest.raises(InvalidMagicError):
            Invitation.decode(b"Other-NameAlice-ComputationSum")

    def test_invalid_utf8(self):
        with pytest.raises(WireError):
            Invitation.decode(b"\xff\xfe\xfd")


class TestReply:
    """Test reply datagrams."""

    def test_encode_matches_wire_format(self):
        assert Reply("Bob").encode() == b"Dartminator-NameBob"

    def test_decode(self):
        assert Reply.decode(b"Dartminator-NameBob").responder_name == "Bob"

    def test_empty_name(self):
        with pytest.raises(MalformedDatagramError):
            Reply.decode(b"Dartminator-Name")

    def test_garbage(self):
        with pytest.raises(WireError):
            Reply.decode(b"hello")
