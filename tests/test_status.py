"""Tests for status labels and the thread state machine."""

import pytest
from schemas.context import Capability
from schemas.status import ConversationThread, StatusPhase, ThreadState, status_label


class TestStatusLabels:
    """Test status vocabulary."""

    def test_generic_labels(self):
        """Test phases without a capability use generic labels."""
        assert status_label(StatusPhase.THINKING) == "Thinking..."
        assert status_label(StatusPhase.RESEARCHING) == "Deep researching..."

    def test_capability_labels(self):
        """Test capability-specific labels override generic ones."""
        assert status_label(StatusPhase.GENERATING, Capability.IMAGE) == "Creating your image..."
        assert status_label(StatusPhase.GENERATING, Capability.TTS) == "Converting to speech..."

    def test_falls_back_to_generic(self):
        """Test phases without a specific label use the generic one."""
        assert status_label(StatusPhase.THINKING, Capability.VIDEO) == "Thinking..."


class TestConversationThread:
    """Test per-thread send state."""

    def test_full_cycle(self):
        """Test idle -> sending -> receiving -> idle."""
        thread = ConversationThread("t1")

        thread.begin_send()
        assert thread.state == ThreadState.SENDING
        thread.begin_receive()
        assert thread.state == ThreadState.RECEIVING
        thread.finish()
        assert thread.state == ThreadState.IDLE

    def test_send_aborted_before_receive(self):
        """Test a send can return to idle directly."""
        thread = ConversationThread("t1")
        thread.begin_send()
        thread.finish()
        assert thread.state == ThreadState.IDLE

    def test_double_send_rejected(self):
        """Test a second send while busy is rejected."""
        thread = ConversationThread("t1")
        thread.begin_send()

        with pytest.raises(ValueError):
            thread.begin_send()

    def test_receive_requires_send(self):
        """Test receiving without sending is rejected."""
        with pytest.raises(ValueError):
            ConversationThread("t1").begin_receive()
