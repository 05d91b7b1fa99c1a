"""Status vocabulary and per-thread send state."""

from enum import Enum
from typing import Optional

from .context import Capability


class StatusPhase(str, Enum):
    """Progress phase of an in-flight turn."""
    IDLE = "idle"
    THINKING = "thinking"
    RESEARCHING = "researching"
    PLANNING = "planning"
    GENERATING = "generating"
    REFINING = "refining"
    COMPLETE = "complete"
    ENHANCING = "enhancing"


STATUS_MESSAGES = {
    StatusPhase.IDLE: "",
    StatusPhase.THINKING: "Thinking...",
    StatusPhase.RESEARCHING: "Deep researching...",
    StatusPhase.PLANNING: "Finding the best model to answer...",
    StatusPhase.GENERATING: "Generating response...",
    StatusPhase.REFINING: "Refining response...",
    StatusPhase.COMPLETE: "Complete",
    StatusPhase.ENHANCING: "Enhancing prompt...",
}

TASK_STATUS_MESSAGES = {
    Capability.CHAT: {
        StatusPhase.GENERATING: "Crafting response...",
        StatusPhase.REFINING: "Refining response...",
    },
    Capability.IMAGE: {
        StatusPhase.GENERATING: "Creating your image...",
        StatusPhase.REFINING: "Refining image...",
    },
    Capability.IMAGE_EDIT: {
        StatusPhase.GENERATING: "Editing your image...",
        StatusPhase.REFINING: "Perfecting edits...",
    },
    Capability.VIDEO: {
        StatusPhase.GENERATING: "Generating video...",
        StatusPhase.REFINING: "Refining video...",
    },
    Capability.PPT: {
        StatusPhase.GENERATING: "Building presentation...",
        StatusPhase.REFINING: "Polishing slides...",
    },
    Capability.TTS: {
        StatusPhase.GENERATING: "Converting to speech...",
        StatusPhase.REFINING: "Perfecting audio...",
    },
    Capability.MUSIC: {
        StatusPhase.GENERATING: "Composing music...",
        StatusPhase.REFINING: "Mixing tracks...",
    },
}


def status_label(phase: StatusPhase, capability: Optional[Capability] = None) -> str:
    """
    Human-readable label for a phase, capability-specific when one exists.

    Args:
        phase: Current status phase
        capability: Capability being processed, if known

    Returns:
        Label to display
    """
    if capability is not None:
        label = TASK_STATUS_MESSAGES.get(capability, {}).get(phase)
        if label:
            return label
    return STATUS_MESSAGES[phase]


class ThreadState(str, Enum):
    """Send state of one conversation thread, owned by the caller."""
    IDLE = "idle"
    SENDING = "sending"
    RECEIVING = "receiving"


class ConversationThread:
    """
    Caller-side state machine for a single conversation thread.

    Allows at most one in-flight turn: idle -> sending -> receiving -> idle.
    The orchestrator only reads ``state``; it never mutates it.
    """

    _TRANSITIONS = {
        ThreadState.IDLE: {ThreadState.SENDING},
        ThreadState.SENDING: {ThreadState.RECEIVING, ThreadState.IDLE},
        ThreadState.RECEIVING: {ThreadState.IDLE},
    }

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        self.state = ThreadState.IDLE

    def transition(self, new_state: ThreadState):
        """Move to ``new_state``, rejecting transitions the machine does not allow."""
        if new_state not in self._TRANSITIONS[self.state]:
            raise ValueError(
                f"Invalid thread transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def begin_send(self):
        self.transition(ThreadState.SENDING)

    def begin_receive(self):
        self.transition(ThreadState.RECEIVING)

    def finish(self):
        self.transition(ThreadState.IDLE)
