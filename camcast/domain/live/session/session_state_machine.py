"""Session state machine for managing local phase transitions."""

from .session_models import SessionPhase


class SessionStateMachine:
    """State machine for local broadcast session phases.

    Phase flow with triggers:
    - IDLE -> ACQUIRING_DEVICE (entering the broadcast page)
    - ACQUIRING_DEVICE -> DEVICE_READY (a constraint profile succeeded) | FAILED (all failed)
      | PUBLISHING (resuming an owned active record)
    - DEVICE_READY -> PUBLISHING (record created by start_broadcast)
    - PUBLISHING -> STOPPING (stop_broadcast, sign-out, reconciliation)
    - STOPPING -> IDLE (device released, bound record ended)
    - FAILED -> ACQUIRING_DEVICE (retry)

    STOPPING is reachable from every other phase and always leads back to IDLE.
    """

    TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
        SessionPhase.IDLE: {
            SessionPhase.ACQUIRING_DEVICE,
            SessionPhase.STOPPING,
        },
        SessionPhase.ACQUIRING_DEVICE: {
            SessionPhase.DEVICE_READY,
            SessionPhase.PUBLISHING,
            SessionPhase.FAILED,
            SessionPhase.STOPPING,
        },
        SessionPhase.DEVICE_READY: {
            SessionPhase.PUBLISHING,
            SessionPhase.STOPPING,
        },
        SessionPhase.PUBLISHING: {SessionPhase.STOPPING},
        SessionPhase.STOPPING: {SessionPhase.IDLE},
        SessionPhase.FAILED: {
            SessionPhase.ACQUIRING_DEVICE,
            SessionPhase.STOPPING,
        },
    }

    @classmethod
    def can_transition(cls, current: SessionPhase, new: SessionPhase) -> bool:
        """Check if a phase transition is valid.

        Args:
            current: Current session phase
            new: Target phase

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def get_valid_transitions(cls, phase: SessionPhase) -> set[SessionPhase]:
        return cls.TRANSITIONS.get(phase, set())

    @classmethod
    def get_valid_sources(cls, target: SessionPhase) -> set[SessionPhase]:
        """Get all phases that can transition to the target phase."""
        return {phase for phase, targets in cls.TRANSITIONS.items() if target in targets}
