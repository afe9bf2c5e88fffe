"""Interactive tuning session."""

from .tuning_session import Listener, SessionEvent, SessionEventKind, TuningSession

__all__ = ['Listener', 'SessionEvent', 'SessionEventKind', 'TuningSession']
