"""Exception taxonomy for the tutoring engine."""


class TutorEngineError(Exception):
    """Base class for all engine errors."""


class GenerationError(TutorEngineError):
    """The generation gateway failed (network, quota, parse)."""


class PersistenceError(TutorEngineError):
    """The persistence collaborator failed."""


class SessionStateError(TutorEngineError):
    """An operation was requested in a state that does not accept it."""
