class ArenaError(Exception):
    """Base exception for tournament engine errors."""

    pass


class CohortNotFoundError(ArenaError):
    """No cohort with the requested id."""

    pass


class CohortNotActiveError(ArenaError):
    """Operation requires the cohort to be active."""

    pass


class NoAdmissibleMarketsError(ArenaError):
    """No cached market passes the round selection filter."""

    pass


class RoundNotFoundError(ArenaError):
    """No round with the requested id."""

    pass


class AgentNotFoundError(ArenaError):
    """No agent with the requested id."""

    pass
