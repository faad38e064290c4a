"""Exception types raised by the simulator core."""


class MemebotError(Exception):
    """Base class for simulator errors."""


class ConfigurationError(MemebotError):
    """Invalid or unknown configuration, raised before a run starts."""


class LedgerError(MemebotError):
    """A ledger write failed or matched the wrong number of rows."""


class PortfolioError(MemebotError):
    """An operation would break a portfolio invariant."""
