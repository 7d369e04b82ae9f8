"""
Exception types raised by the VWAP service.

Fatal errors stop a run and surface to whoever started it.
RecoverableError subclasses only ever affect a single feed message.
"""


class VWAPServiceError(Exception):
    """Base class for all service errors"""


# Fatal / control errors

class TransportError(VWAPServiceError):
    """Feed connector read, write, dial or close failure"""


class InvalidRequestError(VWAPServiceError):
    """Subscribe/unsubscribe request rejected before being sent"""


class FeedError(VWAPServiceError):
    """The feed reported a fatal error while the service was running"""


class SubscribeError(VWAPServiceError):
    """Subscribing to the trade channel failed at start"""


class AlreadyRunningError(VWAPServiceError):
    """run() called while the service is already running"""

    def __init__(self, message: str = "service is already running"):
        super().__init__(message)


class NoSymbolsError(VWAPServiceError):
    """run() called with no trading pairs registered"""

    def __init__(self, message: str = "no trading pairs were provided"):
        super().__init__(message)


class ServiceTerminatedError(VWAPServiceError):
    """run() called after the feed failed fatally"""

    def __init__(self, message: str = "service terminated after a fatal feed error"):
        super().__init__(message)


# Per-message errors

class RecoverableError(VWAPServiceError):
    """A single message was skipped; the dispatch loop continues"""


class ProtocolError(RecoverableError):
    """Malformed feed message payload"""


class ExchangeError(RecoverableError):
    """The exchange sent an application-level error message"""

    def __init__(self, server_message: str):
        self.server_message = server_message
        super().__init__(f"received an error message from the server: {server_message}")


class UnknownSymbolError(RecoverableError):
    """Trade received for a symbol that was never registered"""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"trading pair {symbol!r} is out of scope")


class NumericParseError(RecoverableError):
    """price or size field is not a finite decimal number"""

    def __init__(self, field_name: str, raw_value):
        self.field_name = field_name
        self.raw_value = raw_value
        super().__init__(f"parse {field_name} {raw_value!r}: not a finite number")


class DivideByZeroError(RecoverableError):
    """The window's volume sum would be zero after the push"""

    def __init__(self, message: str = "error calculating vwap: sum of volumes equals to 0"):
        super().__init__(message)
