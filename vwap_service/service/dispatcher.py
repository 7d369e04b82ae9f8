"""
Classifies raw feed messages and routes trade matches to their VWAP.
"""

import logging
import math
from typing import Optional, TextIO

from ..errors import (
    DivideByZeroError,
    ExchangeError,
    NumericParseError,
    RecoverableError,
    UnknownSymbolError,
)
from ..ingestion.messages import ExchangeMessage
from ..platforms.base import RawMessage
from .registry import SymbolRegistry


def parse_decimal(field_name: str, raw_value) -> float:
    """Parse a decimal string field into a finite float"""
    if raw_value is None or isinstance(raw_value, bool):
        raise NumericParseError(field_name, raw_value)
    try:
        value = float(raw_value)
    except (TypeError, ValueError) as e:
        raise NumericParseError(field_name, raw_value) from e
    if not math.isfinite(value):
        raise NumericParseError(field_name, raw_value)
    return value


def format_line(symbol: str, value: float) -> str:
    return f"{symbol}: {value:.6f}"


class Dispatcher:
    """
    Turns one raw message into at most one output line.

    Every failure that concerns a single message is logged and swallowed
    here; nothing raised by `handle()` should stop the dispatch loop.
    """

    def __init__(self, registry: SymbolRegistry, output: TextIO, logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.output = output
        self.logger = logger or logging.getLogger(__name__)

        # Stats
        self._messages = 0
        self._matches = 0
        self._skipped = 0
        self._lines_written = 0

    def parse_feed_message(self, raw: RawMessage) -> Optional[ExchangeMessage]:
        """
        Decode and classify a raw message.

        Returns:
            The message if it is a trade match, None for anything to ignore

        Raises:
            ProtocolError: payload is not a JSON object
            ExchangeError: the server reported an error
        """
        msg = ExchangeMessage.parse(raw)

        if msg.is_error:
            raise ExchangeError(msg.message or "")

        if not msg.is_match:
            return None

        return msg

    def route(self, msg: ExchangeMessage) -> str:
        """
        Push a match into its trading pair's VWAP.

        Returns:
            The formatted output line (without newline)
        """
        vwap = self.registry.get(msg.product_id)
        if vwap is None:
            raise UnknownSymbolError(msg.product_id)

        price = parse_decimal("price", msg.price)
        size = parse_decimal("size", msg.size)

        vwap.push(price, size)
        return format_line(msg.product_id, vwap.value)

    def handle(self, raw: RawMessage) -> Optional[str]:
        """
        Process one raw feed message end to end.

        Returns:
            The line written to the output, or None when the message was skipped
        """
        self._messages += 1

        try:
            msg = self.parse_feed_message(raw)
            if msg is None:
                return None
            self._matches += 1
            line = self.route(msg)
        except DivideByZeroError as e:
            self._skipped += 1
            self.logger.error(f"failed to calculate VWAP from feed message: {e} (msg={_preview(raw)})")
            return None
        except ExchangeError as e:
            self._skipped += 1
            self.logger.error(f"service run: {e}")
            return None
        except UnknownSymbolError as e:
            self._skipped += 1
            self.logger.error(f"service run: check trading pair: {e}")
            return None
        except RecoverableError as e:
            self._skipped += 1
            self.logger.error(f"service run: skipping message: {e} (msg={_preview(raw)})")
            return None

        self._write(line)
        return line

    def _write(self, line: str):
        try:
            self.output.write(line + "\n")
            self.output.flush()
        except (OSError, ValueError) as e:
            self.logger.error(f"failed to write VWAP to output target: {e}")
            return
        self._lines_written += 1

    def get_stats(self) -> dict:
        return {
            "messages": self._messages,
            "matches": self._matches,
            "skipped": self._skipped,
            "lines_written": self._lines_written,
        }


def _preview(raw: RawMessage, limit: int = 200) -> str:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return raw[:limit]
