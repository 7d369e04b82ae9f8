"""
Coinbase Exchange websocket message envelope.

See https://docs.cloud.coinbase.com/exchange/docs/websocket-overview
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..errors import ProtocolError

# Channels
CHANNEL_MATCHES = "matches"
CHANNEL_HEARTBEAT = "heartbeat"
SUPPORTED_CHANNELS = (CHANNEL_MATCHES, CHANNEL_HEARTBEAT)

# Request types
REQ_SUBSCRIBE = "subscribe"
REQ_UNSUBSCRIBE = "unsubscribe"

# Response types
TYPE_MATCH = "match"
TYPE_ERROR = "error"
TYPE_SUBSCRIPTIONS = "subscriptions"
TYPE_LAST_MATCH = "last_match"  # first message after (re)subscribing when trades were missed
TYPE_HEARTBEAT = "heartbeat"


@dataclass
class Channel:
    """One element of the `channels` list in a request or subscriptions ack"""
    name: str
    product_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Channel":
        # Coinbase acks may list a channel as a bare name
        if isinstance(data, str):
            return cls(name=data)
        if not isinstance(data, dict):
            raise ProtocolError(f"invalid channel entry: {data!r}")
        product_ids = data.get("product_ids") or []
        if not isinstance(product_ids, list) or not all(isinstance(p, str) for p in product_ids):
            raise ProtocolError(f"invalid product_ids in channel entry: {product_ids!r}")
        return cls(name=str(data.get("name", "")), product_ids=product_ids)

    def to_dict(self) -> dict:
        return {"name": self.name, "product_ids": list(self.product_ids)}

    def __str__(self):
        return f"{self.name}[{','.join(self.product_ids)}]"


def format_channels(channels: List[Channel]) -> str:
    """Human readable channel list, e.g. `matches[BTC-USD,ETH-BTC] / heartbeat[BTC-USD]`"""
    return " / ".join(str(ch) for ch in channels)


def build_request(req_type: str, channel: str, product_ids: List[str]) -> str:
    """Serialize a subscribe/unsubscribe request"""
    return json.dumps({
        "type": req_type,
        "channels": [Channel(channel, list(product_ids)).to_dict()],
    })


@dataclass
class ExchangeMessage:
    """A decoded feed message. Only `type` is required."""
    type: str
    product_id: Optional[str] = None
    price: Optional[str] = None
    size: Optional[str] = None
    side: Optional[str] = None
    message: Optional[str] = None
    sequence: Optional[int] = None
    trade_id: Optional[int] = None
    time: Optional[str] = None
    channels: List[Channel] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExchangeMessage":
        channels = data.get("channels") or []
        if not isinstance(channels, list):
            raise ProtocolError(f"channels must be a list, got {type(channels).__name__}")

        return cls(
            type=str(data.get("type") or ""),
            product_id=_optional_str(data, "product_id"),
            price=data.get("price"),
            size=data.get("size"),
            side=_optional_str(data, "side"),
            message=_optional_str(data, "message"),
            sequence=data.get("sequence"),
            trade_id=data.get("trade_id"),
            time=data.get("time"),
            channels=[Channel.from_dict(ch) for ch in channels],
        )

    @classmethod
    def parse(cls, raw: Union[str, bytes]) -> "ExchangeMessage":
        """Decode a raw frame, raising ProtocolError on malformed input"""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"failed to unmarshal message: {e}") from e

        if not isinstance(data, dict):
            raise ProtocolError(f"failed to unmarshal message: expected an object, got {type(data).__name__}")

        return cls.from_dict(data)

    @property
    def is_match(self) -> bool:
        return self.type == TYPE_MATCH

    @property
    def is_error(self) -> bool:
        return self.type == TYPE_ERROR


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ProtocolError(f"{key} must be a string, got {type(value).__name__}")
    return value
