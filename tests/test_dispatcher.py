"""Tests for Dispatcher - message classification, routing and recovered errors."""

import io
import json
import logging
from unittest.mock import MagicMock

import pytest

from vwap_service.errors import (
    DivideByZeroError,
    ExchangeError,
    NumericParseError,
    ProtocolError,
    UnknownSymbolError,
)
from vwap_service.ingestion.messages import ExchangeMessage
from vwap_service.service import Dispatcher, SymbolRegistry
from vwap_service.service.dispatcher import format_line, parse_decimal


class TestParseFeedMessage:
    def test_match_is_returned(self, registry, output):
        d = Dispatcher(registry, output)
        msg = d.parse_feed_message(
            '{"type": "match", "product_id": "ETH-BTC", "price": "5.0", "size": "0.333", "side": "buy"}'
        )
        assert msg == ExchangeMessage(
            type="match", product_id="ETH-BTC", price="5.0", size="0.333", side="buy",
        )

    def test_invalid_json(self, registry, output):
        d = Dispatcher(registry, output)
        with pytest.raises(ProtocolError, match="failed to unmarshal message"):
            d.parse_feed_message("wrong message")

    def test_non_object_payload(self, registry, output):
        d = Dispatcher(registry, output)
        with pytest.raises(ProtocolError):
            d.parse_feed_message("[1, 2, 3]")

    def test_error_type(self, registry, output):
        d = Dispatcher(registry, output)
        with pytest.raises(ExchangeError) as exc_info:
            d.parse_feed_message('{"type": "error", "message": "no data"}')
        assert str(exc_info.value) == "received an error message from the server: no data"
        assert exc_info.value.server_message == "no data"

    @pytest.mark.parametrize("msg_type", ["last_match", "subscriptions", "heartbeat", "ticker", ""])
    def test_other_types_ignored(self, registry, output, msg_type):
        d = Dispatcher(registry, output)
        assert d.parse_feed_message(json.dumps({"type": msg_type, "price": "1.0"})) is None

    def test_bytes_accepted(self, registry, output):
        d = Dispatcher(registry, output)
        msg = d.parse_feed_message(b'{"type": "match", "product_id": "BTC-USD"}')
        assert msg.product_id == "BTC-USD"


class TestParseDecimal:
    def test_valid(self):
        assert parse_decimal("price", "0.5555") == 0.5555

    @pytest.mark.parametrize("raw", ["not-a-number", "", None, "nan", "inf", "-Infinity", True])
    def test_invalid(self, raw):
        with pytest.raises(NumericParseError, match="parse price"):
            parse_decimal("price", raw)

    def test_error_names_field(self):
        with pytest.raises(NumericParseError) as exc_info:
            parse_decimal("size", "abc")
        assert exc_info.value.field_name == "size"
        assert exc_info.value.raw_value == "abc"


class TestRoute:
    def test_updates_only_target_symbol(self, registry, output):
        d = Dispatcher(registry, output)
        msg = ExchangeMessage(type="match", product_id="ETH-BTC", price="5.0", size="0.333")

        line = d.route(msg)

        assert line == "ETH-BTC: 5.000000"
        assert registry.get("ETH-BTC").n_points == 1
        assert registry.get("BTC-USD").n_points == 0
        assert registry.get("ETH-USD").n_points == 0

    def test_unknown_symbol(self, registry, output):
        d = Dispatcher(registry, output)
        with pytest.raises(UnknownSymbolError, match="DOGE-USD"):
            d.route(ExchangeMessage(type="match", product_id="DOGE-USD", price="1", size="1"))

    def test_bad_size(self, registry, output):
        d = Dispatcher(registry, output)
        with pytest.raises(NumericParseError, match="parse size"):
            d.route(ExchangeMessage(type="match", product_id="BTC-USD", price="1", size="x"))
        assert registry.get("BTC-USD").n_points == 0

    def test_push_error_propagates(self, output):
        vwap = MagicMock()
        vwap.push.side_effect = DivideByZeroError()
        reg = SymbolRegistry(10, factory=lambda n: vwap)
        reg.add("BTC-USD")
        d = Dispatcher(reg, output)

        with pytest.raises(DivideByZeroError):
            d.route(ExchangeMessage(type="match", product_id="BTC-USD", price="0.5555", size="0.6666"))
        vwap.push.assert_called_once_with(0.5555, 0.6666)


class TestHandle:
    def test_match_writes_one_line(self, registry, output):
        d = Dispatcher(registry, output)
        line = d.handle(
            '{"type":"match","product_id":"ETH-BTC","price":"5.0","size":"0.333","side":"buy"}'
        )
        assert line == "ETH-BTC: 5.000000"
        assert output.getvalue() == "ETH-BTC: 5.000000\n"
        assert registry.get("ETH-BTC").value == 5.0

    def test_running_value_is_written(self, registry, output, make_match):
        d = Dispatcher(registry, output)
        d.handle(make_match(product_id="BTC-USD", price="5", size="2"))
        d.handle(make_match(product_id="ETH-USD", price="10", size="1"))
        d.handle(make_match(product_id="BTC-USD", price="4", size="5"))

        assert output.getvalue().splitlines() == [
            "BTC-USD: 5.000000",
            "ETH-USD: 10.000000",
            f"BTC-USD: {30 / 7:.6f}",
        ]

    def test_error_message_never_routed(self, registry, output, caplog):
        d = Dispatcher(registry, output)
        with caplog.at_level(logging.ERROR):
            result = d.handle('{"type": "error", "message": "Failed to subscribe", "product_id": "BTC-USD", "price": "1", "size": "1"}')

        assert result is None
        assert output.getvalue() == ""
        assert all(registry.get(s).n_points == 0 for s in registry)
        assert "Failed to subscribe" in caplog.text

    def test_unknown_symbol_is_skipped(self, registry, output, make_match, caplog):
        d = Dispatcher(registry, output)
        with caplog.at_level(logging.ERROR):
            assert d.handle(make_match(product_id="DOGE-USD")) is None

        assert output.getvalue() == ""
        assert all(registry.get(s).n_points == 0 for s in registry)
        assert "out of scope" in caplog.text

    def test_protocol_error_is_skipped(self, registry, output, caplog):
        d = Dispatcher(registry, output)
        with caplog.at_level(logging.ERROR):
            assert d.handle("{not json") is None
        assert "failed to unmarshal message" in caplog.text

    @pytest.mark.parametrize("product_id", [["BTC-USD"], {"a": 1}, 7])
    def test_wrong_typed_product_id_is_skipped(self, registry, output, make_match, caplog, product_id):
        d = Dispatcher(registry, output)
        with caplog.at_level(logging.ERROR):
            assert d.handle(make_match(product_id=product_id)) is None

        assert output.getvalue() == ""
        assert all(registry.get(s).n_points == 0 for s in registry)
        assert "product_id must be a string" in caplog.text
        assert d.get_stats()["skipped"] == 1

    def test_numeric_error_is_skipped(self, registry, output, make_match):
        d = Dispatcher(registry, output)
        assert d.handle(make_match(price="abc")) is None
        assert d.get_stats()["skipped"] == 1

    def test_zero_volume_is_skipped(self, registry, output, make_match, caplog):
        d = Dispatcher(registry, output)
        with caplog.at_level(logging.ERROR):
            assert d.handle(make_match(size="0")) is None

        assert output.getvalue() == ""
        assert registry.get("BTC-USD").n_points == 0
        assert "sum of volumes equals to 0" in caplog.text

    def test_ignored_type_writes_nothing(self, registry, output):
        d = Dispatcher(registry, output)
        assert d.handle('{"type": "subscriptions", "channels": []}') is None
        assert output.getvalue() == ""
        assert d.get_stats()["skipped"] == 0

    def test_write_failure_is_logged(self, registry, make_match, caplog):
        closed = io.StringIO()
        closed.close()
        d = Dispatcher(registry, closed)

        with caplog.at_level(logging.ERROR):
            line = d.handle(make_match(price="2", size="1"))

        assert line == "BTC-USD: 2.000000"
        assert registry.get("BTC-USD").n_points == 1
        assert "failed to write VWAP to output target" in caplog.text
        assert d.get_stats()["lines_written"] == 0

    def test_uses_given_logger(self, registry, output):
        log = MagicMock()
        d = Dispatcher(registry, output, logger=log)
        d.handle("garbage")
        log.error.assert_called_once()

    def test_stats(self, registry, output, make_match):
        d = Dispatcher(registry, output)
        d.handle(make_match())
        d.handle('{"type": "heartbeat"}')
        d.handle(make_match(product_id="XRP-USD"))

        assert d.get_stats() == {
            "messages": 3,
            "matches": 2,
            "skipped": 1,
            "lines_written": 1,
        }


def test_format_line_six_decimals():
    assert format_line("BTC-USD", 1 / 3) == "BTC-USD: 0.333333"
    assert format_line("BTC-USD", 67000) == "BTC-USD: 67000.000000"
