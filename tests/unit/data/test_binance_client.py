"""
Unit tests for the Binance futures adapters.

Tests cover:
- Credential loading from environment variables (testnet/mainnet)
- AsyncClient creation with correct testnet flag
- Symbol filters, ATR seeding and quotes from REST data
- ATR roll-forward from CANDLE_CLOSED events
- Wallet balance reads
- Market entry with reduce-only stop and target orders
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from atr_trader.core.errors import MarketDataUnavailable
from atr_trader.core.event_bus import Event, EventBus, EventType
from atr_trader.core.models import Direction
from atr_trader.data.binance_client import (
    BinanceAccount,
    BinanceConnection,
    BinanceMarketFeed,
    BinanceOrderGateway,
    CredentialError,
    ProtectionOrderError,
    client_order_id,
    load_credentials,
)


def kline_row(open_, high, low, close, volume="10.0"):
    return [1700000000000, open_, high, low, close, volume, 1700000899999]


EXCHANGE_INFO = {
    "symbols": [
        {
            "symbol": "BTCUSDT",
            "filters": [
                {"filterType": "PRICE_FILTER", "tickSize": "0.10"},
                {"filterType": "LOT_SIZE", "stepSize": "0.001", "minQty": "0.001", "maxQty": "1000"},
                {"filterType": "MARKET_LOT_SIZE", "stepSize": "0.001", "minQty": "0.001", "maxQty": "120"},
            ],
        }
    ]
}


@pytest.fixture
def mock_client():
    client = Mock()
    client.futures_exchange_info = AsyncMock(return_value=EXCHANGE_INFO)
    client.futures_klines = AsyncMock(
        return_value=[kline_row("45000", "45050", "44950", "45000")] * 5
    )
    client.futures_orderbook_ticker = AsyncMock(
        return_value={"bidPrice": "45000.00", "askPrice": "45000.10"}
    )
    client.futures_account_balance = AsyncMock(
        return_value=[
            {"asset": "BNB", "balance": "1.0"},
            {"asset": "USDT", "balance": "10000.00"},
        ]
    )
    client.futures_create_order = AsyncMock(return_value={"orderId": 123456})
    client.close_connection = AsyncMock()
    return client


class TestCredentialLoading:
    """Test credential loading from environment variables."""

    def test_load_testnet_credentials(self, monkeypatch):
        monkeypatch.setenv("BINANCE_TESTNET_API_KEY", "test_key_123")
        monkeypatch.setenv("BINANCE_TESTNET_API_SECRET", "test_secret_456")

        assert load_credentials(use_testnet=True) == ("test_key_123", "test_secret_456")

    def test_load_mainnet_credentials(self, monkeypatch):
        monkeypatch.setenv("BINANCE_MAINNET_API_KEY", "main_key")
        monkeypatch.setenv("BINANCE_MAINNET_API_SECRET", "main_secret")

        assert load_credentials(use_testnet=False) == ("main_key", "main_secret")

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("BINANCE_TESTNET_API_KEY", raising=False)
        monkeypatch.delenv("BINANCE_TESTNET_API_SECRET", raising=False)

        with pytest.raises(CredentialError, match="Missing required testnet credentials"):
            load_credentials(use_testnet=True)

    def test_placeholder_credentials(self, monkeypatch):
        monkeypatch.setenv("BINANCE_TESTNET_API_KEY", "your_testnet_api_key_here")
        monkeypatch.setenv("BINANCE_TESTNET_API_SECRET", "real_secret")

        with pytest.raises(CredentialError, match="appears to be a placeholder"):
            load_credentials(use_testnet=True)


@pytest.mark.asyncio
class TestBinanceConnection:
    """Test AsyncClient lifecycle."""

    async def test_connect_uses_testnet_flag(self, monkeypatch, mock_client):
        monkeypatch.setenv("BINANCE_TESTNET_API_KEY", "test_key_123")
        monkeypatch.setenv("BINANCE_TESTNET_API_SECRET", "test_secret_456")
        create = AsyncMock(return_value=mock_client)

        with patch("atr_trader.data.binance_client.load_dotenv"):
            with patch("atr_trader.data.binance_client.AsyncClient.create", create):
                connection = BinanceConnection(use_testnet=True)
                client = await connection.connect()

        assert client is mock_client
        assert connection.is_connected
        create.assert_awaited_once_with(
            api_key="test_key_123", api_secret="test_secret_456", testnet=True
        )

        await connection.disconnect()
        mock_client.close_connection.assert_awaited_once()
        assert not connection.is_connected

    async def test_connect_failure_raises_connection_error(self, monkeypatch):
        monkeypatch.setenv("BINANCE_TESTNET_API_KEY", "test_key_123")
        monkeypatch.setenv("BINANCE_TESTNET_API_SECRET", "test_secret_456")

        with patch("atr_trader.data.binance_client.load_dotenv"):
            with patch(
                "atr_trader.data.binance_client.AsyncClient.create",
                AsyncMock(side_effect=OSError("network unreachable"))
            ):
                with pytest.raises(ConnectionError, match="Binance connection failed"):
                    await BinanceConnection(use_testnet=True).connect()

    async def test_disconnect_without_client(self):
        await BinanceConnection().disconnect()


@pytest.mark.asyncio
class TestBinanceMarketFeed:
    """Test the futures market data feed."""

    async def test_load_reads_filters_atr_and_quote(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "btcusdt", ["15m", "1h"], atr_period=3)

        await feed.load()

        assert feed.symbol == "BTCUSDT"
        mock_client.futures_klines.assert_any_await(symbol="BTCUSDT", interval="15m", limit=5)
        mock_client.futures_klines.assert_any_await(symbol="BTCUSDT", interval="1h", limit=5)
        assert feed.latest_volatility("15m") == pytest.approx(100.0)
        assert feed.latest_volatility("1h") == pytest.approx(100.0)
        assert feed.bid == 45000.0
        assert feed.ask == 45000.1

    async def test_market_lot_size_preferred(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"], atr_period=3)
        await feed.load()

        # MARKET_LOT_SIZE caps at 120, rounding down
        assert feed.normalize_volume(500.0) == 120.0
        assert feed.normalize_volume(0.0129) == 0.012
        assert feed.normalize_volume(0.0004) == 0.0

    async def test_round_price_to_tick(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"], atr_period=3)
        await feed.load()

        assert feed.round_price(44700.04) == 44700.0

    async def test_pip_value_equals_pip_size(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"], pip_size=0.1)

        assert feed.pip_size == 0.1
        assert feed.pip_value == 0.1

    async def test_unknown_symbol(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "DOGEUSDT", ["15m"])

        with pytest.raises(MarketDataUnavailable, match="not found"):
            await feed.load()

    async def test_readings_unavailable_before_load(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"])

        with pytest.raises(MarketDataUnavailable):
            feed.latest_volatility("15m")
        with pytest.raises(MarketDataUnavailable):
            _ = feed.bid
        with pytest.raises(MarketDataUnavailable):
            feed.normalize_volume(1.0)

    async def test_candle_closed_rolls_atr_forward(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"], atr_period=3)
        await feed.load()

        await feed._on_candle_closed(Event(
            EventType.CANDLE_CLOSED,
            {"symbol": "BTCUSDT", "interval": "15m",
             "high": 45200.0, "low": 44800.0, "close": 45000.0},
            "KlineStream"
        ))

        # TRs in window: 100, 100, 400
        assert feed.latest_volatility("15m") == pytest.approx(200.0)

    async def test_candle_for_other_symbol_ignored(self, mock_client):
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"], atr_period=3)
        await feed.load()

        await feed._on_candle_closed(Event(
            EventType.CANDLE_CLOSED,
            {"symbol": "ETHUSDT", "interval": "15m",
             "high": 3200.0, "low": 2800.0, "close": 3000.0},
            "KlineStream"
        ))

        assert feed.latest_volatility("15m") == pytest.approx(100.0)

    async def test_tick_refresh_is_throttled(self, mock_client):
        feed = BinanceMarketFeed(
            mock_client, "BTCUSDT", ["15m"], atr_period=3, quote_refresh_interval=60.0
        )
        await feed.load()
        tick = Event(EventType.MARKET_TICK, {"symbol": "BTCUSDT", "price": 45001.0}, "KlineStream")

        await feed._on_tick(tick)
        await feed._on_tick(tick)

        assert mock_client.futures_orderbook_ticker.await_count == 1

    async def test_refresh_ignores_throttle(self, mock_client):
        feed = BinanceMarketFeed(
            mock_client, "BTCUSDT", ["15m"], atr_period=3, quote_refresh_interval=60.0
        )
        await feed.load()
        mock_client.futures_orderbook_ticker.return_value = {
            "bidPrice": "45100.00", "askPrice": "45100.10"
        }

        await feed.refresh()

        assert feed.bid == 45100.0
        assert mock_client.futures_orderbook_ticker.await_count == 2

    async def test_attach_and_detach(self, mock_client):
        bus = EventBus()
        feed = BinanceMarketFeed(mock_client, "BTCUSDT", ["15m"])

        feed.attach(bus)
        assert bus.subscriber_count(EventType.CANDLE_CLOSED) == 1
        assert bus.subscriber_count(EventType.MARKET_TICK) == 1

        feed.detach(bus)
        assert bus.subscriber_count(EventType.CANDLE_CLOSED) == 0
        assert bus.subscriber_count(EventType.MARKET_TICK) == 0


@pytest.mark.asyncio
class TestBinanceAccount:
    async def test_refresh_reads_margin_asset(self, mock_client):
        account = BinanceAccount(mock_client)

        assert await account.refresh() == 10000.0
        assert account.balance == 10000.0

    async def test_balance_before_refresh(self, mock_client):
        with pytest.raises(MarketDataUnavailable):
            _ = BinanceAccount(mock_client).balance

    async def test_missing_asset(self, mock_client):
        with pytest.raises(MarketDataUnavailable, match="No BUSD balance"):
            await BinanceAccount(mock_client, asset="BUSD").refresh()

    async def test_refresh_reads_current_balance(self, mock_client):
        account = BinanceAccount(mock_client, refresh_interval=60.0)
        await account.refresh()
        mock_client.futures_account_balance.return_value = [
            {"asset": "USDT", "balance": "7500.0"}
        ]

        assert await account.refresh() == 7500.0
        assert account.balance == 7500.0


@pytest.fixture
def gateway_feed():
    feed = Mock()
    feed.bid = 45000.0
    feed.ask = 45000.5
    feed.pip_size = 1.0
    feed.round_price = lambda price: price
    return feed


@pytest.mark.asyncio
class TestBinanceOrderGateway:
    """Test market entries with protection orders."""

    async def test_buy_with_target(self, mock_client, gateway_feed):
        gateway = BinanceOrderGateway(mock_client, gateway_feed)

        order_id = await gateway.submit_market_order(
            Direction.BUY, "BTCUSDT", 0.013, "Partition 1", 300.0, 150.0
        )

        assert order_id == "123456"
        calls = mock_client.futures_create_order.await_args_list
        assert len(calls) == 3

        entry = calls[0].kwargs
        assert entry["side"] == "BUY"
        assert entry["type"] == "MARKET"
        assert entry["quantity"] == "0.013"
        assert entry["newClientOrderId"].startswith("partition-1-")

        stop = calls[1].kwargs
        assert stop["side"] == "SELL"
        assert stop["type"] == "STOP_MARKET"
        assert stop["stopPrice"] == "44700.0"
        assert stop["reduceOnly"] == "true"

        target = calls[2].kwargs
        assert target["type"] == "TAKE_PROFIT_MARKET"
        assert target["stopPrice"] == "45150.0"

    async def test_sell_without_target(self, mock_client, gateway_feed):
        gateway = BinanceOrderGateway(mock_client, gateway_feed)

        await gateway.submit_market_order(
            Direction.SELL, "BTCUSDT", 0.005, "Partition 4", 300.0, None
        )

        calls = mock_client.futures_create_order.await_args_list
        assert len(calls) == 2
        assert calls[0].kwargs["side"] == "SELL"
        assert calls[1].kwargs["side"] == "BUY"
        assert calls[1].kwargs["stopPrice"] == "45300.5"

    async def test_trigger_time_prices_used(self, mock_client, gateway_feed):
        gateway = BinanceOrderGateway(mock_client, gateway_feed)
        # Quote moved since the trigger; the reported prices must still be placed
        gateway_feed.bid = 45080.0

        await gateway.submit_market_order(
            Direction.BUY, "BTCUSDT", 0.013, "Partition 1", 300.0, 150.0,
            stop_loss_price=44700.0, take_profit_price=45150.0
        )

        calls = mock_client.futures_create_order.await_args_list
        assert calls[1].kwargs["stopPrice"] == "44700.0"
        assert calls[2].kwargs["stopPrice"] == "45150.0"

    async def test_rejected_entry_propagates(self, mock_client, gateway_feed):
        mock_client.futures_create_order = AsyncMock(side_effect=RuntimeError("Margin is insufficient"))
        gateway = BinanceOrderGateway(mock_client, gateway_feed)

        with pytest.raises(RuntimeError, match="Margin is insufficient"):
            await gateway.submit_market_order(
                Direction.BUY, "BTCUSDT", 0.013, "Partition 1", 300.0, 150.0
            )

    async def test_rejected_stop_raises_protection_error(self, mock_client, gateway_feed):
        mock_client.futures_create_order = AsyncMock(
            side_effect=[{"orderId": 99}, RuntimeError("Order would immediately trigger")]
        )
        gateway = BinanceOrderGateway(mock_client, gateway_feed)

        with pytest.raises(ProtectionOrderError) as exc_info:
            await gateway.submit_market_order(
                Direction.BUY, "BTCUSDT", 0.013, "Partition 1", 300.0, None
            )

        assert exc_info.value.order_id == "99"
        assert exc_info.value.kind == "stop-loss"

    async def test_zero_volume_rejected_locally(self, mock_client, gateway_feed):
        gateway = BinanceOrderGateway(mock_client, gateway_feed)

        with pytest.raises(ValueError, match="quantity must be positive"):
            await gateway.submit_market_order(
                Direction.BUY, "BTCUSDT", 0.0, "Partition 2", 300.0, 150.0
            )
        mock_client.futures_create_order.assert_not_awaited()


def test_client_order_id_is_unique():
    first = client_order_id("Partition 1")
    second = client_order_id("Partition 1")

    assert first.startswith("partition-1-")
    assert len(first) == len("partition-1-") + 12
    assert first != second
