"""Crypto and stock price provider implementations."""
from urllib.parse import quote

from zakat_engine.services.time_provider import get_now
from . import CryptoPrice, CryptoProvider, ProviderError, StockProvider, StockQuote, fetch_json


class CoinGeckoProvider(CryptoProvider):
    """CoinGecko simple price API - no API key required (rate-limited).

    CoinGecko keys coins by id, so symbols are mapped for the common coins.
    """

    BASE_URL = "https://api.coingecko.com/api/v3"

    SYMBOL_TO_ID = {
        'BTC': 'bitcoin',
        'ETH': 'ethereum',
        'USDT': 'tether',
        'BNB': 'binancecoin',
        'SOL': 'solana',
        'XRP': 'ripple',
        'USDC': 'usd-coin',
        'ADA': 'cardano',
        'AVAX': 'avalanche-2',
        'DOGE': 'dogecoin',
        'TRX': 'tron',
        'DOT': 'polkadot',
        'LINK': 'chainlink',
        'MATIC': 'matic-network',
        'LTC': 'litecoin',
        'BCH': 'bitcoin-cash',
        'XLM': 'stellar',
        'ATOM': 'cosmos',
    }

    @property
    def name(self) -> str:
        return "coingecko"

    def get_prices(self, symbols: list[str], currency: str = 'USD') -> list[CryptoPrice]:
        wanted = {}
        for symbol in symbols:
            symbol = symbol.upper()
            wanted[self.SYMBOL_TO_ID.get(symbol, symbol.lower())] = symbol
        if not wanted:
            return []

        vs = currency.lower()
        data = fetch_json(
            f"{self.BASE_URL}/simple/price?ids={quote(','.join(wanted))}&vs_currencies={vs}"
            "&include_last_updated_at=true"
        )

        prices = []
        for coin_id, symbol in wanted.items():
            quote_data = data.get(coin_id) or {}
            price = quote_data.get(vs)
            if price is None:
                continue
            updated = quote_data.get('last_updated_at')
            prices.append(CryptoPrice(
                symbol=symbol,
                price=float(price),
                currency=currency.upper(),
                source=self.name,
                timestamp=float(updated) if updated else get_now(),
            ))
        return prices


class YahooFinanceProvider(StockProvider):
    """Yahoo Finance chart endpoint - no API key, listing-currency quotes."""

    BASE_URL = "https://query2.finance.yahoo.com/v8/finance/chart"

    @property
    def name(self) -> str:
        return "yahoo-finance"

    def get_quote(self, symbol: str) -> StockQuote:
        symbol = symbol.upper()
        data = fetch_json(f"{self.BASE_URL}/{quote(symbol)}?interval=1d&range=1d")

        results = (data.get('chart') or {}).get('result') or []
        if not results:
            raise ProviderError(f"No quote for {symbol}")
        meta = results[0].get('meta') or {}

        price = meta.get('regularMarketPrice')
        if price is None:
            raise ProviderError(f"No market price for {symbol}")
        market_time = meta.get('regularMarketTime')

        return StockQuote(
            symbol=symbol,
            price=float(price),
            currency=str(meta.get('currency') or 'USD').upper(),
            source=self.name,
            timestamp=float(market_time) if market_time else get_now(),
        )
