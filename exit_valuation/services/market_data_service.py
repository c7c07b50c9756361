import asyncio
import os
import logging

from exit_valuation.models.market_data import ComparableCompany

logger = logging.getLogger(__name__)


class MarketDataService:
    """Live EV multiples from Yahoo Finance for comparables that carry a ticker."""

    def __init__(self, enabled: bool | None = None):
        if enabled is None:
            enabled = os.getenv("LIVE_COMPARABLE_METRICS", "false").lower() == "true"
        self.enabled = enabled

    async def overlay_live_multiples(self, comparables: list[ComparableCompany]) -> list[str]:
        """Replace estimated EV multiples with live ones in place. Returns warnings for failed tickers."""
        warnings: list[str] = []
        if not self.enabled:
            return warnings

        for comp in comparables:
            if not comp.ticker:
                continue
            try:
                live = await asyncio.to_thread(self._fetch_yfinance, comp.ticker)
            except Exception as e:
                logger.warning(f"yfinance failed for {comp.ticker}: {e}, keeping estimated multiples")
                warnings.append(f"Live market data unavailable for {comp.ticker}; using estimated multiples")
                continue

            if live["ev_to_ebitda"] is None and live["ev_to_revenue"] is None:
                warnings.append(f"No live EV multiples for {comp.ticker}; using estimated multiples")
                continue

            if live["ev_to_ebitda"] is not None:
                comp.metrics.ev_to_ebitda = live["ev_to_ebitda"]
            if live["ev_to_revenue"] is not None:
                comp.metrics.ev_to_revenue = live["ev_to_revenue"]
            comp.metrics.data_source = "live_yfinance"
            comp.metrics.data_source_url = f"https://finance.yahoo.com/quote/{comp.ticker}"

        return warnings

    def _fetch_yfinance(self, ticker: str) -> dict:
        import yfinance as yf
        t = yf.Ticker(ticker)
        info = t.info or {}

        enterprise_value = info.get("enterpriseValue")
        revenue = info.get("totalRevenue")
        ebitda = info.get("ebitda")

        ev_to_rev = None
        if enterprise_value and revenue and revenue > 0:
            ev_to_rev = enterprise_value / revenue

        ev_to_ebitda = None
        if enterprise_value and ebitda and ebitda > 0:
            ev_to_ebitda = enterprise_value / ebitda

        return {"ev_to_ebitda": ev_to_ebitda, "ev_to_revenue": ev_to_rev}
