"""Building blocks for cryptocurrency arbitrage trading: exchange connectivity and order execution."""

__version__ = "0.1.0"