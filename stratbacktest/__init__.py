"""Single-asset strategy backtesting over historical daily prices."""

__version__ = "0.1.0"
