"""
Market shocks and volatility.

ARIMA market shocks of the S&P 500, Haar wavelet details of shocks and
VIX returns, and the regression of one on the other across lags.
"""

__version__ = "1.0.0"
