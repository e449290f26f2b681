"""Exporter Prometheus de preços de criptomoedas consultados na Binance."""

__version__ = "0.1.0"
