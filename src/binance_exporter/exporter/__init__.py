"""Pacote exporter: consulta de preços, publicação e endpoint de scrape.

Re-exports dos componentes usados pelo entrypoint e pelos testes.
"""

from .fetcher import FetchError, PriceRecord, fetch_prices
from .publisher import PricePublisher
from .main_http import ScrapeEndpoint, run_http_server
from .registry import build_registry

__all__ = [
    "FetchError",
    "PriceRecord",
    "fetch_prices",
    "PricePublisher",
    "ScrapeEndpoint",
    "run_http_server",
    "build_registry",
]
