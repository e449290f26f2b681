"""Publicação dos preços como Gauges do Prometheus."""

import logging
import math
from typing import Iterable

from prometheus_client import CollectorRegistry, Gauge

from .fetcher import PriceRecord

logger = logging.getLogger(__name__)

PRICE_METRIC_NAME = "binance_crypto_price"
PRICE_METRIC_HELP = "Current cryptocurrency prices from Binance"


def parse_price(text: str) -> float:
    """Converte o preço textual em float (base 10).

    ``float()`` aceita espaços nas pontas, separadores ``_`` e dígitos não
    ASCII; o formato do upstream não usa nenhum deles, então são rejeitados.
    Literais fora da faixa de float64 (ex.: ``1e400``) também são erro;
    apenas ``inf``/``infinity`` explícitos viram infinito.
    """
    if not isinstance(text, str):
        raise ValueError(f"price must be a string, got {type(text).__name__}")
    if text != text.strip() or "_" in text:
        raise ValueError(f"invalid price literal: {text!r}")
    if not text.isascii():
        raise ValueError(f"non-ASCII price literal: {text!r}")
    value = float(text)
    if math.isinf(value) and text.lstrip("+-").lower() not in ("inf", "infinity"):
        raise ValueError(f"price out of range: {text!r}")
    return value


class PricePublisher:
    """Mantém o Gauge ``binance_crypto_price{symbol}`` num registry explícito.

    É o único escritor do Gauge. Valores de símbolos que deixam de ser
    configurados permanecem até o processo reiniciar.
    """

    def __init__(self, registry: CollectorRegistry):
        self.registry = registry
        self.gauge = Gauge(PRICE_METRIC_NAME, PRICE_METRIC_HELP, ["symbol"], registry=registry)

    def publish(self, records: Iterable[PriceRecord]) -> None:
        """Atualiza o Gauge para cada registro com preço válido.

        Registros com preço inválido são logados e ignorados; os demais
        seguem sendo publicados.
        """
        for record in records:
            try:
                value = parse_price(record.price)
            except ValueError as exc:
                logger.warning("Erro ao interpretar preço de %s: %s", record.symbol, exc)
                continue
            self.gauge.labels(symbol=record.symbol).set(value)
