"""Endpoint HTTP de scrape: expõe ``/metrics`` para o Prometheus.

Cada requisição ao path de métricas resolve os símbolos, consulta o
upstream, publica os preços no registry e devolve o registry inteiro no
formato de exposição. Falha na consulta resulta em 500 com texto simples e
o registry não é alterado.

O servidor usa ``ThreadingHTTPServer``: uma thread por requisição, de modo
que um upstream lento só atrasa o scrape que o disparou.
"""

import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Mapping

from prometheus_client import CollectorRegistry
from prometheus_client.exposition import choose_encoder

from ..config.settings import DEFAULT_UPSTREAM_URL, resolve_symbols
from .fetcher import FetchError, PriceRecord, fetch_prices
from .publisher import PricePublisher

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


class ScrapeEndpoint:
    """Orquestra resolução de símbolos, consulta, publicação e renderização.

    Sem estado entre requisições, exceto o cache opcional (``cache_ttl`` > 0).
    Com ``cache_ttl`` = 0 (padrão) todo scrape consulta o upstream.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        publisher: PricePublisher,
        fetcher: Callable[..., list[PriceRecord]] = fetch_prices,
        env: Mapping[str, str] | None = None,
        upstream_url: str = DEFAULT_UPSTREAM_URL,
        timeout: float | None = None,
        cache_ttl: float = 0.0,
    ):
        self.registry = registry
        self.publisher = publisher
        self.fetcher = fetcher
        self.env = env
        self.upstream_url = upstream_url
        self.timeout = timeout
        self.cache_ttl = float(cache_ttl or 0.0)
        self._cache_lock = threading.Lock()
        self._cache: tuple[float, tuple[str, ...], list[PriceRecord]] | None = None

    def handle(self, accept: str | None = None) -> tuple[int, str, bytes]:
        """Executa um scrape e retorna ``(status, content_type, body)``."""
        symbols = resolve_symbols(self.env)
        try:
            records = self._get_records(symbols)
        except FetchError as exc:
            body = f"Failed to fetch prices: {exc}".encode("utf-8")
            return 500, TEXT_CONTENT_TYPE, body

        self.publisher.publish(records)

        encoder, content_type = choose_encoder(accept)
        return 200, content_type, encoder(self.registry)

    def _get_records(self, symbols: list[str]) -> list[PriceRecord]:
        """Consulta o upstream, reaproveitando o cache quando habilitado."""
        if self.cache_ttl <= 0.0:
            return self.fetcher(symbols, url=self.upstream_url, timeout=self.timeout)

        key = tuple(symbols)
        with self._cache_lock:
            cached = self._cache
            if cached is not None and cached[1] == key and time.monotonic() - cached[0] < self.cache_ttl:
                logger.debug("usando preços em cache para %s", ",".join(key))
                return cached[2]
        # falhas não são cacheadas: a exceção sobe antes de gravar
        records = self.fetcher(symbols, url=self.upstream_url, timeout=self.timeout)
        with self._cache_lock:
            self._cache = (time.monotonic(), key, records)
        return records


class ScrapeHandler(BaseHTTPRequestHandler):
    """Handler HTTP que encaminha ``GET <metrics_path>`` ao ``ScrapeEndpoint``.

    O endpoint e o path são lidos de atributos do servidor
    (``server.endpoint`` e ``server.metrics_path``).
    """

    def do_GET(self):
        """Trata requisições GET; paths diferentes do de métricas dão 404."""
        path = self.path.split("?", 1)[0]
        if path != getattr(self.server, "metrics_path", "/metrics"):
            self._send(404, TEXT_CONTENT_TYPE, b"not found\n")
            return
        endpoint: ScrapeEndpoint = self.server.endpoint  # type: ignore[attr-defined]
        status, content_type, body = endpoint.handle(self.headers.get("Accept"))
        self._send(status, content_type, body)

    def _send(self, status: int, content_type: str, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        """Envia o access log ao logging em DEBUG em vez do stderr."""
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(endpoint: ScrapeEndpoint, addr: str = "0.0.0.0", port: int = 8080, path: str = "/metrics"):  # nosec B104
    """Cria (e faz bind de) o servidor HTTP.

    Levanta ``OSError`` se o bind falhar (porta ocupada, permissão...).
    """
    server = ThreadingHTTPServer((addr, port), ScrapeHandler)
    server.daemon_threads = True
    server.endpoint = endpoint  # type: ignore[attr-defined]
    server.metrics_path = path  # type: ignore[attr-defined]
    return server


def run_http_server(endpoint: ScrapeEndpoint, addr: str = "0.0.0.0", port: int = 8080, path: str = "/metrics") -> None:  # nosec B104
    """Inicia o servidor e atende requisições até o processo terminar.

    Args:
        endpoint: orquestrador do scrape.
        addr: endereço de bind (padrão: todas as interfaces).
        port: porta TCP (padrão: 8080).
        path: path das métricas (padrão: ``/metrics``).

    Raises:
        OSError: quando o bind falha; o chamador decide encerrar o processo.

    """
    server = make_server(endpoint, addr=addr, port=port, path=path)
    logger.info("Servindo métricas em http://%s:%d%s", addr, server.server_address[1], path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Recebido KeyboardInterrupt, saindo...")
    finally:
        server.server_close()
