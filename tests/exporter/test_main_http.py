import logging
import threading
import urllib.error
import urllib.request

import pytest

from binance_exporter.exporter.fetcher import PriceRecord, UpstreamStatusError, TransportError
from binance_exporter.exporter.main_http import ScrapeEndpoint, make_server
from binance_exporter.exporter.publisher import PRICE_METRIC_NAME, PricePublisher
from binance_exporter.exporter.registry import build_registry


class FakeFetcher:
    """Substitui fetch_prices registrando as chamadas."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else []
        self.error = error
        self.calls = []

    def __call__(self, symbols, url=None, timeout=None):
        self.calls.append((list(symbols), url, timeout))
        if self.error is not None:
            raise self.error
        return list(self.result)


def _endpoint(fetcher, env=None, **kwargs):
    registry = build_registry(process_metrics=False)
    endpoint = ScrapeEndpoint(registry, PricePublisher(registry), fetcher=fetcher, env=env or {}, **kwargs)
    return endpoint, registry


def test_handle_success_renders_price_line():
    """Scrape bem-sucedido devolve 200 com a linha do Gauge."""
    endpoint, _ = _endpoint(FakeFetcher([PriceRecord("BTCUSDT", "65000.12")]))

    status, content_type, body = endpoint.handle()

    assert status == 200
    assert content_type.startswith("text/plain")
    assert 'binance_crypto_price{symbol="BTCUSDT"} 65000.12' in body.decode("utf-8")


def test_handle_uses_configured_symbols_and_upstream():
    """Os símbolos de SYMBOLS, a URL e o timeout chegam ao fetcher."""
    fetcher = FakeFetcher()
    endpoint, _ = _endpoint(fetcher, env={"SYMBOLS": "SOLUSDT,ADAUSDT"}, upstream_url="http://up/x", timeout=1.5)

    endpoint.handle()

    assert fetcher.calls == [(["SOLUSDT", "ADAUSDT"], "http://up/x", 1.5)]


def test_handle_default_symbols():
    """Sem SYMBOLS, usa a lista padrão."""
    fetcher = FakeFetcher()
    endpoint, _ = _endpoint(fetcher)
    endpoint.handle()
    assert fetcher.calls[0][0] == ["BTCUSDT", "ETHUSDT", "BNBUSDT"]


def test_handle_upstream_status_error_leaves_registry_untouched():
    """Upstream 503: resposta 500 com a descrição e registry intacto."""
    endpoint, registry = _endpoint(FakeFetcher(error=UpstreamStatusError(503, "Service Unavailable")))

    status, content_type, body = endpoint.handle()

    assert status == 500
    assert content_type == "text/plain; charset=utf-8"
    text = body.decode("utf-8")
    assert text.startswith("Failed to fetch prices: ")
    assert "unexpected status: 503" in text
    assert registry.get_sample_value(PRICE_METRIC_NAME, {"symbol": "BTCUSDT"}) is None


def test_handle_failure_keeps_previous_values():
    """Falha posterior não altera os valores publicados antes."""
    fetcher = FakeFetcher([PriceRecord("BTCUSDT", "10")])
    endpoint, registry = _endpoint(fetcher)
    endpoint.handle()

    fetcher.error = TransportError("boom")
    status, _, _ = endpoint.handle()

    assert status == 500
    assert registry.get_sample_value(PRICE_METRIC_NAME, {"symbol": "BTCUSDT"}) == 10.0


def test_handle_invalid_price_still_succeeds(caplog):
    """Preço inválido: 200, sem Gauge para o símbolo e um diagnóstico."""
    caplog.set_level(logging.WARNING)
    endpoint, registry = _endpoint(FakeFetcher([PriceRecord("XXXUSDT", "abc")]))

    status, _, body = endpoint.handle()

    assert status == 200
    assert registry.get_sample_value(PRICE_METRIC_NAME, {"symbol": "XXXUSDT"}) is None
    assert 'symbol="XXXUSDT"' not in body.decode("utf-8")
    diagnostics = [r for r in caplog.records if r.name == "binance_exporter.exporter.publisher"]
    assert len(diagnostics) == 1
    assert "XXXUSDT" in diagnostics[0].getMessage()


def test_handle_openmetrics_negotiation():
    """Accept de OpenMetrics devolve o formato OpenMetrics."""
    endpoint, _ = _endpoint(FakeFetcher([PriceRecord("BTCUSDT", "1")]))

    status, content_type, body = endpoint.handle("application/openmetrics-text; version=1.0.0")

    assert status == 200
    assert content_type.startswith("application/openmetrics-text")
    assert body.decode("utf-8").rstrip().endswith("# EOF")


def test_handle_fetches_on_every_scrape_by_default():
    """Sem cache, cada scrape consulta o upstream."""
    fetcher = FakeFetcher()
    endpoint, _ = _endpoint(fetcher)
    endpoint.handle()
    endpoint.handle()
    assert len(fetcher.calls) == 2


def test_handle_cache_reuses_records_within_ttl(monkeypatch):
    """Com cache_ttl, scrapes dentro da janela reaproveitam a consulta."""
    now = [100.0]
    monkeypatch.setattr("binance_exporter.exporter.main_http.time.monotonic", lambda: now[0])
    fetcher = FakeFetcher([PriceRecord("BTCUSDT", "1")])
    endpoint, _ = _endpoint(fetcher, cache_ttl=5.0)

    endpoint.handle()
    now[0] = 104.0
    endpoint.handle()
    assert len(fetcher.calls) == 1

    now[0] = 106.0
    endpoint.handle()
    assert len(fetcher.calls) == 2


def test_handle_cache_does_not_store_failures():
    """Falhas não são cacheadas."""
    fetcher = FakeFetcher(error=TransportError("down"))
    endpoint, _ = _endpoint(fetcher, cache_ttl=60.0)

    assert endpoint.handle()[0] == 500
    fetcher.error = None
    fetcher.result = [PriceRecord("BTCUSDT", "2")]
    assert endpoint.handle()[0] == 200
    assert len(fetcher.calls) == 2


@pytest.fixture
def live_server():
    fetcher = FakeFetcher([PriceRecord("BTCUSDT", "65000.12")])
    registry = build_registry()
    endpoint = ScrapeEndpoint(registry, PricePublisher(registry), fetcher=fetcher, env={})
    server = make_server(endpoint, addr="127.0.0.1", port=0, path="/metrics")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server, fetcher
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _url(server, path):
    host, port = server.server_address[:2]
    return f"http://{host}:{port}{path}"


def test_http_metrics_route(live_server):
    """GET /metrics responde 200 com preços e métricas de processo."""
    server, _ = live_server
    with urllib.request.urlopen(_url(server, "/metrics"), timeout=5) as resp:
        assert resp.status == 200
        text = resp.read().decode("utf-8")
    assert 'binance_crypto_price{symbol="BTCUSDT"} 65000.12' in text
    assert "python_info" in text


def test_http_fetch_failure_returns_500(live_server):
    """Falha no upstream vira 500 com texto simples."""
    server, fetcher = live_server
    fetcher.error = UpstreamStatusError(503, "Service Unavailable")

    with pytest.raises(urllib.error.HTTPError) as exc_info:
        urllib.request.urlopen(_url(server, "/metrics"), timeout=5)

    err = exc_info.value
    assert err.code == 500
    assert "Failed to fetch prices: unexpected status: 503" in err.read().decode("utf-8")
    err.close()


def test_http_unknown_path_returns_404(live_server):
    """Outros paths respondem 404 sem consultar o upstream."""
    server, fetcher = live_server

    with pytest.raises(urllib.error.HTTPError) as exc_info:
        urllib.request.urlopen(_url(server, "/health"), timeout=5)

    assert exc_info.value.code == 404
    exc_info.value.close()
    assert fetcher.calls == []

