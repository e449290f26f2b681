"""Consulta de preços na API pública da Binance.

Monta a URL com a lista de símbolos (array JSON url-encoded no parâmetro
``symbols``), executa um único GET bloqueante via ``requests`` e decodifica
a resposta em ``PriceRecord``. Não há retry nem timeout próprio: quando
``timeout`` é None vale o comportamento padrão do transporte.

Erros são sinalizados pela hierarquia ``FetchError``:

- ``TransportError``: falha de rede (DNS, conexão, TLS...).
- ``UpstreamStatusError``: status diferente de 200; o corpo não é lido.
- ``DecodeError``: corpo não é um array JSON de objetos ``{symbol, price}``.
"""

import json
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import quote_plus

import requests  # type: ignore[import-untyped]

from ..config.settings import DEFAULT_UPSTREAM_URL


class FetchError(Exception):
    """Falha ao obter preços do upstream."""


class TransportError(FetchError):
    """A chamada HTTP em si falhou."""


class UpstreamStatusError(FetchError):
    """O upstream respondeu com status diferente de 200."""

    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        status = f"{status_code} {reason}".strip()
        super().__init__(f"unexpected status: {status}")


class DecodeError(FetchError):
    """Corpo da resposta com formato inesperado."""


@dataclass(frozen=True)
class PriceRecord:
    """Par (símbolo, preço) tal como recebido; o preço permanece string."""

    symbol: str
    price: str


def build_query_url(symbols: Sequence[str], url: str = DEFAULT_UPSTREAM_URL) -> str:
    """Retorna ``url?symbols=<array JSON url-encoded>``.

    O JSON é compacto (sem espaços), no mesmo formato aceito pela API.
    """
    payload = json.dumps(list(symbols), separators=(",", ":"))
    return f"{url}?symbols={quote_plus(payload)}"


def fetch_prices(
    symbols: Sequence[str],
    url: str = DEFAULT_UPSTREAM_URL,
    session: requests.Session | None = None,
    timeout: float | None = None,
) -> list[PriceRecord]:
    """Busca os preços atuais de ``symbols``.

    Args:
        symbols: lista não vazia de símbolos, na ordem desejada.
        url: endpoint base do upstream.
        session: ``requests.Session`` opcional (usado em testes e para
            reaproveitar conexões); sem ele usa ``requests.get``.
        timeout: timeout em segundos ou None para o padrão do transporte.

    Returns:
        Registros na ordem devolvida pelo upstream.

    Raises:
        TransportError, UpstreamStatusError, DecodeError.

    """
    query_url = build_query_url(symbols, url)
    http_get = session.get if session is not None else requests.get
    try:
        resp = http_get(query_url, timeout=timeout)
    except requests.RequestException as exc:
        raise TransportError(str(exc)) from exc

    # a resposta é liberada em qualquer desfecho
    with resp:
        if resp.status_code != requests.codes.ok:
            raise UpstreamStatusError(resp.status_code, resp.reason or "")
        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodeError(f"invalid JSON body: {exc}") from exc
        except requests.RequestException as exc:
            # leitura do corpo interrompida
            raise TransportError(str(exc)) from exc

    return _decode_records(data)


def _decode_records(data) -> list[PriceRecord]:
    """Converte o JSON decodificado em ``PriceRecord``, validando o formato.

    Corpo ``null`` equivale a lista vazia. Campos ausentes ou ``null`` viram
    string vazia e o registro é descartado depois, no parse do preço; campos
    com outro tipo tornam o corpo inválido.
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise DecodeError(f"expected JSON array, got {type(data).__name__}")
    records = []
    for idx, item in enumerate(data):
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise DecodeError(f"element {idx} is not an object")
        symbol = item.get("symbol")
        price = item.get("price")
        if symbol is None:
            symbol = ""
        if price is None:
            price = ""
        if not isinstance(symbol, str) or not isinstance(price, str):
            raise DecodeError(f"element {idx} must have string 'symbol' and 'price'")
        records.append(PriceRecord(symbol=symbol, price=price))
    return records
