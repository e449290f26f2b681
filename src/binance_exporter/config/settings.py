"""Configurações do exporter de preços.

Este módulo centraliza a lista de símbolos monitorados e os parâmetros de
runtime (endereço, porta, URL upstream, cache, logging). Carrega valores a
partir de ``DEFAULT_SETTINGS`` e permite overrides via arquivo ``.env`` ou
variáveis de ambiente (prefixo ``EXPORTER_*``; a lista de símbolos usa
``SYMBOLS``).

As funções públicas principais são:

- ``resolve_symbols(env)`` -> lista ordenada de símbolos.
- ``load_settings()`` -> dicionário com as configurações efetivas.
- ``validate_settings(settings)`` -> valida limites e devolve o mesmo dict.
"""

import logging
import os
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)


# ========================
# Constantes e padrões globais
# ========================

SYMBOLS_ENV_VAR = "SYMBOLS"

DEFAULT_SYMBOLS = ("BTCUSDT", "ETHUSDT", "BNBUSDT")

DEFAULT_UPSTREAM_URL = "https://api.binance.com/api/v3/ticker/price"

DEFAULT_SETTINGS = {
    "addr": "0.0.0.0",  # nosec B104
    "port": 8080,
    "metrics_path": "/metrics",
    "upstream_url": DEFAULT_UPSTREAM_URL,
    # None = sem timeout explícito (padrão do requests)
    "http_timeout": None,
    # 0 = sem cache; cada scrape consulta o upstream
    "cache_ttl": 0.0,
    "log_level": "INFO",
    "log_file": None,
}

# chave de settings -> (variável de ambiente, conversor)
_ENV_MAP = {
    "addr": ("EXPORTER_ADDR", str),
    "port": ("EXPORTER_PORT", int),
    "metrics_path": ("EXPORTER_METRICS_PATH", str),
    "upstream_url": ("EXPORTER_UPSTREAM_URL", str),
    "http_timeout": ("EXPORTER_HTTP_TIMEOUT", float),
    "cache_ttl": ("EXPORTER_CACHE_TTL", float),
    "log_level": ("EXPORTER_LOG_LEVEL", str),
    "log_file": ("EXPORTER_LOG_FILE", str),
}


# ========================
# 1. Resolução de símbolos
# ========================


def resolve_symbols(env: Mapping[str, str] | None = None) -> list[str]:
    """Retorna os símbolos a consultar, na ordem configurada.

    Se ``SYMBOLS`` estiver definido e não vazio, divide o valor por vírgulas
    sem aparar espaços nem validar o conteúdo. Caso contrário devolve a lista
    padrão ``BTCUSDT, ETHUSDT, BNBUSDT``. Nunca falha.
    """
    if env is None:
        env = os.environ
    raw = env.get(SYMBOLS_ENV_VAR)
    if not raw:
        return list(DEFAULT_SYMBOLS)
    return raw.split(",")


# ========================
# 2. Carregamento das configurações
# ========================


def load_settings() -> dict:
    """Carrega configurações combinando DEFAULTS + .env + ambiente.

    As variáveis do processo sobrescrevem o arquivo ``.env``. Valores
    numéricos inválidos são ignorados com warning e o padrão é mantido.
    O dicionário retornado inclui ``env`` com o mapeamento combinado, usado
    depois por ``resolve_symbols``.
    """
    project_root = Path(__file__).resolve().parents[3]
    env_path = Path(os.getenv("EXPORTER_ENV_FILE", project_root / ".env"))

    env_items = _merge_env_items(env_path)

    settings = dict(DEFAULT_SETTINGS)
    _apply_env_overrides(env_items, settings)
    settings["env"] = env_items
    return settings


# Auxilia load_settings; criado para centralizar leitura do .env
def _read_env_file(path: Path | str) -> dict:
    """Lê um arquivo `.env` e devolve um dicionário chave->valor.

    Linhas vazias e comentários (começando com '#') são ignorados. Aceita o
    prefixo ``export`` usado em scripts shell. Valores entre aspas mantêm o
    conteúdo interno intacto (inclusive vírgulas e espaços de ``SYMBOLS``);
    valores sem aspas perdem comentários `` # ...`` no fim da linha.
    """
    result: dict[str, str] = {}
    p = Path(path)
    if not p.exists():
        return result
    try:
        with p.open("r", encoding="utf-8") as fh:
            for lineno, raw in enumerate(fh, start=1):
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :].lstrip()
                key, sep, val = line.partition("=")
                key = key.strip()
                if not sep or not key:
                    logger.debug("Linha %d ignorada em %s: %r", lineno, p, raw.rstrip("\n"))
                    continue
                result[key] = _unquote_env_value(val.strip())
    except OSError as exc:
        logger.debug("Falha ao ler .env em %s: %s", p, exc)
        return {}
    return result


def _unquote_env_value(val: str) -> str:
    if len(val) >= 2 and val[0] == val[-1] and val[0] in ("'", '"'):
        return val[1:-1]
    comment = val.find(" #")
    if comment != -1:
        val = val[:comment].rstrip()
    return val


def _merge_env_items(env_path: Path) -> dict:
    """Retorna um mapeamento combinado de `.env` e env vars do processo."""
    env_items = _read_env_file(env_path)
    if env_items == {} and env_path.exists():
        logger.warning("Erro ou ficheiro .env vazio em %s", env_path)
    env_items.update(os.environ)
    return env_items


def _apply_env_overrides(env_items: dict, settings: dict) -> None:
    """Aplica overrides ``EXPORTER_*`` sobre ``settings``."""
    for key, (env_var, convert) in _ENV_MAP.items():
        raw_val = env_items.get(env_var)
        if raw_val is None or raw_val == "":
            continue
        try:
            settings[key] = convert(raw_val)
        except (TypeError, ValueError):
            logger.warning("Valor inválido para %s: %s", env_var, raw_val)


# ========================
# 3. Validação
# ========================


def validate_settings(settings: dict) -> dict:
    """Valida limites das configurações e devolve o próprio dicionário.

    Levanta ``ValueError`` quando a porta está fora de 0..65535, o TTL do
    cache é negativo, o timeout não é positivo ou o path não começa com '/'.
    A porta 0 é aceita (porta efêmera escolhida pelo sistema).
    """
    if not isinstance(settings, dict):
        raise TypeError("settings deve ser um dict")

    port = settings.get("port")
    if not isinstance(port, int) or not 0 <= port <= 65535:
        raise ValueError(f"porta inválida: {port!r}")

    cache_ttl = settings.get("cache_ttl") or 0.0
    if float(cache_ttl) < 0.0:
        raise ValueError("cache_ttl deve ser >= 0")
    settings["cache_ttl"] = float(cache_ttl)

    timeout = settings.get("http_timeout")
    if timeout is not None and float(timeout) <= 0.0:
        raise ValueError("http_timeout deve ser > 0")

    path = settings.get("metrics_path") or ""
    if not str(path).startswith("/"):
        raise ValueError(f"metrics_path deve começar com '/': {path!r}")

    settings.setdefault("log_level", "INFO")
    return settings
