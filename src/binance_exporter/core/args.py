"""Parser de argumentos da linha de comando.

Este módulo fornece um parser simples que expõe:
- endereço e porta do servidor (--addr / --port)
- path das métricas (--path)
- cache opcional e timeout do upstream (--cache-ttl / --timeout)
- verbosidade (-v) e opções de logging (--log-level / --log-file)

Precedência: CLI > variáveis de ambiente > .env > padrões. Os valores que
não vierem da CLI são completados a partir de ``load_settings()``.
"""

import argparse
from typing import Sequence

from ..config.settings import load_settings, validate_settings

# ========================
# 0. Configuração do parser
# ========================


def configure_argparser() -> argparse.ArgumentParser:
    """Cria e retorna ArgumentParser configurado para o exporter."""
    parser = argparse.ArgumentParser(
        prog="binance-price-exporter",
        description="Exporter Prometheus de preços de criptomoedas (Binance)",
    )
    parser.add_argument("--addr", type=str, default=None, help="Endereço de bind (EXPORTER_ADDR)")
    parser.add_argument("-p", "--port", type=int, default=None, help="Porta TCP (EXPORTER_PORT, padrão 8080)")
    parser.add_argument(
        "--path",
        dest="metrics_path",
        type=str,
        default=None,
        help="Path das métricas (EXPORTER_METRICS_PATH, padrão /metrics)",
    )
    parser.add_argument(
        "--upstream-url",
        dest="upstream_url",
        type=str,
        default=None,
        help="URL base da API de preços (EXPORTER_UPSTREAM_URL)",
    )
    parser.add_argument(
        "--timeout",
        dest="http_timeout",
        type=float,
        default=None,
        help="Timeout em segundos da chamada upstream (padrão: sem timeout)",
    )
    parser.add_argument(
        "--cache-ttl",
        dest="cache_ttl",
        type=float,
        default=None,
        help="Segundos para reaproveitar a última consulta (0 = sempre consultar)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Aumenta a verbosidade (-v = DEBUG)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str,
        default=None,
        help="Nível de logging (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        type=str,
        default=None,
        help="Arquivo de log adicional (gera também um .jsonl ao lado)",
    )
    return parser


# ========================
# 1. Análise e validação
# ========================

_SETTINGS_KEYS = ("addr", "port", "metrics_path", "upstream_url", "http_timeout", "cache_ttl", "log_level", "log_file")


def parse_args(argv: Sequence[str] | None = None, settings: dict | None = None) -> argparse.Namespace:
    """Analisa argv, completa com as configurações e valida o resultado.

    Argumentos inválidos terminam o programa via ``parser.error`` (código 2).
    """
    parser = configure_argparser()
    ns = parser.parse_args(argv)
    if settings is None:
        settings = load_settings()
    for key in _SETTINGS_KEYS:
        if getattr(ns, key, None) is None:
            setattr(ns, key, settings.get(key))
    ns.env = settings.get("env")
    try:
        validate_args(ns)
    except ValueError as exc:
        parser.error(str(exc))
    return ns


def validate_args(args: argparse.Namespace) -> None:
    """Valida os argumentos reaproveitando ``validate_settings``."""
    values = {key: getattr(args, key, None) for key in _SETTINGS_KEYS}
    validated = validate_settings(values)
    args.cache_ttl = validated["cache_ttl"]


# ========================
# 2. Configuração de logging
# ========================


def get_log_config(args: argparse.Namespace) -> dict:
    """Retorna dict com 'level' e 'file' para a configuração de logging."""
    if getattr(args, "verbose", 0):
        level = "DEBUG"
    elif getattr(args, "log_level", None):
        level = str(args.log_level).upper()
    else:
        level = "INFO"
    return {"level": level, "file": getattr(args, "log_file", None)}
