"""Ponto de entrada do exporter de preços.

Realiza a inicialização: parsing de argumentos, configuração de logging,
criação do registry/publisher/endpoint e execução do servidor HTTP. Falha
no bind da porta é fatal: é registrada e ``main`` retorna 1.
"""

import json as _json
import logging as _logging
import sys
from pathlib import Path

from .core.args import get_log_config, parse_args
from .exporter.main_http import ScrapeEndpoint, run_http_server
from .exporter.publisher import PricePublisher
from .exporter.registry import build_registry

logger = _logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Inicializa a aplicação e atende scrapes até o processo terminar.

    Args:
        argv: Lista de argumentos (usada em testes). Quando ``None`` usa os
            argumentos de linha de comando do processo.

    Returns:
        Código de saída: 1 quando o servidor não consegue fazer bind.

    """
    args = parse_args(argv)
    log_conf = get_log_config(args)

    level = getattr(_logging, log_conf.get("level", "INFO"), _logging.INFO)
    _logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if log_conf.get("file"):
        try:
            _setup_file_handlers(Path(log_conf["file"]))
        except OSError as exc:
            logger.warning("Falha ao configurar log em arquivo %s: %s", log_conf["file"], exc)

    registry = build_registry()
    endpoint = ScrapeEndpoint(
        registry,
        PricePublisher(registry),
        env=args.env,
        upstream_url=args.upstream_url,
        timeout=args.http_timeout,
        cache_ttl=args.cache_ttl,
    )

    try:
        run_http_server(endpoint, addr=args.addr, port=args.port, path=args.metrics_path)
    except OSError as exc:
        logger.error("Falha ao iniciar servidor em %s:%s: %s", args.addr, args.port, exc)
        return 1
    return 0


def _setup_file_handlers(path: Path) -> None:
    """Instala handlers de ficheiro e hook global de exceções.

    Adiciona dois handlers ao logger root: um legível (texto) em ``path`` e
    um JSONL (uma linha de JSON por evento) em ``path.with_suffix('.jsonl')``.
    Não duplica handlers que já apontem para os mesmos arquivos.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fh = _logging.FileHandler(str(path), encoding="utf-8")
    fh.setFormatter(_logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    jfh = _logging.FileHandler(str(path.with_suffix(".jsonl")), encoding="utf-8")
    jfh.setFormatter(_get_json_formatter())

    root = _logging.getLogger()
    if _has_existing_file_handler(root, fh, jfh):
        fh.close()
        jfh.close()
    else:
        root.addHandler(fh)
        root.addHandler(jfh)

    def _exc_hook(exc_type, exc_value, exc_tb):
        try:
            root.error("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))
        except Exception:
            sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _exc_hook


def _get_json_formatter():
    class _JSONFormatter(_logging.Formatter):
        def format(self, record):
            obj = {
                "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
                "level": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info:
                obj["exc"] = self.formatException(record.exc_info)
            return _json.dumps(obj, ensure_ascii=False)

    return _JSONFormatter()


def _has_existing_file_handler(root, fh, jfh):
    bases = (getattr(fh, "baseFilename", None), getattr(jfh, "baseFilename", None))
    for h in root.handlers:
        if isinstance(h, _logging.FileHandler) and getattr(h, "baseFilename", None) in bases:
            return True
    return False


if __name__ == "__main__":
    sys.exit(main())
