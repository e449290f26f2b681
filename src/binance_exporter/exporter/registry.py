"""Criação do registry de métricas do exporter.

Em vez do ``REGISTRY`` global do ``prometheus_client``, cada servidor
constrói o seu próprio ``CollectorRegistry`` e o repassa ao endpoint.
Isso evita vazamento de estado entre testes.
"""

from prometheus_client import CollectorRegistry, GCCollector, PlatformCollector, ProcessCollector


def build_registry(process_metrics: bool = True) -> CollectorRegistry:
    """Retorna um registry novo, com as métricas de processo quando pedido.

    ``process_metrics`` inclui ``process_*`` (Linux), ``python_info`` e
    ``python_gc_*``.
    """
    registry = CollectorRegistry(auto_describe=True)
    if process_metrics:
        ProcessCollector(registry=registry)
        PlatformCollector(registry=registry)
        GCCollector(registry=registry)
    return registry
