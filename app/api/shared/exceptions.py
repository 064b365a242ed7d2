"""
Erros do rastreamento de pedidos.

Nenhum deles é fatal: o cliente pode reenviar o ID ou aguardar o próximo ciclo.
"""


class TrackingError(Exception):
    """Base dos erros do rastreamento."""


class InvalidOrderIdError(TrackingError):
    """ID de pedido vazio ou inválido; rejeitado antes de qualquer requisição."""


class BackendUnavailableError(TrackingError):
    """Falha de transporte ao falar com o backend de pedidos."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OrderNotFoundError(TrackingError):
    """O backend respondeu 404 para o pedido."""


class ActionNotAllowedError(TrackingError):
    """Ação do cliente não permitida no status atual (ex.: cancelar fora de recebido)."""
