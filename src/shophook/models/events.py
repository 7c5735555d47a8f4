"""Catalogue of domain events that can trigger webhooks.

Event codes are part of the wire format (the ``evento`` field of the
envelope) and are kept stable across releases.
"""

from __future__ import annotations

from enum import Enum


class EventType(str, Enum):
    """Domain events a tenant can subscribe an endpoint to."""

    # Service orders
    OS_CRIADA = "OS_CRIADA"
    OS_STATUS_ALTERADO = "OS_STATUS_ALTERADO"
    OS_APROVADA = "OS_APROVADA"
    OS_FINALIZADA = "OS_FINALIZADA"
    OS_ENTREGUE = "OS_ENTREGUE"
    OS_CANCELADA = "OS_CANCELADA"
    # Customers
    CLIENTE_CRIADO = "CLIENTE_CRIADO"
    CLIENTE_ATUALIZADO = "CLIENTE_ATUALIZADO"
    # Vehicles
    VEICULO_CRIADO = "VEICULO_CRIADO"
    VEICULO_ATUALIZADO = "VEICULO_ATUALIZADO"
    # Billing
    PAGAMENTO_RECEBIDO = "PAGAMENTO_RECEBIDO"
    PAGAMENTO_CANCELADO = "PAGAMENTO_CANCELADO"
    # Inventory
    ESTOQUE_BAIXO = "ESTOQUE_BAIXO"
    ESTOQUE_MOVIMENTADO = "ESTOQUE_MOVIMENTADO"
    # Scheduling
    MANUTENCAO_VENCIDA = "MANUTENCAO_VENCIDA"
    AGENDAMENTO_CRIADO = "AGENDAMENTO_CRIADO"

    @property
    def display_name(self) -> str:
        """Human-readable name sent as ``eventoNome``."""
        return _EVENT_INFO[self][0]

    @property
    def description(self) -> str:
        """When the event fires."""
        return _EVENT_INFO[self][1]


_EVENT_INFO: dict[EventType, tuple[str, str]] = {
    EventType.OS_CRIADA: ("OS Criada", "Quando uma nova OS é criada"),
    EventType.OS_STATUS_ALTERADO: ("Status da OS Alterado", "Quando o status de uma OS muda"),
    EventType.OS_APROVADA: ("OS Aprovada", "Quando o cliente aprova o orçamento"),
    EventType.OS_FINALIZADA: ("OS Finalizada", "Quando a OS é finalizada"),
    EventType.OS_ENTREGUE: ("OS Entregue", "Quando o veículo é entregue"),
    EventType.OS_CANCELADA: ("OS Cancelada", "Quando uma OS é cancelada"),
    EventType.CLIENTE_CRIADO: ("Cliente Criado", "Quando um novo cliente é cadastrado"),
    EventType.CLIENTE_ATUALIZADO: (
        "Cliente Atualizado",
        "Quando os dados do cliente são atualizados",
    ),
    EventType.VEICULO_CRIADO: ("Veículo Criado", "Quando um novo veículo é cadastrado"),
    EventType.VEICULO_ATUALIZADO: (
        "Veículo Atualizado",
        "Quando os dados do veículo são atualizados",
    ),
    EventType.PAGAMENTO_RECEBIDO: ("Pagamento Recebido", "Quando um pagamento é confirmado"),
    EventType.PAGAMENTO_CANCELADO: ("Pagamento Cancelado", "Quando um pagamento é cancelado"),
    EventType.ESTOQUE_BAIXO: ("Estoque Baixo", "Quando uma peça atinge o estoque mínimo"),
    EventType.ESTOQUE_MOVIMENTADO: (
        "Estoque Movimentado",
        "Quando há entrada ou saída de peças",
    ),
    EventType.MANUTENCAO_VENCIDA: (
        "Manutenção Vencida",
        "Quando uma manutenção preventiva vence",
    ),
    EventType.AGENDAMENTO_CRIADO: ("Agendamento Criado", "Quando um agendamento é criado"),
}

ALL_EVENT_TYPES: list[EventType] = list(EventType)


def list_event_types() -> list[dict[str, str]]:
    """Describe every event type for subscription pickers."""
    return [
        {"code": event.value, "name": event.display_name, "description": event.description}
        for event in EventType
    ]


__all__ = ["ALL_EVENT_TYPES", "EventType", "list_event_types"]
