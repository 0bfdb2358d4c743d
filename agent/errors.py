"""
Errores del motor de workflow.

Ninguno es fatal para el proceso: cada uno se traduce en un mensaje
visible y deja al controlador en su estado idle/pendiente. La falla de
interpretación NO es una excepción: es el resultado tipado
`Uninterpretable` de agent.interpreter.
"""


class WorkflowError(Exception):
    """Base de todos los errores del motor."""


class RemoteCallFailure(WorkflowError):
    """Falla de red / transporte al invocar un agente remoto."""


class ValidationFailure(WorkflowError):
    """Entrada del operador inválida (ej: notas vacías). Bloquea la llamada remota."""


class NotFound(WorkflowError):
    """La solicitud de aprobación ya no está pendiente."""

    def __init__(self, order_id: str):
        super().__init__(f"No hay aprobación pendiente para la orden {order_id}")
        self.order_id = order_id


class RejectedEntry(WorkflowError):
    """Anotación del agente que no se puede aplicar al estado."""

    def __init__(self, kind: str, reason: str):
        super().__init__(f"{kind}: {reason}")
        self.kind = kind
        self.reason = reason


class ExchangeInFlight(WorkflowError):
    """Ya hay un intercambio en curso para la misma clave."""

    def __init__(self, key: str):
        super().__init__(f"Intercambio en curso para {key}")
        self.key = key
