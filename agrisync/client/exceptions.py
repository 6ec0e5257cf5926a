"""
Errores del cliente de sincronización del dispositivo.
"""


class SyncClientError(Exception):
    """Error base del cliente de sincronización."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConnectivityError(SyncClientError):
    """No se pudo contactar al servidor (sin red o timeout)."""


class SyncRejectedError(SyncClientError):
    """El servidor respondió con un estado de error."""

    def __init__(self, message: str, status_code: int, detail: object = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class SyncInProgressError(SyncClientError):
    """Ya hay una sincronización en curso en esta instancia."""

    def __init__(self, message: str = "Ya hay una sincronización en curso"):
        super().__init__(message)


class LocalRecordNotFound(SyncClientError):
    """La encuesta no existe en el almacén local."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Encuesta local {client_id} no encontrada")
