# taxonomía de errores del render

from __future__ import annotations


class PreviewError(RuntimeError):
    """Base de todos los errores del previsualizador."""


class UsageError(PreviewError):
    """Faltan argumentos. No se hace ningún intento."""

    def __init__(self, message: str, exit_code: int):
        super().__init__(message)
        self.exit_code = exit_code


class AssetSniffError(PreviewError):
    """No se pudo determinar el tipo de contenido del modelo."""


class NavigationError(PreviewError):
    """Fallo al cargar el harness (fase de carga)."""


class RenderTimeoutError(PreviewError):
    """
    El harness no marcó _renderFinished a tiempo.
    Es 'blando': se registra y el intento sigue hasta la captura.
    """


class FatalRenderError(PreviewError):
    """Cualquier otro fallo durante asentamiento/polling, o un error de consola promovido."""


class TransparentOutputError(PreviewError):
    """La captura no tiene ningún píxel visible."""


class ResourceCleanupError(PreviewError):
    """Fallo al liberar un recurso. Solo se registra, nunca tapa el resultado."""
