"""reqtask exceptions."""


class ReqError(Exception):
    """Base class for every error raised by reqtask."""


class DefinitionError(ReqError):
    """Raised when a document or task definition has an invalid shape.

    ``where`` is the dotted location inside the document, e.g.
    ``tasks.login.body``.
    """

    def __init__(self, where: str, message: str):
        self.where = where
        self.message = message
        super().__init__(f"{where}: {message}" if where else message)


class InterpolationError(ReqError):
    """Raised when a placeholder cannot be resolved."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message)


class ValueNotFound(InterpolationError):
    def __init__(self, name: str):
        super().__init__(name, f'value named "{name}" not defined')


class CircularReference(InterpolationError):
    def __init__(self, name: str):
        super().__init__(name, f'found circular reference in "{name}"')


class TaskNotFound(ReqError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"task `{name}` is not defined")


class EnvFileError(ReqError):
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"fail to load env file: {path}: {reason}")


class AssemblyError(ReqError):
    """Raised when a resolved task cannot be turned into a request."""
