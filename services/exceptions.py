"""
Exception hierarchy shared by the chat, AI and memory services.
"""


class SentiAIError(Exception):
    """Base class for application errors"""
    pass


class ConfigurationError(SentiAIError):
    """A collaborator was requested that the configuration cannot provide"""
    pass


class RemoteModelError(SentiAIError):
    """A call to the remote language model failed"""

    def __init__(self, message: str, operation: str = "", cause: Exception = None):
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class InvalidModelResponseError(RemoteModelError):
    """The remote model answered with something unusable"""
    pass


class PersistenceError(SentiAIError):
    """Loading or saving conversations failed"""
    pass


class EmbeddingError(SentiAIError):
    """Turning text into a vector failed"""
    pass


class InvalidTransitionError(SentiAIError):
    """A state machine was asked to move along an edge it does not have"""
    pass
