"""
Exception hierarchy shared by the invoker, scheduler and store.

SuiteError
  ConfigurationError         credentials / config missing; fatal to model calls
  GenerationError            the language-model call failed
    GenerationTimeout        client-side deadline elapsed
    TransientGenerationError retryable provider condition (429/500/503, transport)
  StorageError               a document-store read or write failed
    StoragePermissionError   the store refused the write; no write will succeed
                             until the permission problem is resolved
"""


class SuiteError(Exception):
    """Base class for all application errors."""


class ConfigurationError(SuiteError):
    pass


class GenerationError(SuiteError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GenerationTimeout(GenerationError):
    pass


class TransientGenerationError(GenerationError):
    pass


class StorageError(SuiteError):
    pass


class StoragePermissionError(StorageError):
    pass
