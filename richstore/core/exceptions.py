"""
Exceptions raised by the rich store index layer.
"""


class RichStoreError(Exception):
    """Base class for rich store errors"""
    pass


class ConfigurationError(RichStoreError):
    """Raised when the index backend cannot be built from configuration"""
    pass


class BackendUnavailableError(RichStoreError):
    """Raised when an index backend cannot serve a read"""
    pass


class UnsupportedQueryError(RichStoreError):
    """Raised when an index variant lacks a query capability"""
    pass


class MalformedStagingFileError(RichStoreError):
    """Raised when a staging file cannot be parsed"""

    def __init__(self, path: str, line_number: int, reason: str):
        super().__init__(f"{path}:{line_number}: {reason}")
        self.path = path
        self.line_number = line_number
        self.reason = reason
