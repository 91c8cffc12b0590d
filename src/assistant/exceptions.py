"""
Custom exceptions for the assistant package.
"""


class AssistantError(Exception):
    """Base exception for AI gateway errors."""
    pass


class AssistantAuthError(AssistantError):
    """API key missing or rejected."""
    pass


class AssistantAPIError(AssistantError):
    """Error from the generative-language API."""
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code
