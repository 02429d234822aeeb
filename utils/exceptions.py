"""
Custom Exceptions
Error taxonomy shared by the trigger, callback and enrichment paths
"""


class MentionFlowError(Exception):
    """Base error for the collection pipeline"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(MentionFlowError):
    """Missing or invalid settings"""
    pass


class NotFoundError(MentionFlowError):
    """Job or run does not exist (or belongs to another tenant)"""
    pass


class ForbiddenError(MentionFlowError):
    """Operation not allowed, e.g. triggering an inactive job"""
    pass


class BadRequestError(MentionFlowError):
    """Malformed input: callback payload, job config, provider rejection"""
    pass


class ProviderError(MentionFlowError):
    """Scraping or AI provider call failed"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class PersistenceError(MentionFlowError):
    """Store operation failed"""
    pass


class StateTransitionError(MentionFlowError):
    """Run status change that would move backwards"""

    def __init__(self, message: str, current: str = None, target: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.current = current
        self.target = target
