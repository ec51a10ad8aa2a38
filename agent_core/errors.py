"""
Error Taxonomy
==============
Exceptions shared by every agent component.

Each error carries an HTTP-equivalent status code and a stable public
message. Internal detail (dependency names, stack traces) stays in the
exception args and the logs; the public message is what callers see.

Author: Context Agent
"""


class AgentError(Exception):
    """Base exception for agent errors"""

    status_code = 500
    public_message = "Something went wrong"

    def __init__(self, message: str = None):
        super().__init__(message or self.public_message)


class ValidationError(AgentError):
    """Malformed input. The specific reason is safe to show to the caller."""

    status_code = 400
    public_message = "Invalid request format"

    def __init__(self, message: str = None):
        super().__init__(message)
        if message:
            self.public_message = message


class NotInitializedError(AgentError):
    """Retrieval was queried before the document index finished loading"""

    status_code = 503
    public_message = "Document search is not available yet"


class DependencyTimeoutError(AgentError):
    """A plugin, embedding or LLM call exceeded its time budget"""

    status_code = 504
    public_message = "The service took too long to respond"


class DependencyUnavailableError(AgentError):
    """The session store or the LLM could not be reached"""

    status_code = 503
    public_message = "The service is temporarily unavailable. Please try again."


class CorruptStateError(AgentError):
    """Index dimension mismatch or an undecodable session record"""

    status_code = 500
    public_message = "Something went wrong"
