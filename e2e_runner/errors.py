"""
Error taxonomy for end-to-end runs
"""


class E2EError(Exception):
    """Base class for orchestration errors"""


class ConfigurationError(E2EError):
    """Invalid project graph or settings, raised before any browser launches"""


class AuthenticationError(E2EError):
    """The setup stage did not observe the authenticated landing page in time"""


class StaleSessionError(E2EError):
    """A dependent test expected an authenticated page but landed on the login page"""

    def __init__(self, message: str, url: str = None, session_path: str = None):
        super().__init__(message)
        self.url = url
        self.session_path = session_path

    def __str__(self) -> str:
        base = super().__str__()
        hints = []
        if self.url:
            hints.append(f"url={self.url}")
        if self.session_path:
            hints.append(f"session={self.session_path}")
        hints.append("re-run the setup project to regenerate the session")
        return f"{base} ({', '.join(hints)})"


class AssertionFailure(E2EError, AssertionError):
    """An expected UI condition did not hold"""


class TransientEnvironmentError(E2EError):
    """Network or navigation failure not tied to application logic"""
