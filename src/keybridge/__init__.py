# Avoid importing heavy submodules at top-level to prevent side effects
__version__ = "0.3.0"
__all__ = ["BrowserAction", "CredentialMatcher", "SecureChannel", "Database", "Entry"]

def __getattr__(name):
    if name in ("BrowserAction", "CredentialMatcher", "SecureChannel"):
        from . import browser
        return getattr(browser, name)
    if name in ("Database", "Entry"):
        from .core import models
        return getattr(models, name)
    raise AttributeError(name)
