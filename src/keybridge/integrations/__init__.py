"""Credential store loaders for Keybridge."""

from typing import Dict, Type
from pathlib import Path

from ..core.models import Database

class IntegrationError(Exception):
    """Base exception for integration errors."""
    pass

class BaseIntegration:
    """Base class for credential store loaders."""
    
    def __init__(self, **kwargs):
        """Initialize the integration with any required parameters."""
        self.connected = False
    
    def connect(self, **kwargs) -> bool:
        """Open the underlying store.
        
        Returns:
            bool: True if connection was successful
        """
        raise NotImplementedError
    
    def disconnect(self):
        """Close the underlying store."""
        self.connected = False
    
    def load_database(self) -> Database:
        """Read the whole store into a Database tree.
        
        Returns:
            Database with groups and entries in store order
        """
        raise NotImplementedError

# Dictionary of available integrations
INTEGRATIONS: Dict[str, Type[BaseIntegration]] = {}

def register_integration(name: str):
    """Decorator to register an integration class."""
    def decorator(cls: Type[BaseIntegration]) -> Type[BaseIntegration]:
        INTEGRATIONS[name.lower()] = cls
        return cls
    return decorator

def get_integration(name: str, **kwargs) -> BaseIntegration:
    """Get an instance of the specified integration.
    
    Args:
        name: Name of the integration
        **kwargs: Additional arguments to pass to the integration
        
    Raises:
        IntegrationError: If the integration is not found
    """
    name = name.lower()
    if name not in INTEGRATIONS:
        raise IntegrationError(f"Integration '{name}' not found")
    
    return INTEGRATIONS[name](**kwargs)

def integration_for_path(path: Path) -> str:
    """Pick an integration name from a store file extension."""
    suffix = Path(path).suffix.lower()
    if suffix == ".kdbx":
        return "keepass"
    raise IntegrationError(f"Unsupported credential store: {Path(path).name}")

from . import keepass  # noqa: E402,F401
