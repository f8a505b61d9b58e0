"""
Custom exceptions for the emotion fusion engine.
"""


class FusionError(Exception):
    """Base exception for emotion fusion failures."""
    pass


class FusionComputationError(FusionError):
    """Raised when a strategy cannot produce a fused record from its inputs."""

    def __init__(self, message: str, modality: str = None):
        """
        Initialize computation error.

        Args:
            message: Error message
            modality: Offending modality ('face', 'voice') if known
        """
        super().__init__(message)
        self.modality = modality


class ConfigurationError(FusionError):
    """Raised when a fusion configuration is structurally invalid."""
    pass
