"""
Factory for creating download source instances.

Download sources are registered per URL scheme; asking for an unregistered
scheme raises UnsupportedProtocolError.
"""

from typing import Dict, List, Type
import logging

from policy_migration.core.exceptions import UnsupportedProtocolError
from policy_migration.models.config import MigrationSettings
from policy_migration.transport.sender import AiohttpRequestSender

from .base import TransferMethod

logger = logging.getLogger(__name__)


class TransferMethodFactory:
    """Factory class for creating download source instances by URL scheme."""

    # Registry of available transfer methods
    _transfer_methods: Dict[str, Type[TransferMethod]] = {}

    @classmethod
    def register_method(cls, scheme: str, method_class: Type[TransferMethod]) -> None:
        """
        Register a transfer method class with the factory.

        Args:
            scheme: URL scheme handled by the class, without the colon
            method_class: Transfer method class to register
        """
        cls._transfer_methods[scheme.lower()] = method_class
        logger.debug(f"Registered transfer method for {scheme}:")

    @classmethod
    def get_available_methods(cls) -> List[str]:
        """
        Get list of supported download schemes.

        Returns:
            List of registered schemes
        """
        return sorted(cls._transfer_methods.keys())

    @classmethod
    def create_transfer_method(
        cls,
        scheme: str,
        sender: AiohttpRequestSender,
        settings: MigrationSettings
    ) -> TransferMethod:
        """
        Create a transfer method for a URL scheme.

        Args:
            scheme: Scheme of the download source
            sender: Transport for network sources
            settings: Staging settings

        Returns:
            Configured transfer method instance

        Raises:
            UnsupportedProtocolError: If no method handles the scheme
        """
        scheme_lower = (scheme or "").lower()

        if scheme_lower not in cls._transfer_methods:
            available = ", ".join(f"{s}:" for s in cls.get_available_methods())
            raise UnsupportedProtocolError(
                f"policy url must use one of the following protocols: {available}",
                details={"scheme": scheme},
            )

        return cls._transfer_methods[scheme_lower](sender, settings)


def register_transfer_method(*schemes: str):
    """
    Decorator for registering transfer methods with the factory.

    Args:
        *schemes: URL schemes the decorated class handles
    """
    def decorator(cls: Type[TransferMethod]) -> Type[TransferMethod]:
        for scheme in schemes:
            TransferMethodFactory.register_method(scheme, cls)
        return cls
    return decorator
