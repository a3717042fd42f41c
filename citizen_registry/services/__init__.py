"""Services package exports."""

from citizen_registry.services.logging_service import configure_logging, get_logger
from citizen_registry.services.reapplication_service import ReapplicationService
from citizen_registry.services.registration_service import RegistrationService
from citizen_registry.services.validator_service import ValidatorService

__all__ = [
    "ReapplicationService",
    "RegistrationService",
    "ValidatorService",
    "configure_logging",
    "get_logger",
]
