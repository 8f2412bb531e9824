"""Specification validator - checks a composed pod template for consistency."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field

from workload_composer.exceptions import ConflictingIdentityError
from workload_composer.models import Fragment

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of specification validation.

    Attributes:
        valid: Whether the specification is valid.
        errors: List of validation errors.
        warnings: List of validation warnings.
    """

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add a validation error."""
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str) -> None:
        """Add a validation warning."""
        self.warnings.append(message)


class SpecificationValidator:
    """Validates a final pod template.

    Validates:
    - Container names unique across containers and init containers
    - Every container has an image (warning)
    - Volume mounts refer to declared volumes (warning)
    """

    def validate(self, fragment: Fragment) -> ValidationResult:
        """Validate a composed fragment.

        Args:
            fragment: Final pod template.

        Returns:
            ValidationResult with errors and warnings.
        """
        result = ValidationResult()

        self._validate_container_names(fragment, result)
        self._validate_images(fragment, result)
        self._validate_volume_mounts(fragment, result)

        return result

    def validate_or_raise(self, fragment: Fragment) -> ValidationResult:
        """Validate and raise on errors.

        Warnings are logged and returned.

        Raises:
            ConflictingIdentityError: If validation fails.
        """
        result = self.validate(fragment)
        for warning in result.warnings:
            logger.warning(warning)
        if not result.valid:
            raise ConflictingIdentityError(
                f"Specification validation failed: {'; '.join(result.errors)}"
            )
        return result

    def _validate_container_names(self, fragment: Fragment, result: ValidationResult) -> None:
        seen: set[str] = set()
        for container in (*fragment.init_containers, *fragment.containers):
            if container.name in seen:
                result.add_error(
                    f"Container name '{container.name}' is used more than once "
                    "across containers and init containers"
                )
            seen.add(container.name)

    def _validate_images(self, fragment: Fragment, result: ValidationResult) -> None:
        for slot, containers in [
            ("init_containers", fragment.init_containers),
            ("containers", fragment.containers),
        ]:
            for container in containers:
                if not container.image:
                    result.add_warning(f"{slot}['{container.name}']: Missing image")

    def _validate_volume_mounts(self, fragment: Fragment, result: ValidationResult) -> None:
        volumes = {volume.name for volume in fragment.volumes}
        for container in (*fragment.init_containers, *fragment.containers):
            for mount in container.volume_mounts:
                if mount.name not in volumes:
                    result.add_warning(
                        f"Container '{container.name}' mounts undeclared volume '{mount.name}'"
                    )
