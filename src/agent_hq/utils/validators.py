"""Validation utilities for task names."""


def validate_task_name(value: str) -> str:
    """
    Validate a task name before it is joined onto a state directory.

    Args:
        value: Task name

    Returns:
        The validated name

    Raises:
        ValueError: If the name is empty or could escape the state directory
    """
    if not value or not value.strip():
        raise ValueError("Task name cannot be empty")

    if '/' in value or '\\' in value or '..' in value or '\0' in value:
        raise ValueError(f"Task name contains invalid characters: {value}")

    # Dotfiles are reserved for temp files and locks
    if value.startswith('.'):
        raise ValueError(f"Task name cannot start with '.': {value}")

    if len(value) > 200:
        raise ValueError("Task name too long")

    return value
