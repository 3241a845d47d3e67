"""Repository-specific exceptions."""


class DatabaseError(Exception):
    """Base exception for all database-related errors."""


class EntityNotFoundError(DatabaseError):
    """Raised when an entity cannot be found by its identifier."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with id '{entity_id}' not found")


class EntityAlreadyExistsError(DatabaseError):
    """Raised when attempting to add an entity whose key is already stored."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with id '{entity_id}' already exists")


class EntityModelError(DatabaseError):
    """Raised when the model of an entity does not match with the one instantiated."""


class MissingPrimaryKeyError(EntityModelError):
    """Raised when no primary key can be resolved for an entity type."""

    def __init__(self, entity_type: str) -> None:
        self.entity_type = entity_type
        super().__init__(
            f"The entity type '{entity_type}' requires a primary key: "
            "mark an attribute with Key() or name it 'id'"
        )


class PrimaryKeyValuesMismatchError(EntityModelError, ValueError):
    """Raised when the number of key values does not match the primary key definition."""

    def __init__(self, entity_type: str, expected: int, actual: int) -> None:
        self.entity_type = entity_type
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{entity_type} has {expected} primary key value(s), got {actual}"
        )


class ForeignKeyConventionError(EntityModelError):
    """Raised when a foreign key annotation points to an unknown column."""


class EntityKeyGenerationError(EntityModelError):
    """Raised when an identity key cannot be generated for the key type."""

    def __init__(self, entity_type: str, key_type: object) -> None:
        self.entity_type = entity_type
        self.key_type = key_type
        super().__init__(
            f"Cannot generate an identity value of type {key_type!r} for {entity_type}"
        )


class NotSupportedOperationError(DatabaseError):
    """Raised when a context does not support the requested operation."""


class PaginationParameterError(DatabaseError, ValueError):
    """Raised when a pagination parameter is out of range."""

    def __init__(self, parameter_name: str, value: int, constraint: str = "non-negative") -> None:
        self.parameter_name = parameter_name
        self.value = value
        super().__init__(f"{parameter_name} must be {constraint}, got {value}")
