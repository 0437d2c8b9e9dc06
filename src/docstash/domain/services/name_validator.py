"""Name validation for collections and indexed fields.

Collection names become table names, and indexed field names become
column and index names, so both are restricted to plain identifiers.
"""

import re

from docstash.core.exceptions import ValidationError

# Pattern for valid collection names
NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

# Pattern for fields usable in expression and full text indexes
INDEX_FIELD_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# Table name prefixes owned by SQLite and the full text index manager
RESERVED_PREFIXES = ("sqlite_", "fts_")

# Suffix of companion result cache tables
CACHE_SUFFIX = "_cache"


class NameValidator:
    """Validator for collection and index field names."""

    MIN_NAME_LENGTH = 1
    MAX_NAME_LENGTH = 64

    @classmethod
    def validate_name(cls, name: str, allow_cache_suffix: bool = False) -> list[str]:
        """Validate a collection or table name.

        Args:
            name: The name to validate.
            allow_cache_suffix: Accept names of companion cache tables.

        Returns:
            List of error messages (empty if valid).
        """
        if not isinstance(name, str) or not name:
            return ["Collection name is required"]

        errors = []
        if len(name) > cls.MAX_NAME_LENGTH:
            errors.append(f"Collection name must be at most {cls.MAX_NAME_LENGTH} characters")

        if not NAME_PATTERN.match(name):
            errors.append(
                "Collection name must start with a letter and contain only "
                "alphanumeric characters and underscores"
            )

        lowered = name.lower()
        if lowered.startswith(RESERVED_PREFIXES):
            errors.append(f'Collection name "{name}" uses a reserved prefix')
        if not allow_cache_suffix and lowered.endswith(CACHE_SUFFIX):
            errors.append(f'Collection name "{name}" uses the reserved suffix "{CACHE_SUFFIX}"')

        return errors

    @classmethod
    def normalize_collection_name(cls, name: str) -> str:
        """Validate a collection name and return its lower-cased table name.

        Raises:
            ValidationError: If the name is not a valid collection name.
        """
        errors = cls.validate_name(name)
        if errors:
            raise ValidationError("; ".join(errors))
        return name.lower()

    @classmethod
    def is_valid_table_name(cls, name: str) -> bool:
        return not cls.validate_name(name, allow_cache_suffix=True)

    @classmethod
    def is_valid_index_field(cls, field: str) -> bool:
        return (
            isinstance(field, str)
            and cls.MIN_NAME_LENGTH <= len(field) <= cls.MAX_NAME_LENGTH
            and INDEX_FIELD_PATTERN.match(field) is not None
        )

    @classmethod
    def validate_index_fields(cls, fields: list[str] | tuple[str, ...]) -> None:
        """Validate the fields of a full text index.

        Raises:
            ValidationError: If no fields are given or any field is invalid.
        """
        if not fields:
            raise ValidationError("At least one field is required for a full text index")
        for field in fields:
            if not cls.is_valid_index_field(field):
                raise ValidationError(
                    f'Invalid index field "{field}"; must be 1-{cls.MAX_NAME_LENGTH} '
                    "alphanumeric or underscore characters"
                )
