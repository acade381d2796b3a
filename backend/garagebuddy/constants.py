"""Shared message and role constants."""

ADMINISTRATOR_ROLE_NAME = "Administrator"

ERROR_GENERAL = "Something went wrong. Please try again later."
ERROR_CANNOT_BE_NULL_OR_WHITESPACE = "{} cannot be null or whitespace."
ERROR_NO_ENTITY_WITH_PROPERTY_FOUND = "No {} with the given {} was found."
ERROR_TABLE_NAME_REQUIRED = "Table name cannot be null or whitespace."

ERROR_DUPLICATE_USER_NAME = "Username '{}' is already taken."
ERROR_PASSWORD_TOO_SHORT = "Passwords must be at least {} characters."
ERROR_INVALID_TOKEN = "Invalid token."
ERROR_ROLE_NOT_FOUND = "Role {} does not exist."
ERROR_USER_ALREADY_IN_ROLE = "User already in role '{}'."

ERROR_GARAGE_NOT_FOUND = ERROR_NO_ENTITY_WITH_PROPERTY_FOUND.format("garage", "id")

SUCCESS_GARAGE_CREATED = "Garage created."
SUCCESS_GARAGE_EDITED = "Garage updated."
SUCCESS_PASSWORD_RESET = "Password has been reset."
