"""Exceptions raised across the migration tool."""


class MigrationError(Exception):
    """Base class for every error raised by ndfc_migrate."""


class ConfigError(MigrationError):
    """Missing or invalid settings."""


class InventoryError(MigrationError):
    """Inventory or fabric definition file could not be used."""


class CollectionError(MigrationError):
    """SSH fact collection failed for a switch."""

    def __init__(self, hostname: str, message: str):
        self.hostname = hostname
        super().__init__(f"{hostname}: {message}")


class NDFCError(MigrationError):
    """Any failure talking to the NDFC controller."""


class NDFCConnectionError(NDFCError):
    """The controller could not be reached."""


class NDFCAPIError(NDFCError):
    """The controller answered with a non-2xx status."""

    def __init__(self, method: str, path: str, status_code: int, message: str = ""):
        self.method = method
        self.path = path
        self.status_code = status_code
        self.message = message
        super().__init__(f"{method} {path} returned {status_code}: {message}")
