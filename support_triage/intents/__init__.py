"""Intent catalog, classification and required-info checks."""

from . import schemas, taxonomy

__all__ = ["schemas", "taxonomy"]
