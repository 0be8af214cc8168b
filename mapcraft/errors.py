"""
Error taxonomy for mapcraft.

Every failure is fatal at the point it happens and propagates to the caller.
The classes subclass the matching built-in exception so callers can catch
either the mapcraft type or the usual Python one.
"""


class MapcraftError(Exception):
    """Base class for all mapcraft errors."""


class MissingResourceError(MapcraftError, FileNotFoundError):
    """A sample dataset, file or path could not be found."""


class ShapeMismatchError(MapcraftError, ValueError):
    """Grid dimensions, resolutions, extents or value counts do not agree."""


class InvalidReferenceError(MapcraftError, ValueError):
    """An unknown column, coordinate reference string or option name was used."""
