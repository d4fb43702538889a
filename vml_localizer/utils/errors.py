# vml_localizer/utils/errors.py

class LocalizerError(Exception):
    """Base error of the localizer."""
    pass


class ConfigurationError(LocalizerError):
    """Tile geometry or other required parameters are missing or invalid."""
    pass


class UnsynchronizedStateError(LocalizerError):
    """No particle snapshot is available for the requested timestamp."""
    pass


class DegenerateInputWarning(UserWarning):
    """Input that is processed with a fallback value (zero-length segment, large timestamp gap)."""
    pass
