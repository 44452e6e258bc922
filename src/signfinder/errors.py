"""SignFinder exceptions. Only construction-time failures raise; per-frame paths return values."""


class SignFinderError(RuntimeError):
    """Base class for sign finder failures."""


class ConfigError(SignFinderError):
    """Configuration file missing, unreadable or incomplete."""


class DetectorInitError(SignFinderError):
    """A classifier or proposer model could not be loaded."""
