"""
Exception hierarchy for the wind farm GA.
"""


class WindfarmGAError(Exception):
    """Base class for all errors raised by windfarm_ga."""
    pass


class ConfigurationError(WindfarmGAError):
    """Raised when inputs or operator settings are invalid (before the run starts)."""
    pass


class ConfigValidationError(ConfigurationError):
    """Raised when a run configuration file is malformed."""
    pass


class EvaluationError(WindfarmGAError):
    """Raised when a layout cannot be evaluated (e.g. no turbines placed)."""
    pass
