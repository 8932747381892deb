class LatticeDemoError(Exception):
    """Base class for errors raised while composing the lattice infrastructure."""


class ConfigurationError(LatticeDemoError):
    """Raised when exposure or membership options are invalid or incomplete.

    Always raised before any construct is added to the tree, so a failed call
    leaves nothing partially declared.
    """
