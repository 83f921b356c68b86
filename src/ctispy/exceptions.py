"""
Exception types for ctispy.
"""


class ConfigurationError(ValueError):
    """
    Raised when dimensions or optical parameters are inconsistent.

    Every check runs before any computation starts, so no partially built
    system matrix or image is ever returned alongside this error.
    """
