#########################################################################################
##
##                                 ERROR HIERARCHY
##                                   (errors.py)
##
##         Exceptions raised by the profiling engine. Configuration problems are
##         reported before any optimiser call; interpolation problems are confined
##         to the parameter (or pair) that produced them.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Any, Mapping


# EXCEPTIONS ============================================================================

class ProfileLikelihoodError(Exception):
    """Base exception for profiling failures.

    Parameters
    ----------
    message : str
        Human-readable description.
    context : mapping, optional
        Extra key/value details (parameter index, option name, ...).
    """

    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.context = dict(context) if context else {}


    def log_message(self) -> str:
        if not self.context:
            return str(self)
        return f"{self}: {self.context}"


class ConfigurationError(ProfileLikelihoodError, ValueError):
    """Invalid option, parameter selection or bound, detected before any work starts."""


class InterpolationError(ProfileLikelihoodError):
    """A spline or gridded interpolant could not be built from the profile data."""


__all__ = [
    "ProfileLikelihoodError",
    "ConfigurationError",
    "InterpolationError",
]
