from importlib import metadata

try:
    __version__ = metadata.version("proflik")
except Exception:
    __version__ = "unknown"

from .errors import ProfileLikelihoodError, ConfigurationError, InterpolationError
from .problem import LikelihoodProblem, LikelihoodSolution, mle, gaussian_loglikelihood
from .optimiser import Optimiser, OptimiserResult
from .options import (
    ProfileOptions,
    BivariateProfileOptions,
    IntervalMethod,
    RegionMethod,
    MinStepsFallback,
    SplineAlgorithm,
    Extrapolation,
    EstimateMethod,
    BivariateEstimateMethod,
    get_chisq_threshold,
)
from .ranges import construct_profile_ranges, ProfileGrid, LayerIterator
from .intervals import ConfidenceInterval, ConfidenceRegion, ProfileSpline
from .results import (
    ProfileSeries,
    ProfileLikelihoodSolution,
    ProfileSurface,
    BivariateProfileLikelihoodSolution,
)
from .univariate import profile, replace_profile, refine_profile
from .bivariate import bivariate_profile, replace_bivariate_profile
from .utils.logger import LoggerManager
