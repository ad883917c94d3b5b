"""
Hedonic price model for Philadelphia home sales: spatial features,
OLS fit, cross-validation and residual autocorrelation.
"""

from phl_hedonic.features import FeatureKind, FeatureSpec, attach_features
from phl_hedonic.pipeline import FEATURE_SPECS, run

__all__ = ["FEATURE_SPECS", "FeatureKind", "FeatureSpec", "attach_features", "run"]
