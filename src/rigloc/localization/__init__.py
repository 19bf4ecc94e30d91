"""Localization engines and the parameters they consume."""

from .factory import create_localizer, select_engine
from .markers import MarkerLocalizer
from .parameters import LocalizationParameters, build_localization_parameters
from .protocol import Localizer
from .retrieval import FeatureLocalizer
from .sfm_map import MapData, load_map
from .types import Correspondences, LocalizationResult, RigLocalization

__all__ = [
    "Localizer",
    "LocalizationParameters",
    "build_localization_parameters",
    "create_localizer",
    "select_engine",
    "FeatureLocalizer",
    "MarkerLocalizer",
    "MapData",
    "load_map",
    "Correspondences",
    "LocalizationResult",
    "RigLocalization",
]
