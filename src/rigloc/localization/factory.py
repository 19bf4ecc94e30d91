"""Selection and construction of the localization engine."""

import logging

from ..config import FEATURE_DESCRIBER_TYPES, MARKER_DESCRIBER_TYPES, RigLocalizationConfig
from ..errors import ConfigurationError, InitializationError
from .features import create_describer
from .markers import MarkerLocalizer, aruco_dictionary
from .protocol import Localizer
from .retrieval import FeatureLocalizer
from .sfm_map import load_map

logger = logging.getLogger(__name__)


def select_engine(describer_types: list[str]) -> str:
    """Name of the engine serving a set of describer types.

    Returns:
        "markers" for exactly ``["aruco"]``, "features" for feature types.

    Raises:
        ConfigurationError: If marker and feature types are mixed or a type
            is unknown.
    """
    types = list(describer_types)
    if types and all(t in MARKER_DESCRIBER_TYPES for t in types):
        return "markers"
    if types and all(t in FEATURE_DESCRIBER_TYPES for t in types):
        return "features"
    raise ConfigurationError(
        f"Describer types {types} cannot be served by one localizer: use "
        f"{MARKER_DESCRIBER_TYPES} alone or any of {FEATURE_DESCRIBER_TYPES}"
    )


def create_localizer(config: RigLocalizationConfig) -> Localizer:
    """Load the map and build the localizer for the configured describers.

    Args:
        config: Full localization configuration.

    Returns:
        Localizer. Callers must check ``is_initialized()``.

    Raises:
        ConfigurationError: If the describer types are inconsistent, a
            describer is unavailable or the marker dictionary is unknown.
        InitializationError: If the map cannot be loaded.
    """
    engine = select_engine(config.describer_types)
    if engine == "markers":
        aruco_dictionary(config.markers.dictionary)
    else:
        for describer_type in config.describer_types:
            create_describer(describer_type)

    feature_types = config.describer_types if engine == "features" else []
    try:
        map_data = load_map(config.sfm_data, config.descriptor_path, feature_types)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise InitializationError(f"Cannot load map {config.sfm_data!r}: {e}") from e

    if engine == "markers":
        logger.info("Using marker localizer (%s)", config.markers.dictionary)
        return MarkerLocalizer(map_data.markers)

    logger.info("Using feature localizer (%s)", ", ".join(config.describer_types))
    return FeatureLocalizer(map_data)
