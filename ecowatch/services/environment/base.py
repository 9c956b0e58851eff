from abc import ABC, abstractmethod
import logging

from ecowatch.models.environment import EnvironmentalSnapshot

logger = logging.getLogger(__name__)


class EnvironmentalProvider(ABC):
    """
    Abstract weather / air-quality provider.

    Contract:
    - Input: latitude, longitude (floats)
    - Output: EnvironmentalSnapshot; readings the provider could not get are None
    - Raises NetworkError when nothing at all could be fetched
    - Blocking; callers run it in an executor
    - Implementations should enforce a network timeout <= ENVIRONMENT_TIMEOUT_SECONDS
    """

    name = "unknown"

    @abstractmethod
    def fetch(self, latitude: float, longitude: float) -> EnvironmentalSnapshot:
        raise NotImplementedError
