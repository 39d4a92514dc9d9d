from tourlink.models.site import Site
from tourlink.models.viator import ViatorDestination, ViatorTour

__all__ = [
    "Site",
    "ViatorDestination",
    "ViatorTour",
]
