from ._regions import TextDetector
from ._regions.utils import AffineTransform, extract_regions, to_probability_map

__all__ = ["TextDetector", "AffineTransform", "extract_regions", "to_probability_map"]
