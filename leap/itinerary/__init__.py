"""
Itinerary generation: category prompt -> remote model -> strict parse, with a
deterministic fallback itinerary per category.
"""
from leap.itinerary.generator import ItineraryGenerator, PendingItinerary
from leap.itinerary.parser import parse_itinerary, strip_code_fence
from leap.itinerary.templates import CategoryTemplate, load_templates

__all__ = [
    "ItineraryGenerator",
    "PendingItinerary",
    "CategoryTemplate",
    "load_templates",
    "parse_itinerary",
    "strip_code_fence",
]
