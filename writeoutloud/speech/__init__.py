from .matching import matches_expected, normalize_name

__all__ = ["matches_expected", "normalize_name"]
