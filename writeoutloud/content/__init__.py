from .characters import get_character, list_characters, load_characters, parse_character

__all__ = ["get_character", "list_characters", "load_characters", "parse_character"]
