from .settings import DEFAULT_OBJECTS, GardenSettings, get_settings

__all__ = ["DEFAULT_OBJECTS", "GardenSettings", "get_settings"]
