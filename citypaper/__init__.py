"""CityPaper - styled city map wallpaper renderer."""

__version__ = "0.1.0"
