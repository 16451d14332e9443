"""HTTP API for CityPaper."""
