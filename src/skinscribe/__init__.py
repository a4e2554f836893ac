"""skinscribe — bake annotation fields into PDF pages with an audit digest."""

__version__ = "0.1.0"
