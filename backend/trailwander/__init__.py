"""
Trail Wanderer backend package.

Avoid side effects here: no network, DB, or logging setup.

Run the API with the app factory:

    python -m flask --app trailwander.main:create_app run
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
