"""Clinical Gateway.

Backend gateway that resolves authenticated callers to patient records on an
ontology-object platform and serves their clinical data through a cached,
normalized read API.
"""

__version__ = "1.0.0"
