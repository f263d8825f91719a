"""landcover_rf: supervised land-cover mapping from Sentinel-2, Sentinel-1, and terrain.

Builds a 10 m multi-sensor feature stack from STAC catalogs, trains a random
forest on labeled points, reports accuracy on a held-out split, and exports
the classified map.
"""

__version__ = "0.1.0"
