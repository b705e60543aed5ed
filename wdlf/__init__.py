"""
WDLF inversion core.

Recovers a star formation history from an observed white dwarf
luminosity function by iterating a Monte Carlo forward model of the
Galactic white dwarf population.
"""

__version__ = "0.1.0"
