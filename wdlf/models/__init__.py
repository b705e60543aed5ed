"""
Physics models consumed by the inversion core as opaque callables.

    PowerLawImf        - progenitor mass draws
    Kalirai2008Ifmr    - initial-final mass relation (linear)
    Catalan2008Ifmr    - initial-final mass relation (two-part linear)
    Hurley2000Lifetime - pre-white-dwarf lifetime
    MestelCooling      - analytic white dwarf cooling magnitudes

All callables accept numpy arrays and operate element-wise.
"""

from wdlf.models.imf import PowerLawImf
from wdlf.models.ifmr import Kalirai2008Ifmr, Catalan2008Ifmr, IFMRS
from wdlf.models.lifetime import Hurley2000Lifetime
from wdlf.models.cooling import MestelCooling

__all__ = [
    "PowerLawImf",
    "Kalirai2008Ifmr",
    "Catalan2008Ifmr",
    "IFMRS",
    "Hurley2000Lifetime",
    "MestelCooling",
]
