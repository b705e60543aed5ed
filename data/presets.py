"""
Named star formation history presets.

Each preset is a factory: looking one up builds a new SFHModel, so a
caller can pass it into a pipeline and refine it without affecting any
other caller.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from wdlf import constants
from wdlf.sfh import SFHModel

GYR = constants.GYR


def _initial_guess():
    return SFHModel.constant(constants.INITIAL_GUESS_T_MIN,
                             constants.INITIAL_GUESS_T_MAX,
                             constants.INITIAL_GUESS_N_BINS,
                             constants.INITIAL_GUESS_RATE)


def _constant():
    return SFHModel.constant(0.0, 13.0 * GYR, 26, 1.5e-12)


def _exponential_decay():
    return SFHModel.exponential_decay(0.0, 13.0 * GYR, 26, 5e-13, -6.0 * GYR)


def _single_burst():
    return SFHModel.single_burst(0.0, 13.0 * GYR, 26, 2.0 * GYR, 4.0 * GYR,
                                 5e-12)


def _two_bin_prior():
    return SFHModel([1e9, 5e9], [2e9, 6e9], [1e-12, 1e-12])


SFH_PRESETS = {
    "initial_guess": {
        "name": "Initial guess",
        "description": "Flat 1.5e-12 /yr/pc^3 over 0 - 14.5 Gyr, 50 bins",
        "factory": _initial_guess,
    },
    "constant": {
        "name": "Constant",
        "description": "Flat 1.5e-12 /yr/pc^3 over 0 - 13 Gyr, 26 bins",
        "factory": _constant,
    },
    "exponential_decay": {
        "name": "Exponential decay",
        "description": "5e-13 /yr/pc^3 at 13 Gyr, rising towards the present on 6 Gyr",
        "factory": _exponential_decay,
    },
    "single_burst": {
        "name": "Single burst",
        "description": "5e-12 /yr/pc^3 between 2 and 4 Gyr, zero elsewhere",
        "factory": _single_burst,
    },
    "two_bin_prior": {
        "name": "Two-bin prior",
        "description": "1e-12 /yr/pc^3 in 0 - 2 Gyr and 2 - 8 Gyr",
        "factory": _two_bin_prior,
    },
}


def list_sfh_presets():
    """Metadata for every preset, without building them."""
    return [{"id": key, "name": p["name"], "description": p["description"]}
            for key, p in SFH_PRESETS.items()]


def get_sfh_preset(preset_id):
    """Build a fresh SFHModel for a preset, or None if unknown."""
    preset = SFH_PRESETS.get(preset_id)
    if preset is None:
        return None
    return preset["factory"]()
