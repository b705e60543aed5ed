"""
Constants and defaults for the WDLF inversion.

Time is measured in years throughout, masses in solar masses, rates in
stars per year per cubic parsec and luminosity function densities in
stars per magnitude per cubic parsec.

IMPORTANT: No unicode characters allowed in this file (Windows charmap constraint).
"""

# Years per Gyr
GYR = 1.0e9

# Bolometric magnitude of the Sun (IAU 2015 B2 nominal)
M_BOL_SUN = 4.74

# Solar metallicity used as the zero point of the Hurley zeta parameter
Z_SUN = 0.02

# Mass range over which stars are drawn from the IMF. Stars below the
# lower limit have main sequence lifetimes longer than the age of the
# Galaxy; stars above the upper limit end as neutron stars.
M_LOWER = 0.6
M_UPPER = 7.0

# Salpeter-like IMF exponent
IMF_EXPONENT = -2.3

# Photometric bands understood by the cooling models
BAND_M_BOL = "M_BOL"

# Atmosphere types
ATMOSPHERE_H = "H"
ATMOSPHERE_HE = "He"

# Scale factor making the median absolute deviation a consistent
# estimator of the standard deviation for normally distributed data.
MAD_SCALE = 1.4826

# Flat initial guess: 50 bins over 0 - 14.5 Gyr at 1.5e-12 stars/yr/pc^3
INITIAL_GUESS_T_MIN = 0.0
INITIAL_GUESS_T_MAX = 14.5 * GYR
INITIAL_GUESS_N_BINS = 50
INITIAL_GUESS_RATE = 1.5e-12

# Modelling defaults
DEFAULT_W_H = 1.0
DEFAULT_SIGMA_M = 0.1
DEFAULT_Z = 0.017
DEFAULT_SIGMA_Z = 0.001
DEFAULT_Y = 0.279
DEFAULT_SIGMA_Y = 0.001

# Inversion defaults
DEFAULT_TARGET_POPULATION = 20000
DEFAULT_MIN_ITERATIONS = 5
DEFAULT_CONVERGENCE_THRESHOLD = 0.01
DEFAULT_WINDOW = 5
DEFAULT_MAX_ITERATIONS = 200
DEFAULT_MAX_ATTEMPTS_FACTOR = 1000
DEFAULT_BATCH_SIZE = 50000
DEFAULT_MASS_BINS = 40

# Bootstrap defaults
DEFAULT_REALIZATIONS = 200

# Number of strips used when averaging the main sequence turnoff mass
# across a formation time bin.
N_TURNOFF_STRIPS = 10
