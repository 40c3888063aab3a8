"""
Built-in exposure scenario: ingestion of a waterborne pathogen.

    conc        U  lognormal   oocysts per litre in source water
    log_removal U  truncnorm   treatment log10 reduction, left-truncated at 0
    volume      V  lognormal   litres of unboiled tap water drunk per day
    events      V  empirical   drinking occasions counted per day
    r           0              exponential dose-response parameter

    dose   = conc * 10**(-log_removal) * volume * events / 4
    risk   = 1 - exp(-r * dose)
"""

from .model import ExposureModel
from .sampler import Distribution

DRINKING_WATER = [
    ("conc", "U", "lognormal", {"meanlog": -1.0, "sdlog": 0.8}),
    ("log_removal", "U", "truncnorm", {"mean": 2.0, "sd": 0.5, "lower": 0.0}),
    ("volume", "V", "lognormal", {"meanlog": 0.0, "sdlog": 0.6}),
    ("events", "V", Distribution("empirical", {
        "values": [1, 2, 3, 4, 5, 6],
        "probabilities": [5, 15, 30, 25, 15, 10],
    })),
    ("r", "0", 0.0042),
    ("dose", "derived", "conc * 10**(-log_removal) * volume * events / 4"),
]


def drinking_water_model(output: str = "dose") -> ExposureModel:
    """The drinking-water scenario with ``dose`` (default) or ``risk`` as output."""
    if output == "dose":
        return ExposureModel.from_definitions(DRINKING_WATER, "dose", name="drinking_water_dose")
    if output == "risk":
        return ExposureModel.from_definitions(
            DRINKING_WATER, "1 - exp(-r * dose)", name="drinking_water_risk"
        )
    raise ValueError(f"Unknown output '{output}'. Choose from: ['dose', 'risk']")
