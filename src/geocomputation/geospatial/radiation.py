"""Blackbody radiation: emitted energy and peak wavelength against temperature."""

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from geocomputation.config.constants import STEFAN_BOLTZMANN, WIEN_CONSTANT


def _temperatures(temperature: ArrayLike) -> NDArray[np.floating]:
    t = np.asarray(temperature, dtype="float64")
    if np.any(t <= 0):
        raise ValueError("Temperatures must be positive (kelvin)")
    return t


def radiant_exitance(temperature: ArrayLike) -> NDArray[np.floating]:
    """Total emitted radiation in W m^-2 (Stefan-Boltzmann law)."""
    return STEFAN_BOLTZMANN * _temperatures(temperature) ** 4


def peak_wavelength(temperature: ArrayLike) -> NDArray[np.floating]:
    """Wavelength of maximum emission in micrometres (Wien's displacement law)."""
    return WIEN_CONSTANT / _temperatures(temperature)


def blackbody_table(start: int = 1, stop: int = 1000) -> pd.DataFrame:
    """Tabulate radiation and peak wavelength for each integer temperature.

    :param start: First temperature in kelvin
    :param stop: Last temperature in kelvin, inclusive
    :returns: DataFrame with temperature, m and lambda columns
    """
    if stop < start:
        raise ValueError(f"stop ({stop}) must not be below start ({start})")
    temperature = np.arange(start, stop + 1)
    return pd.DataFrame(
        {
            "temperature": temperature,
            "m": radiant_exitance(temperature),
            "lambda": peak_wavelength(temperature),
        }
    )
