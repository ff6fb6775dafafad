from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np
from monty.json import MSONable

from DefectClusterTools.handlers.flux import read_time_profile


class TemperatureHandler(ABC, MSONable):
    """
    Template for the temperature of the material in K.
    """

    @abstractmethod
    def get_temperature(self, position: float, time: float) -> float:
        raise NotImplementedError


class ConstantTemperatureHandler(TemperatureHandler):

    def __init__(self, temperature: float = 1000.0):
        if temperature <= 0:
            raise ValueError(f'Invalid temperature {temperature} K')
        self.temperature = temperature

    def get_temperature(self, position, time):
        return self.temperature


class TemperatureProfileHandler(TemperatureHandler):
    """
    Uniform temperature following a (time, temperature) profile, linearly
    interpolated and held constant outside of the profile.
    """

    def __init__(self, times: Sequence[float], temperatures: Sequence[float]):
        if len(times) == 0 or len(times) != len(temperatures):
            raise ValueError('The temperature profile needs as many '
                             'temperatures as times')
        if min(temperatures) <= 0:
            raise ValueError('Temperatures must be positive')
        self.times = list(times)
        self.temperatures = list(temperatures)

    @classmethod
    def from_file(cls, filename: str):
        return cls(*read_time_profile(filename))

    def get_temperature(self, position, time):
        return float(np.interp(time, self.times, self.temperatures))
