from DefectClusterTools.handlers.base import ProcessHandler
from DefectClusterTools.handlers.flux import (FluxHandler, W221FitFluxHandler,
                                              UniformFitFluxHandler)
from DefectClusterTools.handlers.diffusion import DiffusionHandler
from DefectClusterTools.handlers.advection import AdvectionHandler
from DefectClusterTools.handlers.trap_mutation import TrapMutationHandler
from DefectClusterTools.handlers.bursting import BurstingHandler
from DefectClusterTools.handlers.temperature import (
    TemperatureHandler, ConstantTemperatureHandler, TemperatureProfileHandler)
