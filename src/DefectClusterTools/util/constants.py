from math import pi, sqrt

# boltzmann constant, in eV/K
kBoltzmann = 8.6173303E-5

# lattice parameter of tungsten, in nm
tungstenLatticeConstant = 0.31700

# atomic volume of bcc tungsten, in nm^3
atomicVolume = 0.5 * tungstenLatticeConstant**3

# number of atoms per nm^3
atomicDensity = 1.0 / atomicVolume

# reaction radius of the single helium atom and the single interstitial, in nm
heliumRadius = 0.3
interstitialRadius = sqrt(3.0) / 4.0 * tungstenLatticeConstant

# prefactor of the vacancy cluster radius, in nm
vacancyRadiusFactor = (3.0 * atomicVolume / (4.0 * pi))**(1.0 / 3.0)

# distance below which a grid point is considered to lie on a sink, in nm
sinkTolerance = 1.0e-3
