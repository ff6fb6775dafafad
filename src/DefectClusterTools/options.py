from typing import Dict, List, Sequence

from monty.json import MSONable
from monty.serialization import loadfn, dumpfn

PROCESSES = ('diff', 'advec', 'modifiedTM', 'movingSurface', 'bursting',
             'reaction')
MATERIALS = ('W221', 'Fuel')

# Parameter file key -> (attribute, parser)
PARAMETERS = {
    'networkFile': ('network_file', str),
    'netParam': ('net_param', lambda v: [int(n) for n in v.split()]),
    'startTemp': ('start_temp', float),
    'tempFile': ('temp_file', str),
    'flux': ('flux', float),
    'fluxFile': ('flux_file', str),
    'material': ('material', str),
    'initialV': ('initial_v', float),
    'voidPortion': ('void_portion', float),
    'process': ('process', str.split),
    'grouping': ('grouping', lambda v: [int(n) for n in v.split()]),
    'numMoments': ('num_moments', int),
    'dissociation': ('dissociation',
                     lambda v: v.strip().lower() in ('true', '1', 'yes')),
    'grid': ('grid', lambda v: [int(v.split()[0]), float(v.split()[1])]),
}


class Options(MSONable):
    """
    Parameters of a simulation.

    Options are usually read from a parameter file of 'key=value' lines,
    for instance

        networkFile=networkInit.h5
        startTemp=1000
        flux=4.0e7
        material=W221
        process=diff advec modifiedTM reaction
        grouping=31 4 1

    or from a json file written by save().

    Args:
        network_file (str, None): HDF5 file holding the network, the grid and
            possibly concentrations to restart from
        net_param (Sequence[int], None): (maxHe, maxV, maxI) of the network
            generated when no network file is given
        start_temp (float): Constant temperature in K
        temp_file (str, None): Two-column (time, temperature) profile used
            instead of start_temp
        flux (float): Amplitude of the incident helium flux in He/nm^2/s
        flux_file (str, None): Two-column (time, amplitude) profile
        material (str): 'W221' or 'Fuel', selects the implantation profile
        initial_v (float): Initial concentration of single vacancies
        void_portion (float): Percentage of the grid in front of the surface
            when the surface can move
        process (Sequence[str], None): The processes to simulate among
            'diff', 'advec', 'modifiedTM', 'movingSurface', 'bursting' and
            'reaction'. Defaults to all of them but 'movingSurface'.
        grouping (Sequence[int], None): (groupingMin, groupingWidthA,
            groupingWidthB). No grouping by default.
        num_moments (int): 1 (helium) or 2 (helium and vacancy) moments per
            super cluster
        dissociation (bool): Whether the clusters dissociate
        grid (Sequence, None): (nx, hx), used when the network file has no
            header
    """

    def __init__(self,
                 network_file: str | None = None,
                 net_param: Sequence[int] | None = None,
                 start_temp: float = 1000.0,
                 temp_file: str | None = None,
                 flux: float = 1.0,
                 flux_file: str | None = None,
                 material: str = 'W221',
                 initial_v: float = 0.0,
                 void_portion: float = 50.0,
                 process: Sequence[str] | None = None,
                 grouping: Sequence[int] | None = None,
                 num_moments: int = 1,
                 dissociation: bool = True,
                 grid: Sequence | None = None):
        if process is None:
            process = ['diff', 'advec', 'modifiedTM', 'bursting', 'reaction']
        unknown = set(process) - set(PROCESSES)
        if unknown:
            raise ValueError(f'Unknown processes {sorted(unknown)}')
        if material not in MATERIALS:
            raise ValueError(f'Unknown material {material}, expected one of '
                             f'{MATERIALS}')
        if grouping is not None and len(grouping) != 3:
            raise ValueError('grouping expects groupingMin, groupingWidthA '
                             'and groupingWidthB')
        if net_param is not None and len(net_param) != 3:
            raise ValueError('netParam expects maxHe, maxV and maxI')
        if grid is not None and len(grid) != 2:
            raise ValueError('grid expects nx and hx')
        if start_temp <= 0:
            raise ValueError(f'Invalid temperature {start_temp} K')
        if not 0 <= void_portion < 100:
            raise ValueError('voidPortion must be a percentage below 100')

        self.network_file = network_file
        self.net_param = list(net_param) if net_param is not None else None
        self.start_temp = start_temp
        self.temp_file = temp_file
        self.flux = flux
        self.flux_file = flux_file
        self.material = material
        self.initial_v = initial_v
        self.void_portion = void_portion
        self.process = list(process)
        self.grouping = list(grouping) if grouping is not None else None
        self.num_moments = num_moments
        self.dissociation = dissociation
        self.grid = list(grid) if grid is not None else None

    @classmethod
    def from_parameters(cls, lines: Sequence[str]) -> 'Options':
        """
        Parses 'key=value' lines. Empty lines and lines starting with '#' are
        ignored.
        """
        kwargs = {}
        for line in lines:
            line = line.strip()
            if len(line) == 0 or line.startswith('#'):
                continue
            if '=' not in line:
                raise ValueError(f'Invalid parameter line: {line}')
            key, value = (s.strip() for s in line.split('=', 1))
            if key not in PARAMETERS:
                raise ValueError(f'Unknown parameter {key}')
            attribute, parse = PARAMETERS[key]
            try:
                kwargs[attribute] = parse(value)
            except (ValueError, IndexError) as e:
                raise ValueError(f'Invalid value for {key}: {value}') from e
        return cls(**kwargs)

    @classmethod
    def from_file(cls, filename: str) -> 'Options':
        """
        Reads a json file written by save() or a parameter file.
        """
        if filename.endswith('.json'):
            options = loadfn(filename)
            if isinstance(options, dict):
                options = cls(**options)
            return options
        with open(filename, 'r') as f:
            return cls.from_parameters(f.readlines())

    def save(self, filename: str) -> None:
        dumpfn(self, filename)

    def to_parameters(self) -> List[str]:
        """
        Gets the 'key=value' lines describing these options.
        """
        lines = []
        for key, (attribute, _) in PARAMETERS.items():
            value = getattr(self, attribute)
            if value is None:
                continue
            if isinstance(value, bool):
                value = str(value).lower()
            elif isinstance(value, list):
                value = ' '.join(str(v) for v in value)
            lines.append(f'{key}={value}')
        return lines

    def has_process(self, name: str) -> bool:
        return name in self.process

    def network_properties(self) -> Dict[str, str]:
        """
        Gets the properties handed to the reaction network.
        """
        properties = {
            'dissociationsEnabled': str(self.dissociation).lower(),
            'numMoments': str(self.num_moments),
        }
        if self.grouping is not None:
            properties['groupingMin'] = str(self.grouping[0])
            properties['groupingWidthA'] = str(self.grouping[1])
            properties['groupingWidthB'] = str(self.grouping[2])
        return properties
