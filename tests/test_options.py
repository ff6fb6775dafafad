from DefectClusterTools.options import Options

import pytest

PARAMETERS = """
# Helium implantation in tungsten
networkFile=networkInit.h5
startTemp=900
flux=4.0e7
material=Fuel
initialV=1e-5
voidPortion=40
process=diff modifiedTM movingSurface reaction
grouping=31 4 2
numMoments=2
dissociation=false
grid=20 0.5
"""


def test_defaults():
    options = Options()
    assert options.start_temp == 1000.0
    assert options.material == 'W221'
    assert options.process == [
        'diff', 'advec', 'modifiedTM', 'bursting', 'reaction'
    ]
    assert not options.has_process('movingSurface')
    assert options.network_properties() == {
        'dissociationsEnabled': 'true',
        'numMoments': '1'
    }


def test_from_parameters():
    options = Options.from_parameters(PARAMETERS.splitlines())
    assert options.network_file == 'networkInit.h5'
    assert options.start_temp == 900.0
    assert options.flux == 4.0e7
    assert options.material == 'Fuel'
    assert options.initial_v == 1e-5
    assert options.void_portion == 40.0
    assert options.has_process('movingSurface')
    assert not options.has_process('advec')
    assert options.grid == [20, 0.5]
    assert options.network_properties() == {
        'dissociationsEnabled': 'false',
        'numMoments': '2',
        'groupingMin': '31',
        'groupingWidthA': '4',
        'groupingWidthB': '2'
    }

    new_options = Options.from_parameters(options.to_parameters())
    assert new_options.as_dict() == options.as_dict()


@pytest.mark.parametrize('lines', [
    ['startTemp'],
    ['unknownKey=1'],
    ['startTemp=hot'],
    ['grid=20'],
    ['process=diff sputtering'],
    ['material=Iron'],
    ['grouping=31 4'],
    ['netParam=8 8'],
    ['voidPortion=100'],
    ['startTemp=0'],
])
def test_invalid_parameters(lines):
    with pytest.raises(ValueError):
        Options.from_parameters(lines)


def test_files(tmp_path):
    parameter_file = tmp_path / 'params.txt'
    parameter_file.write_text(PARAMETERS)
    options = Options.from_file(str(parameter_file))
    assert options.grouping == [31, 4, 2]

    options.save(str(tmp_path / 'options.json'))
    new_options = Options.from_file(str(tmp_path / 'options.json'))
    assert isinstance(new_options, Options)
    assert new_options.as_dict() == options.as_dict()
