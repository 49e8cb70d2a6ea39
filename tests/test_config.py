import pytest

from grbl_laser.config import DEFAULT_PRE_JOB_GCODE, GrblConfig


def test_defaults():
    config = GrblConfig()
    assert config.port == "/dev/ttyUSB0"
    assert config.baudrate == 115200
    assert config.identification_line == "Grbl"
    assert config.init_delay == 5
    assert config.homing is False
    assert config.max_travel_rate == 6000
    assert config.max_cut_rate == 1200
    assert config.pre_job_gcode == DEFAULT_PRE_JOB_GCODE
    assert config.resolutions == (500.0,)
    assert config.ack_timeout is None


def test_from_dict_coerces_form_values():
    config = GrblConfig.from_dict(
        {
            "baudrate": "9600",
            "homing": "true",
            "init_delay": "0",
            "bed_width": "420",
            "resolutions": "250, 500",
            "identification_line": "",
            "ack_timeout": "none",
        }
    )
    assert config.baudrate == 9600
    assert config.homing is True
    assert config.init_delay == 0
    assert config.bed_width == 420.0
    assert config.resolutions == (250.0, 500.0)
    assert config.identification_line == ""
    assert config.ack_timeout is None


def test_from_dict_keeps_base_values():
    base = GrblConfig(port="/dev/ttyACM0", homing=True)
    config = GrblConfig.from_dict({"baudrate": 57600}, base=base)
    assert config.port == "/dev/ttyACM0"
    assert config.homing is True
    assert config.baudrate == 57600


def test_unknown_option_rejected():
    with pytest.raises(ValueError, match="max_speed"):
        GrblConfig.from_dict({"max_speed": 100})


@pytest.mark.parametrize(
    "data",
    [
        {"baudrate": "fast"},
        {"baudrate": 0},
        {"init_delay": -1},
        {"bed_height": 0},
        {"ack_timeout": -2},
        {"resolutions": []},
        {"port": ""},
        {"pre_job_gcode": "G21,G90 ; d\u00e9part"},
        {"post_job_gcode": "G0 X0 Y0 \u00b0"},
    ],
)
def test_invalid_values(data):
    with pytest.raises(ValueError):
        GrblConfig.from_dict(data)


def test_from_env():
    config = GrblConfig.from_env(
        {"GRBL_PORT": "auto", "GRBL_INIT_DELAY": "2", "GRBL_WAIT_FOR_OK": "no", "HOME": "/root"}
    )
    assert config.port == "auto"
    assert config.init_delay == 2
    assert config.wait_for_ok is False


def test_to_dict_round_trip():
    config = GrblConfig(resolutions=(250.0, 500.0), ack_timeout=None)
    data = config.to_dict()
    assert data["resolutions"] == [250.0, 500.0]
    assert GrblConfig.from_dict(data) == config
