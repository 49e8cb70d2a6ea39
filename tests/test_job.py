import numpy as np
import pytest
from PIL import Image

from grbl_laser.config import GrblConfig
from grbl_laser.job import (
    Job,
    LaserProperty,
    LineTo,
    MoveTo,
    RasterPart,
    SetProperty,
    VectorPart,
    validate_job,
)
from grbl_laser.protocol import IllegalJobError


@pytest.fixture
def config():
    return GrblConfig(bed_width=100, bed_height=50, resolutions=(500.0, 254.0))


def cut(*commands, dpi=500.0):
    return VectorPart(commands=commands, dpi=dpi)


def test_from_dict_vector():
    job = Job.from_dict(
        {
            "name": "logo",
            "start": [2, 3],
            "parts": [
                {
                    "type": "vector",
                    "dpi": 254,
                    "commands": [
                        {"type": "property", "power": 80, "speed": 50},
                        {"type": "move", "x": 0, "y": 0},
                        {"type": "line", "x": 100, "y": 0},
                    ],
                }
            ],
        }
    )
    assert job.name == "logo"
    assert (job.start_x, job.start_y) == (2.0, 3.0)
    part = job.parts[0]
    assert part.dpi == 254.0
    assert part.commands == (
        SetProperty(LaserProperty(power=80, speed=50, focus=0)),
        MoveTo(0, 0),
        LineTo(100, 0),
    )


def test_from_dict_raster(tmp_path):
    path = tmp_path / "dot.png"
    Image.new("L", (4, 2), color=255).save(path)

    job = Job.from_dict({"parts": [{"type": "raster", "image": str(path), "x": 5, "power": 60}]})

    part = job.parts[0]
    assert isinstance(part, RasterPart)
    assert part.pixels.shape == (2, 4)
    assert part.x == 5
    assert part.laser_property == LaserProperty(power=60, speed=100, focus=0)


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"name": "x"},
        {"parts": [{"type": "circle"}]},
        {"parts": [{"type": "raster"}]},
        {"parts": [{"type": "vector", "commands": [{"type": "arc"}]}]},
        {"parts": [{"type": "vector", "commands": [{"type": "move", "x": 1}]}]},
        {"parts": [{"type": "vector", "commands": ["move"]}]},
        {"parts": ["vector"]},
        {"parts": [{"type": "vector", "dpi": "fine"}]},
        {"parts": [], "start": [1]},
        {"parts": [], "start": 5},
        {"parts": [{"type": "raster", "image": "/nonexistent/picture.png"}]},
    ],
)
def test_from_dict_rejects_bad_input(data):
    with pytest.raises(IllegalJobError):
        Job.from_dict(data)


def test_validate_accepts_good_job(config):
    job = Job(parts=(cut(MoveTo(0, 0), SetProperty(LaserProperty(power=10, speed=10)), LineTo(100, 100)),))
    validate_job(job, config)


def test_validate_empty_job(config):
    with pytest.raises(IllegalJobError, match="no parts"):
        validate_job(Job(parts=()), config)


def test_validate_unsupported_resolution(config):
    job = Job(parts=(cut(MoveTo(0, 0), dpi=300.0),))
    with pytest.raises(IllegalJobError, match="300.0 DPI"):
        validate_job(job, config)


def test_validate_outside_bed(config):
    # 10 px per mm at 254 DPI
    validate_job(Job(parts=(cut(MoveTo(990, 490), dpi=254.0),)), config)
    with pytest.raises(IllegalJobError, match="outside"):
        validate_job(Job(parts=(cut(MoveTo(0, 600), dpi=254.0),)), config)
    with pytest.raises(IllegalJobError, match="outside"):
        validate_job(Job(parts=(cut(MoveTo(-1, 0)),)), config)


def test_validate_power_range(config):
    job = Job(parts=(cut(SetProperty(LaserProperty(power=120, speed=50))),))
    with pytest.raises(IllegalJobError, match="power 120"):
        validate_job(job, config)


def test_validate_raster_speed_range(config):
    part = RasterPart(pixels=np.zeros((1, 1), dtype=np.uint8), laser_property=LaserProperty(speed=-5))
    with pytest.raises(IllegalJobError, match="speed"):
        validate_job(Job(parts=(part,)), config)


def test_validate_cut_before_property(config):
    job = Job(parts=(cut(MoveTo(0, 0), LineTo(10, 0)),))
    with pytest.raises(IllegalJobError, match="before setting"):
        validate_job(job, config)


def test_validate_property_from_earlier_part(config):
    first = cut(SetProperty(LaserProperty(power=50, speed=50)))
    second = cut(MoveTo(0, 0), LineTo(10, 0))
    validate_job(Job(parts=(first, second)), config)


def test_apply_start_point():
    vector = cut(MoveTo(600, 600), LineTo(1000, 600), dpi=254.0)
    raster = RasterPart(pixels=np.zeros((2, 2), dtype=np.uint8), x=100, y=100, dpi=254.0)
    job = Job(parts=(vector, raster), start_x=5, start_y=10)

    moved = job.apply_start_point()

    assert moved.parts[0].commands == (MoveTo(550, 500), LineTo(950, 500))
    assert (moved.parts[1].x, moved.parts[1].y) == (50, 0)
    assert (moved.start_x, moved.start_y) == (0.0, 0.0)
    # original job untouched
    assert job.parts[0].commands[0] == MoveTo(600, 600)


def test_apply_start_point_noop():
    job = Job(parts=(cut(MoveTo(1, 1)),))
    assert job.apply_start_point() is job


def test_bounds():
    assert cut(SetProperty(LaserProperty())).bounds() is None
    assert cut(MoveTo(5, 1), LineTo(2, 8)).bounds() == (2, 1, 5, 8)
    raster = RasterPart(pixels=np.zeros((3, 4), dtype=np.uint8), x=10, y=20)
    assert raster.bounds() == (10, 20, 14, 22)
