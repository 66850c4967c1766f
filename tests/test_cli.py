"""
Skylut CLI Tests - precompute, info and sky commands.
"""

import numpy as np
import pytest
import yaml

import skylut.core
from skylut.cli import build_parser, main
from skylut.core import backend as backend_module
from skylut.core.backend import ComputeBackend
from skylut.core.model import AtmosphereModel

from conftest import TINY_TABLE_SIZES


@pytest.fixture
def tables_path(tmp_path):
    config = tmp_path / "tiny.yaml"
    config.write_text(yaml.safe_dump(dict(TINY_TABLE_SIZES, mie_phase_function_g=0.7)))
    output = tmp_path / "tables.npz"

    assert main(["precompute", "--config", str(config), "--orders", "2", "-o", str(output)]) == 0
    return output


def test_precompute_writes_tables(capsys, tables_path):
    assert tables_path.exists()
    assert "Tables saved to" in capsys.readouterr().out

    model = AtmosphereModel()
    model.load_textures(str(tables_path))
    assert model.params.mie_phase_function_g == pytest.approx(0.7)
    assert model.params.scattering_texture_r_size == TINY_TABLE_SIZES['scattering_texture_r_size']
    assert np.any(model.textures.irradiance > 0.0)


def test_info(tables_path, capsys):
    capsys.readouterr()
    assert main(["info", str(tables_path)]) == 0
    out = capsys.readouterr().out
    assert "Mie g: 0.700" in out
    assert "scattering: shape (2, 4, 4, 4)" in out


def test_sky(tables_path, capsys):
    capsys.readouterr()
    assert main([
        "sky", str(tables_path),
        "--altitude", "0.5", "--view-zenith", "60", "--sun-zenith", "30",
    ]) == 0
    out = capsys.readouterr().out
    for label in ("Radiance", "Transmittance", "Sun irradiance", "Sky irradiance"):
        assert label in out


def test_missing_config(tmp_path, capsys):
    code = main(["precompute", "--config", str(tmp_path / "missing.yaml"),
                 "-o", str(tmp_path / "out.npz")])
    assert code == 1
    assert "Configuration file not found" in capsys.readouterr().out


def test_invalid_config_fails(tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text(yaml.safe_dump({'planet_radius': 6360.0}))
    assert main(["precompute", "--config", str(config), "-o", str(tmp_path / "out.npz")]) == 1


def test_missing_tables(tmp_path):
    assert main(["info", str(tmp_path / "missing.npz")]) == 1


def test_parser_defaults():
    args = build_parser().parse_args(["precompute"])
    assert args.orders == 4
    assert args.workers is None
    assert args.output == "skylut.npz"
    assert not args.small


def test_unknown_command():
    with pytest.raises(SystemExit):
        main(["render"])


def test_default_workers_use_every_cpu(tmp_path, monkeypatch):
    created = []

    class RecordingBackend(ComputeBackend):
        def __init__(self, workers=1, group_size=4):
            super().__init__(workers=workers, group_size=group_size)
            created.append(self)

    monkeypatch.setattr(skylut.core, "ComputeBackend", RecordingBackend)
    monkeypatch.setattr(backend_module.os, "cpu_count", lambda: 3)
    config = tmp_path / "tiny.yaml"
    config.write_text(yaml.safe_dump(TINY_TABLE_SIZES))

    assert main(["precompute", "--config", str(config), "--orders", "1",
                 "-o", str(tmp_path / "out.npz")]) == 0
    assert [backend.workers for backend in created] == [3]
