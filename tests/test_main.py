import json

import numpy as np
import pytest

from main import main
from triangle_mesh import TriangleMesh

PINS = {"pins": [
    {"kind": "anchor", "pos": [-1.0, -1.0], "vertex": 0},
    {"kind": "anchor", "pos": [1.0, 1.0], "target": [1.3, 1.2], "vertex": 24},
]}


def test_cli_grid_solve(tmp_path, capsys) -> None:
    pins = tmp_path / "pins.json"
    pins.write_text(json.dumps(PINS))
    out = tmp_path / "out.obj"

    assert main([str(pins), "--grid", "5x5", "-o", str(out), "--material", "gel"]) == 0
    assert "solved 25 vertices" in capsys.readouterr().out

    mesh = TriangleMesh()
    mesh.read_obj(out)
    assert mesh.get_num_vertices() == 25
    assert np.allclose(mesh.vertices[24], [1.3, 1.2], atol=0.05)


def test_cli_mesh_file(tmp_path, grid_mesh) -> None:
    mesh_path = tmp_path / "grid.obj"
    grid_mesh.write_obj(mesh_path)
    pins = tmp_path / "pins.json"
    pins.write_text(json.dumps(PINS["pins"]))
    assert main([str(mesh_path), str(pins), "--iterations", "2"]) == 0


def test_cli_refused_solve(tmp_path, capsys) -> None:
    pins = tmp_path / "pins.json"
    pins.write_text(json.dumps({"pins": PINS["pins"][:1]}))
    assert main([str(pins), "--grid", "4x4"]) == 1
    assert "refused" in capsys.readouterr().out


def test_cli_bad_options(tmp_path) -> None:
    pins = tmp_path / "pins.json"
    pins.write_text(json.dumps(PINS))
    assert main([str(pins), "--grid", "5x5", "--iterations", "50"]) == 2


@pytest.mark.parametrize("text", [
    "{not json",
    '{"pins": [{"kind": "spring", "pos": [0, 0]}]}',
    '{"pins": [{"kind": "anchor", "pos": [0, 0], "colour": "red"}]}',
    '{"pins": [{"pos": [0, 0]}]}',
    '{"handles": []}',
])
def test_cli_malformed_pins(tmp_path, text) -> None:
    pins = tmp_path / "pins.json"
    pins.write_text(text)
    assert main([str(pins), "--grid", "5x5"]) == 2


def test_cli_missing_files(tmp_path) -> None:
    pins = tmp_path / "pins.json"
    pins.write_text(json.dumps(PINS))
    assert main([str(tmp_path / "nope.json"), "--grid", "5x5"]) == 2
    assert main([str(tmp_path / "nope.obj"), str(pins)]) == 2


def test_cli_malformed_mesh(tmp_path) -> None:
    mesh_path = tmp_path / "bad.obj"
    mesh_path.write_text("v 0 0\nf 1 x 3\n")
    pins = tmp_path / "pins.json"
    pins.write_text(json.dumps(PINS))
    assert main([str(mesh_path), str(pins)]) == 2
