import argparse
import json
import logging
import sys

from elements import DEFAULT_SOLVER_OPTIONS, Material, pin_from_dict
from rigid_mesh_deformer import RigidMeshDeformer
from triangle_mesh import TriangleMesh, make_grid_mesh

logger: logging.Logger = logging.getLogger(__name__)


def load_pins(path):
    with open(path, 'r') as f:
        data = json.load(f)
    records = data["pins"] if isinstance(data, dict) else data
    return [pin_from_dict(r) for r in records]


def parse_grid(text):
    try:
        cols, rows = (int(s) for s in text.lower().split('x'))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected COLSxROWS, got {text!r}") from None
    if cols < 2 or rows < 2:
        raise argparse.ArgumentTypeError("grid needs at least 2x2 vertices")
    return cols, rows


def build_parser():
    defaults = DEFAULT_SOLVER_OPTIONS
    parser = argparse.ArgumentParser(description="Deform a 2D mesh with ARAP pins.")
    parser.add_argument("mesh", nargs="?", help="input OBJ mesh")
    parser.add_argument("pins", help="JSON file with the pin list")
    parser.add_argument("-o", "--output", help="write the deformed mesh to this OBJ file")
    parser.add_argument("--grid", type=parse_grid,
                        help="use a regular COLSxROWS grid over [-1, 1]^2 instead of a mesh file")
    parser.add_argument("--material", choices=[m.value for m in Material],
                        default=defaults.material.value)
    parser.add_argument("--iterations", type=int, default=defaults.iterations)
    parser.add_argument("--cg-iterations", type=int, default=defaults.cg_iterations)
    parser.add_argument("--no-warm-start", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    if args.grid is not None:
        mesh = make_grid_mesh(*args.grid)
    elif args.mesh is not None:
        mesh = TriangleMesh()
        try:
            mesh.read_obj(args.mesh)
        except (OSError, ValueError) as e:
            logger.error("Cannot read mesh: %s", e)
            return 2
    else:
        logger.error("Either a mesh file or --grid is required")
        return 2

    try:
        pins = load_pins(args.pins)
    except (OSError, ValueError, TypeError, KeyError) as e:
        logger.error("Cannot read pins from %s: %s", args.pins, e)
        return 2

    try:
        options = DEFAULT_SOLVER_OPTIONS.with_changes(
            material=Material(args.material),
            iterations=args.iterations,
            cg_iterations=args.cg_iterations,
            warm_start=not args.no_warm_start)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    deformer = RigidMeshDeformer(options)
    if not deformer.initialize_from_mesh(mesh):
        return 1

    result = deformer.solve(pins)
    if not result.success:
        print(f"solve refused: {result.message}")
        return 1

    if args.output:
        out = TriangleMesh()
        deformer.update_deformed_mesh(out)
        try:
            out.write_obj(args.output)
        except OSError as e:
            logger.error("Cannot write %s: %s", args.output, e)
            return 2
    print(f"solved {mesh.get_num_vertices()} vertices, energy {result.energy:.6g}, "
          f"{result.cg_iterations} CG iterations")
    return 0


if __name__ == "__main__":
    sys.exit(main())
