import logging

import numpy as np
from scipy.spatial import cKDTree

from arap_global_step import GlobalSystem
from arap_local_step import apply_pose_rotations, fit_rotations, rotation_matrices
from elements import (DEFAULT_SOLVER_OPTIONS, AnchorPin, ARAPSolverOptions, SeamBarrierOptions,
                      SolveResult, SolverState)
from pin_constraints import (accumulate_pins, bind_pin, pin_targets, pose_cell_rotations,
                             validate_pin)
from triangle_mesh import TriangleMesh
from utils import barycentric_coords, vec2

logger: logging.Logger = logging.getLogger(__name__)

MIN_PINS = 2


class RigidMeshDeformer:
    """
    As-rigid-as-possible deformation of a fixed 2D mesh driven by pins.

    Each outer iteration runs a global step (sparse solve for positions with
    the current per-cell rotations) followed by a local step (rotations
    re-fitted to the new positions).
    """

    def __init__(self, options: ARAPSolverOptions = DEFAULT_SOLVER_OPTIONS):
        self.m_options = options
        self.m_state = SolverState.UNINITIALIZED
        self.m_vPins = []

        self.m_vInitialVerts = np.zeros((0, 2), dtype=np.float64)
        self.m_vDeformedVerts = np.zeros((0, 2), dtype=np.float64)
        self.m_vCells = np.zeros((0, 3), dtype=np.int64)
        self.m_vRotations = np.zeros(0, dtype=np.float64)
        self.m_warmSnapshot = None

        self.m_vStiffness = None
        self.m_seam = None

        self.m_system = None
        self.m_tree = None
        self.m_bSetupValid = False
        self.m_lastEnergy = 0.0
        self.m_lastCGIterations = 0

    @property
    def state(self):
        return self.m_state

    @property
    def options(self):
        return self.m_options

    @property
    def pins(self):
        return list(self.m_vPins)

    def invalidate_setup(self):
        self.m_bSetupValid = False

    def initialize_from_mesh(self, mesh: TriangleMesh):
        if not mesh.is_valid():
            logger.warning("Refusing to load an empty or inconsistent mesh (%d vertices, %d cells)",
                           mesh.get_num_vertices(), mesh.get_num_cells())
            return False

        self.m_vInitialVerts = mesh.vertices.astype(np.float64).copy()
        self.m_vDeformedVerts = self.m_vInitialVerts.copy()
        self.m_vCells = mesh.cells.astype(np.int64).copy()
        self.m_vRotations = np.zeros(len(self.m_vCells), dtype=np.float64)
        self.m_warmSnapshot = None
        self.m_tree = cKDTree(self.m_vInitialVerts)
        self.m_system = None
        self.m_vStiffness = None

        nVerts = len(self.m_vInitialVerts)
        self.m_pinW = np.zeros(nVerts, dtype=np.float64)
        self.m_pinB = np.zeros((nVerts, 2), dtype=np.float64)
        self.m_rhsAngles = np.zeros(len(self.m_vCells), dtype=np.float64)
        self.m_rotMats = np.zeros((len(self.m_vCells), 2, 2), dtype=np.float64)
        self.m_energyRotations = np.zeros(len(self.m_vCells), dtype=np.float64)

        self.m_state = SolverState.READY
        self.invalidate_setup()
        logger.info("Loaded mesh with %d vertices and %d cells", nVerts, len(self.m_vCells))
        return True

    def validate_setup(self):
        if self.m_bSetupValid or self.m_state is SolverState.UNINITIALIZED:
            return
        stiffness = self.m_options.preset.rigidity_weight
        if self.m_system is None or self.m_system.stiffness != stiffness:
            self.m_system = GlobalSystem(self.m_vInitialVerts, self.m_vCells, stiffness,
                                         self.m_vStiffness, self.m_seam)
        self.m_bSetupValid = True

    def set_options(self, options: ARAPSolverOptions):
        if options.material != self.m_options.material:
            self.invalidate_setup()
        self.m_options = options

    def set_vertex_stiffness(self, stiffness):
        """Per-vertex stiffness multipliers (>= 0, 1 is neutral); None restores uniform."""
        if stiffness is not None:
            stiffness = np.array(stiffness, dtype=np.float64).reshape(-1)
            if len(stiffness) != len(self.m_vInitialVerts):
                raise ValueError(f"expected {len(self.m_vInitialVerts)} stiffness values, "
                                 f"got {len(stiffness)}")
            if not np.all(np.isfinite(stiffness)) or np.any(stiffness < 0):
                raise ValueError("stiffness multipliers must be finite and >= 0")
        self.m_vStiffness = stiffness
        self.m_system = None
        self.invalidate_setup()

    def set_seam_barrier(self, seam: SeamBarrierOptions):
        self.m_seam = seam
        self.m_system = None
        self.invalidate_setup()

    # pin collection

    def set_pins(self, pins):
        self.m_vPins = list(pins)

    def add_pin(self, pin):
        self.m_vPins.append(pin)
        return pin.id

    def remove_pin(self, pin_id):
        nBefore = len(self.m_vPins)
        self.m_vPins = [p for p in self.m_vPins if p.id != pin_id]
        return len(self.m_vPins) != nBefore

    def clear_pins(self):
        self.m_vPins = []

    def set_deformed_handle(self, handle: int, pos_xy):
        """Pin vertex `handle` to pos_xy, updating the existing handle pin if any."""
        for pin in self.m_vPins:
            if getattr(pin, "vertex", None) == handle and isinstance(pin, AnchorPin):
                pin.target = vec2(pos_xy)
                return pin.id
        pin = AnchorPin(self.m_vInitialVerts[handle], target=pos_xy, radius=0.0, vertex=handle)
        return self.add_pin(pin)

    def remove_handle(self, handle: int):
        self.m_vPins = [p for p in self.m_vPins if getattr(p, "vertex", None) != handle]

    # solving

    def _refuse(self, message):
        logger.warning("Solve refused: %s", message)
        return SolveResult(False, self.m_vDeformedVerts.copy(), message=message)

    def _check_input(self, pins):
        if self.m_state is SolverState.UNINITIALIZED:
            return "no mesh loaded"
        if len(pins) < MIN_PINS:
            return f"need at least {MIN_PINS} pins, got {len(pins)}"
        nVerts = len(self.m_vInitialVerts)
        for pin in pins:
            reason = validate_pin(pin, nVerts)
            if reason is not None:
                return reason
        return None

    def solve(self, pins=None, options: ARAPSolverOptions = None):
        if pins is not None:
            self.set_pins(pins)
        if options is not None:
            self.set_options(options)

        reason = self._check_input(self.m_vPins)
        if reason is not None:
            return self._refuse(reason)

        previous = (self.m_state, self.m_vRotations.copy())
        self.m_state = SolverState.SOLVING
        try:
            return self._iterate(self.m_options)
        except Exception:
            self.m_state, self.m_vRotations = previous
            raise

    def _iterate(self, opts: ARAPSolverOptions):
        self.validate_setup()
        system = self.m_system

        bindings = [bind_pin(p, self.m_tree, self.m_vInitialVerts, self.m_vCells)
                    for p in self.m_vPins]
        poseWeight, poseAngle = pose_cell_rotations(self.m_vPins, bindings, len(self.m_vCells))

        if opts.warm_start and self.m_warmSnapshot is not None:
            x = self.m_warmSnapshot[0].copy()
            self.m_vRotations[:] = self.m_warmSnapshot[1]
        else:
            x = self.m_vInitialVerts.copy()
            self.m_vRotations[:] = 0.0

        # pin weights depend only on the bindings, rail targets move per iteration
        accumulate_pins(self.m_vPins, bindings, self.m_vInitialVerts, x,
                        opts.pin_weight, self.m_pinW, self.m_pinB)
        system.set_pin_weights(self.m_pinW)

        nCG = 0
        for nIter in range(opts.iterations):
            # global step
            if nIter > 0:
                accumulate_pins(self.m_vPins, bindings, self.m_vInitialVerts, x,
                                opts.pin_weight, self.m_pinW, self.m_pinB)
            self.m_rhsAngles[:] = self.m_vRotations
            apply_pose_rotations(self.m_rhsAngles, poseWeight, poseAngle)
            system.assemble_rhs(rotation_matrices(self.m_rhsAngles, out=self.m_rotMats), self.m_pinB)
            x, nIters = system.solve(x, opts.cg_iterations, opts.cg_tolerance, out=x)
            nCG += nIters

            # local step
            self.fit_local_rotations(x)
            logger.debug("ARAP iteration %d: %d CG iterations", nIter + 1, nIters)

        self.m_vDeformedVerts = x
        if opts.warm_start:
            self.m_warmSnapshot = (x.copy(), self.m_vRotations.copy())
        else:
            self.m_warmSnapshot = None

        self.m_lastCGIterations = nCG
        self.m_lastEnergy = self._energy(x, bindings)
        self.m_state = SolverState.SOLVED
        logger.info("Solved %d pins, %d iterations (%d CG), energy %.6g",
                    len(self.m_vPins), opts.iterations, nCG, self.m_lastEnergy)
        return SolveResult(True, x.copy(), self.m_lastEnergy, nCG)

    def fit_local_rotations(self, positions, out=None):
        system = self.m_system
        if out is None:
            out = self.m_vRotations
        return fit_rotations(system.rest_edges, system.deformed_edges(positions), system.edge_w,
                             system.edge_cell, len(self.m_vCells), out=out)

    def _energy(self, positions, bindings, rotations=None):
        if rotations is None:
            rotations = self.m_vRotations
        weight = self.m_options.pin_weight
        terms = [(b.vertices, weight * p.stiffness * b.falloff,
                  pin_targets(p, b, self.m_vInitialVerts, positions))
                 for p, b in zip(self.m_vPins, bindings)]
        return self.m_system.energy(positions, rotation_matrices(rotations), terms)

    def arap_energy(self):
        """
        Energy of the current deformation with rotations fitted to it.

        Returns None when the mesh or the current pins cannot be solved.
        """
        reason = self._check_input(self.m_vPins)
        if reason is not None:
            logger.warning("No energy for the current setup: %s", reason)
            return None
        self.validate_setup()
        rotations = self.fit_local_rotations(self.m_vDeformedVerts, out=self.m_energyRotations)
        bindings = [bind_pin(p, self.m_tree, self.m_vInitialVerts, self.m_vCells)
                    for p in self.m_vPins]
        return self._energy(self.m_vDeformedVerts, bindings, rotations)

    def reset(self):
        self.m_vDeformedVerts = self.m_vInitialVerts.copy()
        self.m_vRotations[:] = 0.0
        self.m_warmSnapshot = None
        self.m_lastEnergy = 0.0
        self.m_lastCGIterations = 0
        if self.m_state is not SolverState.UNINITIALIZED:
            self.m_state = SolverState.READY

    # queries

    def get_deformed_vertices(self):
        return self.m_vDeformedVerts.copy()

    def get_rotations(self):
        return self.m_vRotations.copy()

    def update_deformed_mesh(self, mesh: TriangleMesh):
        vVerts = self.m_vDeformedVerts if self.m_state is SolverState.SOLVED else self.m_vInitialVerts
        mesh.vertices = vVerts.copy()
        mesh.cells = self.m_vCells.copy()

    def _map_point(self, p, vFrom, vTo):
        if self.m_vCells.shape[1] != 3:
            return None
        p = vec2(p)
        for t in self.m_vCells:
            b = barycentric_coords(p, vFrom[t[0]], vFrom[t[1]], vFrom[t[2]])
            if np.all(b >= -1e-9) and np.all(b <= 1 + 1e-9):
                return b[0] * vTo[t[0]] + b[1] * vTo[t[1]] + b[2] * vTo[t[2]]
        return None

    def transform_point(self, p):
        """Rest-space point to deformed space, None outside the mesh."""
        return self._map_point(p, self.m_vInitialVerts, self.m_vDeformedVerts)

    def untransform_point(self, p):
        """Deformed-space point back to rest space, None outside the mesh."""
        return self._map_point(p, self.m_vDeformedVerts, self.m_vInitialVerts)
