"""
Levenberg-Marquardt Nonlinear Least Squares Optimizer.

Weighted LM with a trust region, following the MINPACK lmder / lmpar /
qrsolv scheme:

- Column-pivoted Householder QR of the weighted Jacobian -(W^1/2 J), with
  rank detection (columns whose remaining norm falls to the ranking
  threshold end the factorization)
- LM parameter search bounded by the Gauss-Newton bounds parl / paru
- Damped direction from a Givens elimination of the scaling diagonal
- Trust-region radius update from the actual / predicted reduction ratio

The model callback returns (residuals, jacobian) at a point, where
residuals = target - model(p) and jacobian = d model / d p.

Failures (budget exhausted, tolerances at machine precision, non-finite
Jacobian) raise OptimizationError; the optimizer never returns an
unconverged point.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

import numpy as np

from bil_core.proto.location_estimate import SolverFailure

logger = logging.getLogger(__name__)

TWO_EPS = 2.220446049250313e-16
SAFE_MIN = 2.2250738585072014e-308

ModelFunction = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray]]


@dataclass
class LevenbergMarquardtConfig:
    """
    Optimizer budgets and tolerances.

    Attributes:
        max_evaluations: Maximum model evaluations (including the start point)
        max_iterations: Maximum outer iterations
        initial_step_bound_factor: Initial trust region = factor * |D x0|
        cost_relative_tolerance: Relative cost reduction convergence threshold
        par_relative_tolerance: Relative parameter step convergence threshold
        ortho_tolerance: Residual / Jacobian orthogonality convergence threshold
        qr_ranking_threshold: Column norm at or below which QR declares rank deficiency
    """

    max_evaluations: int = 1000
    max_iterations: int = 1000
    initial_step_bound_factor: float = 100.0
    cost_relative_tolerance: float = 1.0e-10
    par_relative_tolerance: float = 1.0e-10
    ortho_tolerance: float = 1.0e-10
    qr_ranking_threshold: float = SAFE_MIN

    def __post_init__(self):
        """Validate configuration."""
        assert self.max_evaluations > 0, "max_evaluations must be positive"
        assert self.max_iterations > 0, "max_iterations must be positive"
        assert self.initial_step_bound_factor > 0, "initial_step_bound_factor must be positive"


@dataclass
class OptimizationResult:
    """Converged optimum."""

    point: np.ndarray
    cost: float         # sqrt(sum of squared weighted residuals)
    iterations: int
    evaluations: int


class OptimizationError(Exception):
    """Raised when the optimizer stops without converging."""

    def __init__(self, failure: SolverFailure, iterations: int, evaluations: int):
        super().__init__(
            f"{failure.value} after {iterations} iterations, {evaluations} evaluations"
        )
        self.failure = failure
        self.iterations = iterations
        self.evaluations = evaluations


@dataclass
class _QRData:
    """Column-pivoted QR factorization of the weighted Jacobian."""

    weighted_jacobian: np.ndarray  # R above the diagonal, Householder vectors below
    permutation: List[int]
    rank: int
    diag_r: np.ndarray
    jac_norm: np.ndarray
    beta: np.ndarray


class LevenbergMarquardtOptimizer:
    """
    Weighted Levenberg-Marquardt least squares solver.

    Usage:
        optimizer = LevenbergMarquardtOptimizer()
        result = optimizer.optimize(model, weights, start)
        print(result.point, result.iterations)
    """

    def __init__(self, config: LevenbergMarquardtConfig = None):
        """
        Initialize optimizer.

        Args:
            config: Budgets and tolerances (uses defaults if None)
        """
        self.config = config or LevenbergMarquardtConfig()

    def optimize(
        self,
        model: ModelFunction,
        weights: Sequence[float],
        start: Sequence[float],
    ) -> OptimizationResult:
        """
        Minimize sum(w_i * r_i(p)^2) starting from start.

        Args:
            model: Callback returning (residuals, jacobian) at a point
            weights: Per-residual weights w_i
            start: Initial point

        Returns:
            OptimizationResult at the converged point

        Raises:
            OptimizationError: On any non-convergence
        """
        cfg = self.config
        weight_sqrt = np.sqrt(np.asarray(weights, dtype=float))
        current_point = np.array(start, dtype=float)

        n_r = len(weight_sqrt)
        n_c = len(current_point)
        solved_cols = min(n_r, n_c)

        lm_par = 0.0
        lm_dir = np.zeros(n_c)
        delta = 0.0
        x_norm = 0.0
        diag = np.zeros(n_c)
        old_x = np.zeros(n_c)
        qtf = np.zeros(n_r)
        work1 = np.zeros(n_c)
        work2 = np.zeros(n_c)
        work3 = np.zeros(n_c)

        iterations = 0
        evaluations = 1

        residuals, jacobian = model(current_point)
        current_residuals = residuals * weight_sqrt
        current_cost = _norm(current_residuals)

        first_iteration = True
        while True:
            iterations += 1
            if iterations > cfg.max_iterations:
                raise OptimizationError(SolverFailure.MAX_ITERATIONS, iterations - 1, evaluations)

            previous_jacobian = jacobian
            previous_residuals = current_residuals

            qr = self._qr_decomposition(jacobian, weight_sqrt, solved_cols, iterations, evaluations)
            wj = qr.weighted_jacobian
            permutation = qr.permutation

            # Residuals already carry the weights
            qtf[:] = current_residuals
            self._q_t_y(qtf, qr)

            # Q is no longer needed: put R's diagonal back in place
            for k in range(solved_cols):
                pk = permutation[k]
                wj[k, pk] = qr.diag_r[pk]

            if first_iteration:
                # Scale the point by the column norms of the initial Jacobian
                x_norm = 0.0
                for k in range(n_c):
                    dk = qr.jac_norm[k]
                    if dk == 0:
                        dk = 1.0
                    xk = dk * current_point[k]
                    x_norm += xk * xk
                    diag[k] = dk
                x_norm = math.sqrt(x_norm)
                delta = (cfg.initial_step_bound_factor if x_norm == 0
                         else cfg.initial_step_bound_factor * x_norm)

            # Orthogonality between the residual vector and the Jacobian columns
            max_cosine = 0.0
            if current_cost != 0:
                for j in range(solved_cols):
                    pj = permutation[j]
                    s = qr.jac_norm[pj]
                    if s != 0:
                        total = 0.0
                        for i in range(j + 1):
                            total += wj[i, pj] * qtf[i]
                        max_cosine = max(max_cosine, abs(total) / (s * current_cost))

            if max_cosine <= cfg.ortho_tolerance:
                return self._converged(current_point, current_cost, iterations, evaluations)

            for j in range(n_c):
                diag[j] = max(diag[j], qr.jac_norm[j])

            ratio = 0.0
            while ratio < 1.0e-4:
                for j in range(solved_cols):
                    pj = permutation[j]
                    old_x[pj] = current_point[pj]
                previous_cost = current_cost

                lm_par = self._determine_lm_parameter(
                    qtf, delta, diag, qr, solved_cols, work1, work2, work3, lm_dir, lm_par
                )

                # New point and the scaled norm of the step
                lm_norm = 0.0
                for j in range(solved_cols):
                    pj = permutation[j]
                    lm_dir[pj] = -lm_dir[pj]
                    current_point[pj] = old_x[pj] + lm_dir[pj]
                    s = diag[pj] * lm_dir[pj]
                    lm_norm += s * s
                lm_norm = math.sqrt(lm_norm)

                if first_iteration:
                    delta = min(delta, lm_norm)

                evaluations += 1
                if evaluations > cfg.max_evaluations:
                    raise OptimizationError(SolverFailure.MAX_EVALUATIONS, iterations, evaluations - 1)

                residuals, jacobian = model(current_point)
                current_residuals = residuals * weight_sqrt
                current_cost = _norm(current_residuals)

                # Scaled actual reduction
                act_red = -1.0
                if 0.1 * current_cost < previous_cost:
                    r = current_cost / previous_cost
                    act_red = 1.0 - r * r

                # Scaled predicted reduction and scaled directional derivative
                for j in range(solved_cols):
                    pj = permutation[j]
                    dir_j = lm_dir[pj]
                    work1[j] = 0.0
                    for i in range(j + 1):
                        work1[i] += wj[i, pj] * dir_j
                coeff1 = 0.0
                for j in range(solved_cols):
                    coeff1 += work1[j] * work1[j]
                pc2 = previous_cost * previous_cost
                coeff1 /= pc2
                coeff2 = lm_par * lm_norm * lm_norm / pc2
                pre_red = coeff1 + 2 * coeff2
                dir_der = -(coeff1 + coeff2)

                ratio = 0.0 if pre_red == 0 else act_red / pre_red

                # Trust region update
                if ratio <= 0.25:
                    tmp = (0.5 * dir_der / (dir_der + 0.5 * act_red)) if act_red < 0 else 0.5
                    if 0.1 * current_cost >= previous_cost or tmp < 0.1:
                        tmp = 0.1
                    delta = tmp * min(delta, 10.0 * lm_norm)
                    lm_par /= tmp
                elif lm_par == 0 or ratio >= 0.75:
                    delta = 2 * lm_norm
                    lm_par *= 0.5

                if ratio >= 1.0e-4:
                    first_iteration = False
                    x_norm = 0.0
                    for k in range(n_c):
                        xk = diag[k] * current_point[k]
                        x_norm += xk * xk
                    x_norm = math.sqrt(x_norm)
                else:
                    # Rejected step: back to the previous point
                    current_cost = previous_cost
                    for j in range(solved_cols):
                        pj = permutation[j]
                        current_point[pj] = old_x[pj]
                    jacobian = previous_jacobian
                    current_residuals = previous_residuals

                if ((abs(act_red) <= cfg.cost_relative_tolerance
                        and pre_red <= cfg.cost_relative_tolerance
                        and ratio <= 2.0)
                        or delta <= cfg.par_relative_tolerance * x_norm):
                    return self._converged(current_point, current_cost, iterations, evaluations)

                # Tolerances too small to make further progress
                if abs(act_red) <= TWO_EPS and pre_red <= TWO_EPS and ratio <= 2.0:
                    raise OptimizationError(SolverFailure.COST_RELATIVE_TOLERANCE, iterations, evaluations)
                elif delta <= TWO_EPS * x_norm:
                    raise OptimizationError(SolverFailure.PAR_RELATIVE_TOLERANCE, iterations, evaluations)
                elif max_cosine <= TWO_EPS:
                    raise OptimizationError(SolverFailure.ORTHO_TOLERANCE, iterations, evaluations)

    @staticmethod
    def _converged(point: np.ndarray, cost: float, iterations: int, evaluations: int) -> OptimizationResult:
        logger.debug(f"LM converged in {iterations} iterations, {evaluations} evaluations, cost={cost:.3e}")
        return OptimizationResult(
            point=point.copy(),
            cost=float(cost),
            iterations=iterations,
            evaluations=evaluations,
        )

    def _qr_decomposition(
        self,
        jacobian: np.ndarray,
        weight_sqrt: np.ndarray,
        solved_cols: int,
        iterations: int,
        evaluations: int,
    ) -> _QRData:
        """
        Householder QR with column pivoting of -(W^1/2 J).

        At step k the remaining column of largest norm (first on ties) is
        swapped in; alpha takes the sign opposite to the pivot element.
        """
        wj = -(np.asarray(jacobian, dtype=float) * weight_sqrt[:, np.newaxis])
        n_r, n_c = wj.shape

        permutation = list(range(n_c))
        diag_r = np.zeros(n_c)
        jac_norm = np.zeros(n_c)
        beta = np.zeros(n_c)

        for k in range(n_c):
            norm2 = 0.0
            for i in range(n_r):
                akk = wj[i, k]
                norm2 += akk * akk
            jac_norm[k] = math.sqrt(norm2)

        for k in range(n_c):
            # Column with the greatest norm on the active rows
            next_column = -1
            ak2 = -math.inf
            for i in range(k, n_c):
                norm2 = 0.0
                for j in range(k, n_r):
                    aki = wj[j, permutation[i]]
                    norm2 += aki * aki
                if math.isinf(norm2) or math.isnan(norm2):
                    raise OptimizationError(SolverFailure.QR_DECOMPOSITION, iterations, evaluations)
                if norm2 > ak2:
                    next_column = i
                    ak2 = norm2

            if ak2 <= self.config.qr_ranking_threshold:
                return _QRData(wj, permutation, k, diag_r, jac_norm, beta)

            pk = permutation[next_column]
            permutation[next_column] = permutation[k]
            permutation[k] = pk

            # Choose alpha such that Hk.u = alpha ek
            akk = wj[k, pk]
            alpha = -math.sqrt(ak2) if akk > 0 else math.sqrt(ak2)
            betak = 1.0 / (ak2 - akk * alpha)
            beta[pk] = betak

            diag_r[pk] = alpha
            wj[k, pk] -= alpha

            # Apply the reflection to the remaining columns
            for dk in range(n_c - 1 - k, 0, -1):
                pc = permutation[k + dk]
                gamma = 0.0
                for j in range(k, n_r):
                    gamma += wj[j, pk] * wj[j, pc]
                gamma *= betak
                for j in range(k, n_r):
                    wj[j, pc] -= gamma * wj[j, pk]

        return _QRData(wj, permutation, solved_cols, diag_r, jac_norm, beta)

    @staticmethod
    def _q_t_y(y: np.ndarray, qr: _QRData):
        """Replace y with Q^T y in place."""
        wj = qr.weighted_jacobian
        n_r, n_c = wj.shape

        for k in range(n_c):
            pk = qr.permutation[k]
            gamma = 0.0
            for i in range(k, n_r):
                gamma += wj[i, pk] * y[i]
            gamma *= qr.beta[pk]
            for i in range(k, n_r):
                y[i] -= gamma * wj[i, pk]

    def _determine_lm_parameter(
        self,
        qy: np.ndarray,
        delta: float,
        diag: np.ndarray,
        qr: _QRData,
        solved_cols: int,
        work1: np.ndarray,
        work2: np.ndarray,
        work3: np.ndarray,
        lm_dir: np.ndarray,
        lm_par: float,
    ) -> float:
        """
        Find lm_par such that the damped step fits the trust region.

        On return lm_dir holds the step for the returned parameter.
        """
        wj = qr.weighted_jacobian
        permutation = qr.permutation
        rank = qr.rank
        diag_r = qr.diag_r
        n_c = wj.shape[1]

        # Gauss-Newton direction; least squares solution if rank deficient
        for j in range(rank):
            lm_dir[permutation[j]] = qy[j]
        for j in range(rank, n_c):
            lm_dir[permutation[j]] = 0.0
        for k in range(rank - 1, -1, -1):
            pk = permutation[k]
            ypk = lm_dir[pk] / diag_r[pk]
            for i in range(k):
                lm_dir[permutation[i]] -= ypk * wj[i, pk]
            lm_dir[pk] = ypk

        # Accept the Gauss-Newton direction if it already fits
        dx_norm = 0.0
        for j in range(solved_cols):
            pj = permutation[j]
            s = diag[pj] * lm_dir[pj]
            work1[pj] = s
            dx_norm += s * s
        dx_norm = math.sqrt(dx_norm)
        fp = dx_norm - delta
        if fp <= 0.1 * delta:
            return 0.0

        # Newton step gives the lower bound parl when the Jacobian has full rank
        parl = 0.0
        if rank == solved_cols:
            for j in range(solved_cols):
                pj = permutation[j]
                work1[pj] *= diag[pj] / dx_norm
            sum2 = 0.0
            for j in range(solved_cols):
                pj = permutation[j]
                total = 0.0
                for i in range(j):
                    total += wj[i, pj] * work1[permutation[i]]
                s = (work1[pj] - total) / diag_r[pj]
                work1[pj] = s
                sum2 += s * s
            parl = fp / (delta * sum2)

        # Upper bound paru
        sum2 = 0.0
        for j in range(solved_cols):
            pj = permutation[j]
            total = 0.0
            for i in range(j + 1):
                total += wj[i, pj] * qy[i]
            total /= diag[pj]
            sum2 += total * total
        g_norm = math.sqrt(sum2)
        paru = g_norm / delta
        if paru == 0:
            paru = SAFE_MIN / min(delta, 0.1)

        # Clamp the incoming parameter into (parl, paru)
        lm_par = min(paru, max(lm_par, parl))
        if lm_par == 0:
            lm_par = g_norm / dx_norm

        for _ in range(11):
            if lm_par == 0:
                lm_par = max(SAFE_MIN, 0.001 * paru)
            s_par = math.sqrt(lm_par)
            for j in range(solved_cols):
                pj = permutation[j]
                work1[pj] = s_par * diag[pj]
            self._determine_lm_direction(qy, work1, work2, qr, solved_cols, work3, lm_dir)

            dx_norm = 0.0
            for j in range(solved_cols):
                pj = permutation[j]
                s = diag[pj] * lm_dir[pj]
                work3[pj] = s
                dx_norm += s * s
            dx_norm = math.sqrt(dx_norm)
            previous_fp = fp
            fp = dx_norm - delta

            if abs(fp) <= 0.1 * delta or (parl == 0 and fp <= previous_fp < 0):
                return lm_par

            # Newton correction (uses S from the last direction solve)
            for j in range(solved_cols):
                pj = permutation[j]
                work1[pj] = work3[pj] * diag[pj] / dx_norm
            for j in range(solved_cols):
                pj = permutation[j]
                work1[pj] /= work2[j]
                tmp = work1[pj]
                for i in range(j + 1, solved_cols):
                    work1[permutation[i]] -= wj[i, pj] * tmp
            sum2 = 0.0
            for j in range(solved_cols):
                s = work1[permutation[j]]
                sum2 += s * s
            correction = fp / (delta * sum2)

            if fp > 0:
                parl = max(parl, lm_par)
            elif fp < 0:
                paru = min(paru, lm_par)

            lm_par = max(parl, lm_par + correction)

        return lm_par

    @staticmethod
    def _determine_lm_direction(
        qy: np.ndarray,
        diag: np.ndarray,
        lm_diag: np.ndarray,
        qr: _QRData,
        solved_cols: int,
        work: np.ndarray,
        lm_dir: np.ndarray,
    ):
        """
        Solve R z = Q^T r augmented with the diagonal D (qrsolv).

        The strict lower triangle of the weighted Jacobian receives S, the
        upper triangle (R) is preserved; lm_diag receives S's diagonal.
        """
        permutation = qr.permutation
        wj = qr.weighted_jacobian
        diag_r = qr.diag_r

        # Copy R and Q^T r, saving the diagonal of R in lm_dir
        for j in range(solved_cols):
            pj = permutation[j]
            for i in range(j + 1, solved_cols):
                wj[i, pj] = wj[j, permutation[i]]
            lm_dir[j] = diag_r[pj]
            work[j] = qy[j]

        # Eliminate the diagonal matrix d with Givens rotations
        for j in range(solved_cols):
            pj = permutation[j]
            dpj = diag[pj]
            if dpj != 0:
                lm_diag[j + 1:] = 0.0
            lm_diag[j] = dpj

            qtbpj = 0.0
            for k in range(j, solved_cols):
                pk = permutation[k]

                if lm_diag[k] != 0:
                    rkk = wj[k, pk]
                    if abs(rkk) < abs(lm_diag[k]):
                        cotangent = rkk / lm_diag[k]
                        sine = 1.0 / math.sqrt(1.0 + cotangent * cotangent)
                        cosine = sine * cotangent
                    else:
                        tangent = lm_diag[k] / rkk
                        cosine = 1.0 / math.sqrt(1.0 + tangent * tangent)
                        sine = cosine * tangent

                    wj[k, pk] = cosine * rkk + sine * lm_diag[k]
                    temp = cosine * work[k] + sine * qtbpj
                    qtbpj = -sine * work[k] + cosine * qtbpj
                    work[k] = temp

                    for i in range(k + 1, solved_cols):
                        rik = wj[i, pk]
                        temp2 = cosine * rik + sine * lm_diag[i]
                        lm_diag[i] = -sine * rik + cosine * lm_diag[i]
                        wj[i, pk] = temp2

            # Store the diagonal of S and restore the diagonal of R
            lm_diag[j] = wj[j, permutation[j]]
            wj[j, permutation[j]] = lm_dir[j]

        # Triangular solve; least squares solution if S is singular
        n_sing = solved_cols
        for j in range(solved_cols):
            if lm_diag[j] == 0 and n_sing == solved_cols:
                n_sing = j
            if n_sing < solved_cols:
                work[j] = 0.0
        for j in range(n_sing - 1, -1, -1):
            pj = permutation[j]
            total = 0.0
            for i in range(j + 1, n_sing):
                total += wj[i, pj] * work[i]
            work[j] = (work[j] - total) / lm_diag[j]

        for j in range(len(lm_dir)):
            lm_dir[permutation[j]] = work[j]


def _norm(vector: np.ndarray) -> float:
    return math.sqrt(float(np.dot(vector, vector)))
