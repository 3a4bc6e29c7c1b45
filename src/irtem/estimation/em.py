"""Marginal maximum likelihood estimation with the EM algorithm.

The E-step integrates the latent trait over a fixed quadrature rule and
collects expected category counts per item and node. The M-step maximises
each item's expected complete-data log-likelihood (plus its log priors)
independently. Proposals are accepted synchronously once every item has
been optimised, so the result never depends on item order or on the
number of worker threads.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Generator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from irtem._core import logsumexp
from irtem.constants import DEFAULT_QUADRATURE_POINTS, MISSING, PROB_EPSILON
from irtem.estimation.base import BaseEstimator
from irtem.estimation.enums import EstimationStatus
from irtem.estimation.quadrature import QuadratureRule
from irtem.typing import IterationStage, LatentDensityType
from irtem.utils.data import ResponseData

if TYPE_CHECKING:
    from irtem.models.base import BaseItemModel
    from irtem.results.fit_result import FitResult

logger = logging.getLogger(__name__)


@dataclass
class EStepResult:
    """Sufficient statistics of one E-step.

    Attributes
    ----------
    expected_counts : list of ndarray
        ``expected_counts[j][k, c]``: expected number of persons at node ``k``
        answering item ``j`` in category ``c``. Persons missing item ``j``
        do not contribute to it.
    posterior_mass : ndarray of shape (n_points,)
        Expected number of persons at each node (``n_k``).
    posterior : ndarray of shape (n_patterns, n_points)
        Normalised posterior of each pattern over the nodes.
    log_likelihood : float
        Marginal log-likelihood of the data.
    """

    expected_counts: list[NDArray[np.float64]]
    posterior_mass: NDArray[np.float64]
    posterior: NDArray[np.float64]
    log_likelihood: float


@dataclass(frozen=True)
class IterationEvent:
    """Progress report for one EM iteration.

    Callbacks receive a ``"started"`` event once the E-step has evaluated the
    parameters entering the iteration, with ``delta`` carrying the previous
    iteration's change (NaN on the first), and a ``"finished"`` event after
    the proposals are accepted.
    """

    iteration: int
    delta: float
    log_likelihood: float
    stage: IterationStage = "finished"


class EMEstimator(BaseEstimator):
    """MMLE/EM estimator for unidimensional item response models.

    Parameters
    ----------
    quadrature : QuadratureRule, optional
        Latent trait distribution. Defaults to a standard normal grid of 41
        points on ±0.8·sqrt(41). The rule is copied, never modified.
    max_iter : int, default=500
        Maximum number of EM cycles.
    tol : float, default=1e-4
        Convergence threshold on the largest absolute parameter change.
    verbose : bool, default=False
        Log one line per iteration at INFO (DEBUG otherwise).
    latent_density : {"fixed", "empirical"}, default="fixed"
        ``"empirical"`` re-estimates the quadrature weights from the
        posterior mass after every iteration.
    item_optim_maxiter : int, default=150
        Iteration cap for each item's L-BFGS-B run.
    item_optim_ftol : float, default=1e-9
        Relative objective tolerance of each item's L-BFGS-B run.
    prob_epsilon : float, default=1e-10
        Floor applied to probabilities before taking logs.
    n_jobs : int, default=1
        Worker threads for the M-step; -1 uses every CPU.
    callback : callable, optional
        Called with an ``IterationEvent`` before (``stage="started"``) and
        after (``stage="finished"``) every iteration. Exceptions it raises
        are logged and ignored.

    Examples
    --------
    >>> from irtem import LogisticItem, load_dataset
    >>> data = load_dataset("LSAT7")["data"]
    >>> items = [LogisticItem("2PL") for _ in range(5)]
    >>> result = EMEstimator().fit(items, data)
    >>> result.converged
    True
    """

    def __init__(
        self,
        quadrature: QuadratureRule | None = None,
        max_iter: int = 500,
        tol: float = 1e-4,
        verbose: bool = False,
        latent_density: LatentDensityType = "fixed",
        item_optim_maxiter: int = 150,
        item_optim_ftol: float = 1e-9,
        prob_epsilon: float = PROB_EPSILON,
        n_jobs: int = 1,
        callback: Callable[[IterationEvent], None] | None = None,
    ) -> None:
        super().__init__(max_iter, tol, verbose)

        if latent_density not in ("fixed", "empirical"):
            raise ValueError(
                f"latent_density must be 'fixed' or 'empirical', got {latent_density!r}"
            )
        if item_optim_maxiter < 1:
            raise ValueError("item_optim_maxiter must be at least 1")
        if item_optim_ftol <= 0:
            raise ValueError("item_optim_ftol must be positive")
        if not 0 < prob_epsilon < 0.5:
            raise ValueError("prob_epsilon must be in (0, 0.5)")
        if n_jobs != -1 and n_jobs < 1:
            raise ValueError("n_jobs must be a positive integer or -1")

        if quadrature is None:
            quadrature = QuadratureRule.mirt_default(DEFAULT_QUADRATURE_POINTS)
        self.quadrature = quadrature
        self.latent_density = latent_density
        self.item_optim_maxiter = item_optim_maxiter
        self.item_optim_ftol = item_optim_ftol
        self.prob_epsilon = prob_epsilon
        self.n_jobs = n_jobs
        self.callback = callback
        self.result: FitResult | None = None
        self._log_likelihood_history: list[float] = []

    def fit(
        self,
        items: Sequence[BaseItemModel],
        responses,
    ) -> FitResult:
        """Estimate item parameters; items are updated in place.

        Parameters
        ----------
        items : sequence of BaseItemModel
            One model per response column, carrying starting values.
        responses : ResponseData or array-like of shape (n_persons, n_items)
            Category codes, missing coded as -1.

        Returns
        -------
        FitResult
        """
        iterator = self.iter_fit(items, responses)
        while True:
            try:
                next(iterator)
            except StopIteration as stop:
                return stop.value

    def iter_fit(
        self,
        items: Sequence[BaseItemModel],
        responses,
    ) -> Generator[IterationEvent, None, FitResult]:
        """Run EM, yielding the ``"finished"`` ``IterationEvent`` of each iteration.

        The ``FitResult`` is the generator's return value and is also stored
        on ``self.result``.
        """
        from irtem.results.fit_result import FitResult

        items = list(items)
        data = self._validate_responses(items, responses)
        quadrature = self.quadrature.copy()

        self.status = EstimationStatus.INITIALIZED
        self.result = None
        self._convergence_history = []
        self._log_likelihood_history = []

        logger.debug(
            "Starting EM: %d items, %d patterns, %g persons, %d quadrature points",
            len(items),
            data.n_patterns,
            data.n_persons,
            quadrature.n_points,
        )

        self.status = EstimationStatus.ITERATING
        for iteration in range(1, self.max_iter + 1):
            estep = self._e_step(items, data, quadrature)
            log_likelihood = estep.log_likelihood + self._total_log_prior(items)
            previous = self._convergence_history[-1] if self._convergence_history else np.nan
            self._notify(IterationEvent(iteration, previous, log_likelihood, stage="started"))

            self._m_step(items, estep, quadrature.points)
            delta = max((item.accept_proposal() for item in items), default=0.0)

            if self.latent_density == "empirical":
                quadrature.reestimate_weights(estep.posterior_mass)

            self._convergence_history.append(delta)
            self._log_likelihood_history.append(log_likelihood)
            self._log_iteration(iteration, log_likelihood, delta=delta)

            event = IterationEvent(iteration, delta, log_likelihood)
            self._notify(event)
            yield event

            if self._check_convergence(delta):
                self.status = EstimationStatus.CONVERGED
                break
        else:
            self.status = EstimationStatus.MAX_ITER_REACHED

        final = self._e_step(items, data, quadrature)
        standard_errors = self._compute_standard_errors(items, final, quadrature.points)

        n_params = sum(item.n_free for item in items if not item.fixed)
        if self.latent_density == "empirical":
            n_params += quadrature.n_points - 1
        n_obs = data.n_persons

        if self.status == EstimationStatus.CONVERGED:
            logger.info(
                "EM converged after %d iterations (delta=%.3g, LL=%.4f)",
                iteration,
                delta,
                final.log_likelihood,
            )
        else:
            logger.warning(
                "EM stopped after reaching max_iter=%d without convergence "
                "(delta=%.3g, tol=%.3g)",
                self.max_iter,
                delta,
                self.tol,
            )

        self.result = FitResult(
            items=items,
            quadrature=quadrature,
            log_likelihood=final.log_likelihood,
            iteration_history=list(self._convergence_history),
            log_likelihood_history=list(self._log_likelihood_history),
            status=self.status,
            n_iterations=iteration,
            standard_errors=standard_errors,
            aic=self._compute_aic(final.log_likelihood, n_params),
            bic=self._compute_bic(final.log_likelihood, n_params, n_obs),
            n_parameters=n_params,
            n_observations=n_obs,
        )
        return self.result

    @property
    def log_likelihood_history(self) -> list[float]:
        return self._log_likelihood_history.copy()

    def log_likelihood(
        self,
        items: Sequence[BaseItemModel],
        responses,
    ) -> float:
        """Marginal log-likelihood of ``responses`` at the items' current values."""
        items = list(items)
        data = self._validate_responses(items, responses)
        return self._e_step(items, data, self.quadrature).log_likelihood

    def e_step(self, items: Sequence[BaseItemModel], responses) -> EStepResult:
        """Run a single E-step over ``self.quadrature``."""
        items = list(items)
        data = self._validate_responses(items, responses)
        return self._e_step(items, data, self.quadrature)

    def _e_step(
        self,
        items: list[BaseItemModel],
        data: ResponseData,
        quadrature: QuadratureRule,
    ) -> EStepResult:
        points = quadrature.points
        matrix = data.matrix
        frequencies = data.frequencies
        log_floor = np.log(self.prob_epsilon)

        log_lik = np.zeros((data.n_patterns, points.size))
        for j, item in enumerate(items):
            codes = matrix[:, j]
            observed = codes != MISSING
            log_probs = np.maximum(item.log_probabilities(points), log_floor)
            log_lik[observed] += log_probs[:, codes[observed]].T

        with np.errstate(divide="ignore"):
            log_joint = log_lik + np.log(quadrature.weights)[None, :]
        log_marginal = logsumexp(log_joint, axis=1)
        posterior = np.exp(log_joint - log_marginal[:, None])
        weighted = posterior * frequencies[:, None]

        expected_counts = []
        for j, item in enumerate(items):
            codes = matrix[:, j]
            counts = np.zeros((points.size, item.n_categories))
            for c in range(item.n_categories):
                mask = codes == c
                if np.any(mask):
                    counts[:, c] = weighted[mask].sum(axis=0)
            expected_counts.append(counts)

        return EStepResult(
            expected_counts=expected_counts,
            posterior_mass=weighted.sum(axis=0),
            posterior=posterior,
            log_likelihood=float(np.dot(frequencies, log_marginal)),
        )

    def _total_log_prior(self, items: list[BaseItemModel]) -> float:
        return float(
            sum(item.log_prior(item.free_parameters) for item in items if not item.fixed)
        )

    def _m_step(
        self,
        items: list[BaseItemModel],
        estep: EStepResult,
        points: NDArray[np.float64],
    ) -> None:
        active = [j for j, item in enumerate(items) if not (item.fixed or item.extreme)]

        def optimize_single_item(j: int) -> tuple[int, NDArray[np.float64]]:
            return j, self._optimize_item(items[j], estep.expected_counts[j], points)

        n_jobs = self.n_jobs
        if n_jobs == -1:
            n_jobs = os.cpu_count() or 1

        if n_jobs == 1 or len(active) <= 1:
            results = [optimize_single_item(j) for j in active]
        else:
            with ThreadPoolExecutor(max_workers=min(n_jobs, len(active))) as executor:
                results = list(executor.map(optimize_single_item, active))

        for j, values in results:
            items[j].set_proposal(values)

    def _item_objective(
        self,
        item: BaseItemModel,
        counts: NDArray[np.float64],
        points: NDArray[np.float64],
    ) -> Callable[[NDArray[np.float64]], tuple[float, NDArray[np.float64]]]:
        """Negative expected complete-data log-likelihood and its gradient."""
        eps = self.prob_epsilon

        def objective(values: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
            params = item.unpack(values)
            probs = np.clip(item.probabilities_at(points, params), eps, 1.0)
            dprobs = item.probability_gradient_at(points, params)
            ll = float(np.sum(counts * np.log(probs))) + item.log_prior(values)
            grad = np.einsum("qc,qcp->p", counts / probs, dprobs)
            grad = grad + item.log_prior_gradient(values)
            return -ll, -grad

        return objective

    def _optimize_item(
        self,
        item: BaseItemModel,
        counts: NDArray[np.float64],
        points: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Return the maximising free-parameter vector (current values on failure).

        The search runs in the item's working parameterisation. A proposal is
        kept only if, after the clamping ``accept_proposal`` applies, it does not
        lower the expected complete-data log-likelihood.
        """
        current = item.free_parameters
        bounds = item.working_bounds()
        lower = np.array([b[0] for b in bounds])
        upper = np.array([b[1] for b in bounds])
        x0 = np.clip(item.to_working(current), lower, upper)
        objective = self._item_objective(item, counts, points)

        def working_objective(working: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
            value, grad = objective(item.from_working(working))
            return value, item.working_jacobian(working).T @ grad

        try:
            start_value, _ = objective(current)
            result = minimize(
                working_objective,
                x0=x0,
                jac=True,
                method="L-BFGS-B",
                bounds=bounds,
                options={
                    "maxiter": self.item_optim_maxiter,
                    "ftol": self.item_optim_ftol,
                },
            )
            values = item.clamp_values(item.from_working(result.x))
            final_value, _ = objective(values)
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as exc:
            logger.warning("M-step failed for %s: %s; keeping previous values", item, exc)
            return current

        if not np.all(np.isfinite(values)) or not np.isfinite(final_value):
            logger.warning(
                "M-step produced non-finite values for %s (%s); keeping previous values",
                item,
                result.message,
            )
            return current
        if final_value > start_value:
            if final_value - start_value > 1e-8 * max(1.0, abs(start_value)):
                logger.warning(
                    "M-step did not improve %s (%s); keeping previous values",
                    item,
                    result.message,
                )
            return current
        return values

    def _compute_standard_errors(
        self,
        items: list[BaseItemModel],
        estep: EStepResult,
        points: NDArray[np.float64],
    ) -> list[dict[str, float]]:
        """Standard errors from a forward-difference Hessian of the analytic gradient."""
        eps = np.finfo(np.float64).eps
        standard_errors = []
        for j, item in enumerate(items):
            item.reset_standard_errors()
            if item.fixed or item.extreme or item.n_free == 0:
                standard_errors.append(item.standard_errors)
                continue

            objective = self._item_objective(item, estep.expected_counts[j], points)
            x = item.free_parameters
            _, grad = objective(x)
            n_free = x.size
            hessian = np.zeros((n_free, n_free))
            for i in range(n_free):
                step = np.sqrt(eps) * (abs(x[i]) + 1.0)
                shifted = x.copy()
                shifted[i] += step
                _, grad_i = objective(shifted)
                hessian[:, i] = (grad_i - grad) / step
            hessian = 0.5 * (hessian + hessian.T)

            se = np.full(n_free, np.nan)
            if np.all(np.isfinite(hessian)):
                try:
                    covariance = np.linalg.inv(hessian)
                except np.linalg.LinAlgError:
                    logger.debug("Singular information matrix for %s", item)
                else:
                    variances = np.diag(covariance)
                    if np.all(variances > 0):
                        se = np.sqrt(variances)

            item.set_standard_errors(se)
            standard_errors.append(item.standard_errors)
        return standard_errors

    def _notify(self, event: IterationEvent) -> None:
        if self.callback is None:
            return
        try:
            self.callback(event)
        except Exception:
            logger.exception("Iteration callback raised; continuing estimation")

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"max_iter={self.max_iter}, "
            f"tol={self.tol}, "
            f"n_points={self.quadrature.n_points}, "
            f"latent_density={self.latent_density!r})"
        )
