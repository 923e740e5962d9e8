"""
ARIMA Model Order Selection
===========================

Searches non-seasonal (p, d, q) candidates and keeps the one with the
lowest information criterion.

ACADEMIC FOUNDATIONS
--------------------
Akaike, H. (1974). "A New Look at the Statistical Model Identification."
    AIC = 2k - 2 ln(L)

Hyndman, R.J. & Khandakar, Y. (2008). "Automatic Time Series Forecasting:
the forecast Package for R." Journal of Statistical Software, 27(3).

    Stepwise search: start from (2,d,2), (0,d,0), (1,d,0), (0,d,1), then move
    to the best neighbour (p or q changed by one, or both by the same step)
    until no neighbour improves the score.

Scores use the exact state-space likelihood of the full ARIMA model on the
original series (statsmodels), never an approximation, so candidates with
different d remain comparable.

ARCHITECTURE
------------
    candidate_grid      explicit enumerable grid of admissible orders
    Scorer              injectable (values, order) -> float, lower is better
    OrderSelector       stepwise or exhaustive driver over the grid
    SelectionResult     chosen order with every evaluated score
"""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.linalg import LinAlgError
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.arima.model import ARIMA

from arima_backtest.config import ForecastConfig, InformationCriterion
from arima_backtest.errors import ConvergenceError, ModelSelectionError

logger = logging.getLogger(__name__)

# Scores closer than this are treated as ties
SCORE_TIE_TOLERANCE: float = 1e-9


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True, order=True)
class ModelOrder:
    """ARIMA order: AR lags p, differencing degree d, MA lags q."""
    p: int
    d: int
    q: int

    def __post_init__(self) -> None:
        if min(self.p, self.d, self.q) < 0:
            raise ValueError(f"Model order must be non-negative, got {self.as_tuple()}")

    @classmethod
    def of(cls, order: Sequence[int]) -> "ModelOrder":
        p, d, q = order
        return cls(int(p), int(d), int(q))

    @property
    def n_params(self) -> int:
        """AR + MA coefficient count."""
        return self.p + self.q

    @property
    def trend(self) -> str:
        """Constant term only for undifferenced models."""
        return 'c' if self.d == 0 else 'n'

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    def __str__(self) -> str:
        return f"ARIMA({self.p},{self.d},{self.q})"


@dataclass
class SelectionResult:
    """Outcome of an order search."""
    order: ModelOrder
    score: float
    criterion: str
    scores: Dict[ModelOrder, float] = field(default_factory=dict)
    failures: Dict[ModelOrder, str] = field(default_factory=dict)

    @property
    def n_evaluated(self) -> int:
        return len(self.scores) + len(self.failures)

    def ranking(self) -> List[Tuple[ModelOrder, float]]:
        """Converged candidates from best to worst."""
        return sorted(self.scores.items(), key=lambda item: rank_key(item[0], item[1]))


Scorer = Callable[[np.ndarray, ModelOrder], float]


# =============================================================================
# MODEL FITTING
# =============================================================================

def min_observations(order: ModelOrder) -> int:
    """Smallest series length for which a fit of this order is attempted."""
    n_constant = 1 if order.trend == 'c' else 0
    # differenced sample at least as long as the parameter count (incl. sigma2)
    return order.d + order.p + order.q + n_constant + 1


def fit_arima_results(
    endog: np.ndarray,
    order: Tuple[int, int, int],
    trend: str = 'n',
):
    """
    Fit an ARIMA model by exact maximum likelihood.

    Returns the statsmodels results object. Raises ConvergenceError if the
    optimizer reports failure, statsmodels emits a ConvergenceWarning, the
    likelihood is not finite or the fit itself errors.
    """
    endog = np.asarray(endog, dtype=float)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            results = ARIMA(endog, order=order, trend=trend).fit()
        except (ValueError, LinAlgError, IndexError) as e:
            raise ConvergenceError(
                f"ARIMA{order} fit failed: {e}",
                order=order, window_length=len(endog),
            ) from e

    non_converged = [w for w in caught if issubclass(w.category, ConvergenceWarning)]
    retvals = getattr(results, 'mle_retvals', None) or {}

    if non_converged or not retvals.get('converged', True):
        reason = str(non_converged[0].message) if non_converged else "optimizer did not converge"
        raise ConvergenceError(
            f"ARIMA{order} did not converge: {reason}",
            order=order, window_length=len(endog),
        )

    if not np.isfinite(results.llf):
        raise ConvergenceError(
            f"ARIMA{order} produced a non-finite likelihood",
            order=order, window_length=len(endog),
        )

    return results


def aic_scorer(values: np.ndarray, order: ModelOrder) -> float:
    """Exact-likelihood Akaike Information Criterion."""
    return float(fit_arima_results(values, order.as_tuple(), order.trend).aic)


def bic_scorer(values: np.ndarray, order: ModelOrder) -> float:
    """Exact-likelihood Bayesian Information Criterion."""
    return float(fit_arima_results(values, order.as_tuple(), order.trend).bic)


SCORERS: Dict[InformationCriterion, Scorer] = {
    InformationCriterion.AIC: aic_scorer,
    InformationCriterion.BIC: bic_scorer,
}


def _score_candidate(args: Tuple[Scorer, np.ndarray, ModelOrder]) -> Tuple[ModelOrder, Optional[float], str]:
    """Worker: score one candidate, reporting failure instead of raising."""
    scorer, values, order = args

    if len(values) < min_observations(order):
        return order, None, f"needs {min_observations(order)} observations, have {len(values)}"

    try:
        score = scorer(values, order)
    except ConvergenceError as e:
        return order, None, str(e)

    if not np.isfinite(score):
        return order, None, "non-finite score"
    return order, float(score), ""


# =============================================================================
# CANDIDATE GRID
# =============================================================================

def candidate_grid(
    max_p: int,
    max_q: int,
    d_values: Iterable[int],
    max_order: Optional[int] = None,
) -> List[ModelOrder]:
    """Every admissible order, sorted by (p, d, q)."""
    grid = [
        ModelOrder(p, d, q)
        for d in d_values
        for p in range(max_p + 1)
        for q in range(max_q + 1)
        if max_order is None or p + q <= max_order
    ]
    return sorted(grid)


def rank_key(order: ModelOrder, score: float) -> Tuple[float, int, int, int]:
    """Lower score wins; ties go to fewer coefficients, then smaller d."""
    return (round(score / SCORE_TIE_TOLERANCE) * SCORE_TIE_TOLERANCE, order.n_params, order.d, order.p)


def _neighbours(order: ModelOrder) -> List[ModelOrder]:
    moves = [(-1, 0), (1, 0), (0, -1), (0, 1), (-1, -1), (1, 1)]
    out = []
    for dp, dq in moves:
        p, q = order.p + dp, order.q + dq
        if p >= 0 and q >= 0:
            out.append(ModelOrder(p, order.d, q))
    return out


# =============================================================================
# ORDER SELECTOR
# =============================================================================

class OrderSelector:
    """
    Bounded order search scored by an information criterion.

    The scorer is injectable; with n_jobs > 1 each batch of independent
    candidates is fitted in a process pool, so the scorer must then be a
    module-level (picklable) function.

    Usage:
        selector = OrderSelector(max_p=5, max_q=5)
        order = selector.select(train, d=1)
    """

    def __init__(
        self,
        max_p: int = 5,
        max_q: int = 5,
        max_d: int = 1,
        max_order: Optional[int] = 5,
        start_p: int = 2,
        start_q: int = 2,
        stepwise: bool = True,
        scorer: Scorer = aic_scorer,
        criterion_name: str = "AIC",
        n_jobs: int = 1,
    ):
        self.max_p = max_p
        self.max_q = max_q
        self.max_d = max_d
        self.max_order = max_order
        self.start_p = start_p
        self.start_q = start_q
        self.stepwise = stepwise
        self.scorer = scorer
        self.criterion_name = criterion_name
        self.n_jobs = n_jobs

    @classmethod
    def from_config(cls, config: ForecastConfig, scorer: Optional[Scorer] = None) -> "OrderSelector":
        return cls(
            max_p=config.max_p,
            max_q=config.max_q,
            max_d=config.max_d,
            max_order=config.max_order,
            start_p=config.start_p,
            start_q=config.start_q,
            stepwise=config.stepwise,
            scorer=scorer or SCORERS[config.information_criterion],
            criterion_name=config.information_criterion.name,
            n_jobs=config.n_jobs,
        )

    def select(self, series, d: Optional[int] = None) -> ModelOrder:
        """Return the order with the minimum score."""
        return self.search(series, d).order

    def search(self, series, d: Optional[int] = None) -> SelectionResult:
        """
        Run the search and return every evaluated score.

        Args:
            series: Training window (values only are used)
            d: Differencing degree from the stationarity test; when None,
               d is searched over 0..max_d

        Raises:
            ModelSelectionError: constant series, or no candidate converged
        """
        values = np.asarray(series, dtype=float)
        window_context = self._window_context(series)

        if len(values) == 0 or not np.all(np.isfinite(values)):
            raise ModelSelectionError("Series is empty or contains missing values", **window_context)
        if np.ptp(values) == 0:
            raise ModelSelectionError("Series is constant; no ARIMA order is identifiable",
                                      **window_context)

        d_values = [d] if d is not None else list(range(self.max_d + 1))
        grid = candidate_grid(self.max_p, self.max_q, d_values, self.max_order)

        scores: Dict[ModelOrder, float] = {}
        failures: Dict[ModelOrder, str] = {}

        if self.stepwise:
            for d_value in d_values:
                self._stepwise(values, d_value, set(grid), scores, failures)
        else:
            self._evaluate(values, grid, scores, failures)

        if not scores:
            raise ModelSelectionError(
                f"No candidate order converged ({len(failures)} tried)",
                **window_context,
            )

        best = min(scores, key=lambda o: rank_key(o, scores[o]))
        logger.info(
            f"Selected {best} ({self.criterion_name}={scores[best]:.2f}) "
            f"from {len(scores)} converged / {len(failures)} failed candidates"
        )
        return SelectionResult(
            order=best,
            score=scores[best],
            criterion=self.criterion_name,
            scores=scores,
            failures=failures,
        )

    # -------------------------------------------------------------------------
    # Search drivers
    # -------------------------------------------------------------------------

    def _stepwise(
        self,
        values: np.ndarray,
        d: int,
        grid: set,
        scores: Dict[ModelOrder, float],
        failures: Dict[ModelOrder, str],
    ) -> Optional[ModelOrder]:
        initial = []
        for order in (ModelOrder(self.start_p, d, self.start_q), ModelOrder(0, d, 0),
                      ModelOrder(1, d, 0), ModelOrder(0, d, 1)):
            if order in grid and order not in initial:
                initial.append(order)

        self._evaluate(values, initial, scores, failures)
        best = self._best_of(initial, scores)
        if best is None:
            logger.debug(f"No starting candidate converged at d={d}")
            return None

        # Each move strictly improves the score, so this terminates
        while True:
            candidates = [o for o in _neighbours(best)
                          if o in grid and o not in scores and o not in failures]
            if not candidates:
                break
            self._evaluate(values, candidates, scores, failures)
            challenger = self._best_of(candidates + [best], scores)
            if challenger == best:
                break
            logger.debug(f"Stepwise move {best} -> {challenger}")
            best = challenger

        return best

    def _evaluate(
        self,
        values: np.ndarray,
        orders: Sequence[ModelOrder],
        scores: Dict[ModelOrder, float],
        failures: Dict[ModelOrder, str],
    ) -> None:
        pending = [o for o in orders if o not in scores and o not in failures]
        if not pending:
            return

        jobs = [(self.scorer, values, order) for order in pending]
        if self.n_jobs > 1 and len(jobs) > 1:
            with ProcessPoolExecutor(max_workers=min(self.n_jobs, len(jobs))) as ex:
                outcomes = list(ex.map(_score_candidate, jobs))
        else:
            outcomes = [_score_candidate(job) for job in jobs]

        for order, score, reason in outcomes:
            if score is None:
                failures[order] = reason
                logger.debug(f"{order} failed: {reason}")
            else:
                scores[order] = score
                logger.debug(f"{order} {self.criterion_name}={score:.3f}")

    @staticmethod
    def _best_of(orders: Iterable[ModelOrder], scores: Dict[ModelOrder, float]) -> Optional[ModelOrder]:
        scored = [o for o in orders if o in scores]
        if not scored:
            return None
        return min(scored, key=lambda o: rank_key(o, scores[o]))

    @staticmethod
    def _window_context(series) -> Dict[str, object]:
        if isinstance(series, pd.Series) and len(series) > 0:
            return {
                'window_start': series.index[0],
                'window_end': series.index[-1],
                'window_length': len(series),
            }
        return {'window_length': len(series)}


__all__ = [
    'SCORE_TIE_TOLERANCE',
    'ModelOrder',
    'SelectionResult',
    'Scorer',
    'min_observations',
    'fit_arima_results',
    'aic_scorer',
    'bic_scorer',
    'SCORERS',
    'candidate_grid',
    'rank_key',
    'OrderSelector',
]
