"""Starting values for item parameters.

Two methods are available:

- ``classical``: item proportions and point-biserial correlations with the
  rest score, converted to discrimination and difficulty through the
  biserial correlation (normal ogive relations).
- ``prox``: normal approximation (PROX) estimates of item difficulty and
  person ability for binary items, rescaled to a N(0, 1) person metric.

Both mutate the items in place and return them. Items whose responses all
fall in one category get bounded locations (difficulty or thresholds at
about ±9) and are flagged ``extreme``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.stats import norm

from irtem.constants import EXTREME_DIFFICULTY, MISSING, NORMAL_OGIVE_D
from irtem.typing import StartingValueMethod
from irtem.utils.data import as_response_data

if TYPE_CHECKING:
    import pandas as pd

    from irtem.models.base import BaseItemModel
    from irtem.utils.data import ResponseData

logger = logging.getLogger(__name__)

BISERIAL_BOUNDS = (0.05, 0.95)
DISCRIMINATION_START_BOUNDS = (0.2, 4.0)
GUESSING_START = 0.2
PROX_TOLERANCE = 0.01
PROX_MAX_ITER = 10
_FALLBACK_BISERIAL = 0.5


def compute_starting_values(
    responses,
    items: Sequence[BaseItemModel],
    method: StartingValueMethod = "classical",
) -> Sequence[BaseItemModel]:
    """Set starting values on ``items`` from the observed responses.

    Parameters
    ----------
    responses : ResponseData or array-like of shape (n_persons, n_items)
        Response data, missing coded as -1.
    items : sequence of BaseItemModel
        Items to initialise. Fixed items are left untouched.
    method : {"classical", "prox"}, default="classical"
        ``prox`` applies to binary items; polytomous items always use the
        classical method.

    Returns
    -------
    sequence of BaseItemModel
        The same items.

    Examples
    --------
    >>> items = [LogisticItem("2PL") for _ in range(5)]
    >>> compute_starting_values(load_dataset("LSAT7")["data"], items)
    """
    if method not in ("classical", "prox"):
        raise ValueError(f"Unknown starting value method: {method!r}")
    data = as_response_data(responses)
    if data.n_items != len(items):
        raise ValueError(f"responses has {data.n_items} items, expected {len(items)}")

    stats = _item_statistics(data, items)
    for j, item in enumerate(items):
        if item.fixed:
            continue
        item.extreme = bool(stats["extreme"][j])
        _apply_classical(item, stats, j, data)

    if method == "prox":
        _apply_prox(data, items)

    n_extreme = int(sum(item.extreme for item in items))
    if n_extreme:
        logger.info("%d item(s) have no response variance and will not be estimated", n_extreme)
    return items


def classical_statistics(
    responses,
    items: Sequence[BaseItemModel] | None = None,
) -> pd.DataFrame:
    """Item proportion, point-biserial correlation and extreme flag per item."""
    import pandas as pd

    data = as_response_data(responses)
    stats = _item_statistics(data, items)
    index = (
        [item.name or f"Item_{j + 1}" for j, item in enumerate(items)]
        if items is not None
        else [f"Item_{j + 1}" for j in range(data.n_items)]
    )
    df = pd.DataFrame(
        {
            "p": stats["p"],
            "point_biserial": stats["point_biserial"],
            "extreme": stats["extreme"],
        },
        index=index,
    )
    df.index.name = "item"
    return df


def _weighted_correlation(
    x: NDArray[np.float64],
    y: NDArray[np.float64],
    w: NDArray[np.float64],
) -> float:
    total = w.sum()
    if total <= 0:
        return np.nan
    mx = np.dot(w, x) / total
    my = np.dot(w, y) / total
    vx = np.dot(w, (x - mx) ** 2) / total
    vy = np.dot(w, (y - my) ** 2) / total
    if vx <= 0 or vy <= 0:
        return np.nan
    return float(np.dot(w, (x - mx) * (y - my)) / (total * np.sqrt(vx * vy)))


def _item_statistics(
    data: ResponseData,
    items: Sequence[BaseItemModel] | None,
) -> dict[str, NDArray]:
    matrix = data.matrix
    freqs = data.frequencies
    observed = matrix != MISSING
    scores = np.where(observed, matrix, 0).astype(np.float64)
    totals = scores.sum(axis=1)

    n_items = data.n_items
    p = np.full(n_items, np.nan)
    r = np.full(n_items, np.nan)
    extreme = np.zeros(n_items, dtype=bool)
    max_category = np.zeros(n_items, dtype=int)

    for j in range(n_items):
        if items is not None:
            max_category[j] = items[j].n_categories - 1
        else:
            max_category[j] = max(int(matrix[:, j].max()), 1)
        mask = observed[:, j]
        w = freqs[mask]
        if w.sum() <= 0:
            extreme[j] = True
            continue
        x = scores[mask, j]
        rest = totals[mask] - x
        p[j] = np.dot(w, x) / w.sum() / max_category[j]
        extreme[j] = bool(np.all(x == x[0]))
        r[j] = _weighted_correlation(x, rest, w)

    return {"p": p, "point_biserial": r, "extreme": extreme, "max_category": max_category}


def _biserial(p: float, r: float) -> float:
    if not np.isfinite(r) or not 0.0 < p < 1.0:
        return _FALLBACK_BISERIAL
    r_bis = r * np.sqrt(p * (1.0 - p)) / norm.pdf(norm.ppf(p))
    return float(np.clip(r_bis, *BISERIAL_BOUNDS))


def _discrimination_from_biserial(r_bis: float, scaling_constant: float) -> float:
    a = r_bis / np.sqrt(1.0 - r_bis**2) * NORMAL_OGIVE_D / scaling_constant
    return float(np.clip(a, *DISCRIMINATION_START_BOUNDS))


def _location(p: float, r_bis: float) -> float:
    return float(np.clip(-norm.ppf(p) / r_bis, -EXTREME_DIFFICULTY, EXTREME_DIFFICULTY))


def _apply_classical(
    item: BaseItemModel,
    stats: dict[str, NDArray],
    j: int,
    data: ResponseData,
) -> None:
    p = float(stats["p"][j])
    r_bis = _biserial(p, float(stats["point_biserial"][j]))
    free = set(item.free_parameter_names)
    current = item.parameters
    changes: dict = {}

    if "discrimination" in free:
        changes["discrimination"] = (
            1.0 if item.extreme else _discrimination_from_biserial(r_bis, item.D)
        )

    if item.n_categories == 2:
        if item.extreme:
            # All correct gives a very easy item, all incorrect a very hard one
            changes["difficulty"] = -EXTREME_DIFFICULTY if p >= 1.0 else EXTREME_DIFFICULTY
        else:
            changes["difficulty"] = _location(p, r_bis)
        if "guessing" in free:
            changes["guessing"] = GUESSING_START
        if "slipping" in free:
            changes["slipping"] = 1.0
    elif item.extreme:
        changes["thresholds"] = _extreme_locations(item.n_categories, p)
    else:
        changes["thresholds"] = _polytomous_locations(item, data, j, r_bis)

    item.set_parameters(current.replace(**changes))


def _extreme_locations(n_categories: int, p: float) -> NDArray[np.float64]:
    """Bounded, ordered locations for an item answered in a single category.

    Boundaries at or below the observed category sit near the lower bound and
    the rest near the upper bound; an unanswered item is treated as category 0.
    """
    observed = 0 if not np.isfinite(p) else int(round(p * (n_categories - 1)))
    k = np.arange(1, n_categories)
    return np.where(
        k <= observed,
        -EXTREME_DIFFICULTY - 0.1 * (observed - k),
        EXTREME_DIFFICULTY + 0.1 * (k - observed - 1),
    ).astype(np.float64)


def _polytomous_locations(
    item: BaseItemModel,
    data: ResponseData,
    j: int,
    r_bis: float,
) -> NDArray[np.float64]:
    column = data.matrix[:, j]
    mask = column != MISSING
    w = data.frequencies[mask]
    x = column[mask]
    total = w.sum()
    floor = 0.5 / total
    locations = np.empty(item.n_categories - 1)
    for k in range(1, item.n_categories):
        # Proportion responding in category k or higher
        p_k = float(np.clip(w[x >= k].sum() / total, floor, 1.0 - floor))
        locations[k - 1] = _location(p_k, r_bis)
    for k in range(1, locations.size):
        if locations[k] <= locations[k - 1]:
            locations[k] = locations[k - 1] + 0.1
    return locations


def _apply_prox(
    data: ResponseData,
    items: Sequence[BaseItemModel],
) -> None:
    """PROX estimates for binary, non-fixed, non-extreme items."""
    binary = np.array(
        [item.n_categories == 2 and not item.fixed and not item.extreme for item in items]
    )
    if not binary.any():
        return

    matrix = data.matrix[:, binary]
    freqs = data.frequencies
    observed = matrix != MISSING
    x = np.where(observed, matrix, 0).astype(np.float64)
    wobs = observed * freqs[:, None]

    theta = np.zeros(matrix.shape[0])
    difficulty = np.zeros(matrix.shape[1])
    n_answered = observed.sum(axis=1)
    answered = n_answered > 0

    for iteration in range(PROX_MAX_ITER):
        # Persons who answered each item
        n_j = wobs.sum(axis=0)
        s_j = (wobs * x).sum(axis=0)
        m_person = (wobs * theta[:, None]).sum(axis=0) / n_j
        v_person = (wobs * (theta[:, None] - m_person) ** 2).sum(axis=0) / n_j

        # Items each person answered, with the previous difficulties
        with np.errstate(invalid="ignore", divide="ignore"):
            m_item = (observed * difficulty).sum(axis=1) / n_answered
            v_item = (observed * (difficulty - m_item[:, None]) ** 2).sum(axis=1) / n_answered

        s_j = np.where(s_j == 0, 0.3, np.where(s_j == n_j, s_j - 0.3, s_j))
        difficulty = m_person - np.sqrt(1.0 + v_person / 2.9) * np.log(s_j / (n_j - s_j))
        difficulty -= difficulty.mean()

        score = x.sum(axis=1)
        score = np.where(score == 0, 0.3, np.where(score == n_answered, score - 0.3, score))
        with np.errstate(invalid="ignore", divide="ignore"):
            new_theta = m_item + np.sqrt(1.0 + v_item / 2.9) * np.log(score / (n_answered - score))
        new_theta = np.where(answered, new_theta, 0.0)
        delta = float(np.max(np.abs(new_theta - theta)))
        theta = new_theta
        if delta <= PROX_TOLERANCE:
            break
    logger.debug("PROX stopped after %d iterations (max change %.4g)", iteration + 1, delta)

    w = freqs[answered]
    mean = np.dot(w, theta[answered]) / w.sum()
    sd = np.sqrt(np.dot(w, (theta[answered] - mean) ** 2) / w.sum())
    if not sd > 0:
        sd = 1.0
    slope = 1.0 / sd
    intercept = -mean * slope
    difficulty = np.clip(intercept + slope * difficulty, -EXTREME_DIFFICULTY, EXTREME_DIFFICULTY)

    for b, j in zip(difficulty, np.flatnonzero(binary)):
        item = items[j]
        changes = {"difficulty": float(b)}
        if "discrimination" in item.free_parameter_names:
            # Unit logit slope expressed on the standardised metric
            changes["discrimination"] = float(
                np.clip(sd / item.D, *DISCRIMINATION_START_BOUNDS)
            )
        item.set_parameters(item.parameters.replace(**changes))
