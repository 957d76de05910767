"""k-means clustering (Lloyd's algorithm) over scaled RFM features.

The implementation is explicit rather than delegated to a library so that
initialisation, tie-breaking and empty-cluster handling are part of the
documented contract:

1. **Initialisation**: k-means++ (default) or uniform choice of k distinct
   points, driven by a per-restart ``numpy.random.Generator``.
2. **Assignment**: every point goes to its nearest centroid by Euclidean
   distance; ties go to the lowest centroid index. A cluster left empty is
   re-seeded with the point farthest from its nearest centroid, taken from a
   cluster that keeps at least one member.
3. **Update**: each centroid becomes the mean of its members.
4. **Termination**: assignments unchanged, or ``max_iter`` update steps.

Restart ``i`` always draws from child ``i`` of
``numpy.random.SeedSequence(seed)``, so results are bit-identical whether
restarts run serially or on a process pool.
"""

from __future__ import annotations

import logging
import multiprocessing
import warnings
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

import numpy as np

from rfm_segmentation.errors import (
    ConvergenceWarning,
    InvalidClusterCountError,
    ValidationError,
)
from rfm_segmentation.foundation.scaling import (
    DIMENSIONS,
    ScaledFeatures,
    ScaledFeatureVector,
)

logger = logging.getLogger(__name__)

INIT_METHODS = ("k-means++", "random")

FeatureInput = Union[ScaledFeatures, Sequence[ScaledFeatureVector]]


@dataclass(frozen=True)
class KMeansConfig:
    """Configuration for k-means runs.

    Attributes
    ----------
    n_init:
        Number of independent random initialisations; the lowest-inertia run
        wins
    max_iter:
        Maximum number of centroid update steps per run
    seed:
        Root seed for every restart
    init:
        Initialisation method, 'k-means++' or 'random'
    n_workers:
        Worker processes for running restarts in parallel. None or 1 runs
        serially.
    """

    n_init: int = 25
    max_iter: int = 100
    seed: int = 42
    init: str = "k-means++"
    n_workers: Optional[int] = None

    def __post_init__(self) -> None:
        if self.n_init < 1:
            raise ValueError(f"n_init must be at least 1: {self.n_init}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be at least 1: {self.max_iter}")
        if self.init not in INIT_METHODS:
            raise ValueError(f"init must be one of {INIT_METHODS}: {self.init!r}")
        if self.n_workers is not None and self.n_workers < 1:
            raise ValueError(f"n_workers must be at least 1: {self.n_workers}")


@dataclass(frozen=True)
class ClusterResult:
    """Outcome of k-means for a fixed cluster count.

    Attributes
    ----------
    k:
        Number of clusters
    centroids:
        k points in feature space, indexed by cluster
    assignment:
        customer_id -> cluster index in [0, k), in input order
    inertia:
        Sum of squared distances from each point to its centroid
    n_iter:
        Update steps performed by the winning restart
    converged:
        False when the winning restart stopped at max_iter
    inertia_history:
        Inertia of the initial assignment followed by the inertia after each
        update step of the winning restart (non-increasing)
    seed:
        Root seed the restarts were derived from
    n_init:
        Number of restarts evaluated
    best_restart:
        Index of the winning restart
    dimensions:
        Names of the feature columns the centroids live in
    """

    k: int
    centroids: tuple[tuple[float, ...], ...]
    assignment: Mapping[str, int]
    inertia: float
    n_iter: int
    converged: bool
    inertia_history: tuple[float, ...]
    seed: int
    n_init: int
    best_restart: int
    dimensions: tuple[str, ...] = DIMENSIONS

    @property
    def labels(self) -> list[int]:
        """Cluster index per customer, in input order."""
        return list(self.assignment.values())

    def cluster_sizes(self) -> list[int]:
        sizes = [0] * self.k
        for cluster in self.assignment.values():
            sizes[cluster] += 1
        return sizes

    def members(self, cluster: int) -> list[str]:
        return [cid for cid, label in self.assignment.items() if label == cluster]


@dataclass
class _Run:
    labels: np.ndarray
    centroids: np.ndarray
    inertia: float
    n_iter: int
    converged: bool
    history: list[float]


def _as_matrix(
    features: FeatureInput,
) -> tuple[tuple[str, ...], np.ndarray, tuple[str, ...]]:
    if isinstance(features, ScaledFeatures):
        points = np.asarray(features.values, dtype=float)
        return features.customer_ids, points, features.dimensions

    vectors = list(features)
    customer_ids = tuple(v.customer_id for v in vectors)
    if len(set(customer_ids)) != len(customer_ids):
        raise ValidationError("Feature vectors contain duplicate customer_ids")
    points = np.array(
        [[v.recency_feat, v.frequency_feat, v.monetary_feat] for v in vectors],
        dtype=float,
    ).reshape(len(vectors), len(DIMENSIONS))
    return customer_ids, points, DIMENSIONS


def _validate_k(k: object, n_points: int) -> int:
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise InvalidClusterCountError(k, n_points)
    if not 1 <= k <= n_points:
        raise InvalidClusterCountError(k, n_points)
    return int(k)


def _squared_distances(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    diff = points[:, np.newaxis, :] - centroids[np.newaxis, :, :]
    return (diff**2).sum(axis=2)


def _inertia(points: np.ndarray, centroids: np.ndarray, labels: np.ndarray) -> float:
    return float(((points - centroids[labels]) ** 2).sum())


def _init_kmeans_plus_plus(
    points: np.ndarray, k: int, rng: np.random.Generator
) -> np.ndarray:
    n = len(points)
    chosen = [int(rng.integers(n))]
    closest = ((points - points[chosen[0]]) ** 2).sum(axis=1)
    for _ in range(1, k):
        total = closest.sum()
        if total > 0:
            idx = int(rng.choice(n, p=closest / total))
        else:
            # Remaining points all coincide with a chosen centre
            remaining = np.setdiff1d(np.arange(n), chosen)
            idx = int(rng.choice(remaining))
        chosen.append(idx)
        closest = np.minimum(closest, ((points - points[idx]) ** 2).sum(axis=1))
    return points[chosen].copy()


def _init_random(points: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    return points[rng.choice(len(points), size=k, replace=False)].copy()


def _assign(
    points: np.ndarray, centroids: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Nearest-centroid assignment with empty-cluster repair.

    Returns the labels and the (possibly re-seeded) centroids.
    """
    k = len(centroids)
    distances = _squared_distances(points, centroids)
    labels = distances.argmin(axis=1)
    counts = np.bincount(labels, minlength=k)
    empty = np.flatnonzero(counts == 0)
    if empty.size == 0:
        return labels, centroids

    centroids = centroids.copy()
    nearest = distances[np.arange(len(points)), labels]
    for cluster in empty:
        # Only steal from clusters that keep a member; exists whenever n >= k
        movable = counts[labels] > 1
        idx = int(np.where(movable, nearest, -1.0).argmax())
        counts[labels[idx]] -= 1
        labels[idx] = cluster
        counts[cluster] += 1
        centroids[cluster] = points[idx]
        nearest[idx] = 0.0
    return labels, centroids


def _update_centroids(points: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    sums = np.zeros((k, points.shape[1]))
    np.add.at(sums, labels, points)
    counts = np.bincount(labels, minlength=k)
    return sums / counts[:, np.newaxis]


def _run_restart(
    points: np.ndarray,
    k: int,
    seed_sequence: np.random.SeedSequence,
    init: str,
    max_iter: int,
) -> _Run:
    """One full Lloyd run. Module level so it can be pickled for workers."""
    rng = np.random.default_rng(seed_sequence)
    if init == "random":
        centroids = _init_random(points, k, rng)
    else:
        centroids = _init_kmeans_plus_plus(points, k, rng)

    labels, centroids = _assign(points, centroids)
    history = [_inertia(points, centroids, labels)]
    converged = False
    n_iter = 0

    while n_iter < max_iter:
        centroids = _update_centroids(points, labels, k)
        n_iter += 1
        history.append(_inertia(points, centroids, labels))

        new_labels, new_centroids = _assign(points, centroids)
        if np.array_equal(new_labels, labels) and np.array_equal(
            new_centroids, centroids
        ):
            converged = True
            break
        labels, centroids = new_labels, new_centroids

    if not converged:
        # Last reassignment left centroids stale; make them the member means
        centroids = _update_centroids(points, labels, k)
        history.append(_inertia(points, centroids, labels))

    return _Run(
        labels=labels,
        centroids=centroids,
        inertia=history[-1],
        n_iter=n_iter,
        converged=converged,
        history=history,
    )


def run_kmeans(
    features: FeatureInput,
    k: int,
    config: Optional[KMeansConfig] = None,
) -> ClusterResult:
    """Cluster customers into ``k`` groups with restarted Lloyd iterations.

    Parameters
    ----------
    features:
        Output of :func:`~rfm_segmentation.foundation.scaling.scale_features`
        or a sequence of :class:`ScaledFeatureVector`
    k:
        Number of clusters, 1 <= k <= number of customers
    config:
        Restart count, iteration cap, seed, initialisation and parallelism

    Returns
    -------
    ClusterResult
        The restart with the lowest inertia (ties go to the earliest restart)

    Raises
    ------
    InvalidClusterCountError
        If ``k`` is not an integer in ``[1, N]``.

    Warns
    -----
    ConvergenceWarning
        If the winning restart hit ``max_iter`` before assignments settled.

    Examples
    --------
    >>> features = scale_features(aggregates)
    >>> result = run_kmeans(features, 4, KMeansConfig(seed=7))
    >>> result.cluster_sizes()
    [112, 48, 230, 95]
    """
    config = config or KMeansConfig()
    customer_ids, points, dimensions = _as_matrix(features)
    k = _validate_k(k, len(points))

    seed_sequences = np.random.SeedSequence(config.seed).spawn(config.n_init)
    jobs = [(points, k, seq, config.init, config.max_iter) for seq in seed_sequences]

    use_parallel = (
        config.n_workers is not None and config.n_workers > 1 and config.n_init > 1
    )
    if use_parallel:
        workers = min(config.n_workers, config.n_init)
        with multiprocessing.Pool(processes=workers) as pool:
            runs = pool.starmap(_run_restart, jobs)
    else:
        runs = [_run_restart(*job) for job in jobs]

    # min() keeps the first of equal inertias
    best_restart = min(range(len(runs)), key=lambda i: runs[i].inertia)
    best = runs[best_restart]

    not_converged = sum(1 for run in runs if not run.converged)
    if not_converged:
        logger.debug(
            f"k={k}: {not_converged} of {len(runs)} restarts hit max_iter={config.max_iter}"
        )
    if not best.converged:
        warnings.warn(
            f"k-means with k={k} reached max_iter={config.max_iter} without "
            "stable assignments; returning the last iterate",
            ConvergenceWarning,
            stacklevel=2,
        )

    logger.info(
        f"k-means k={k}: inertia={best.inertia:.4f} after {best.n_iter} iterations "
        f"(restart {best_restart + 1}/{config.n_init})"
    )

    return ClusterResult(
        k=k,
        centroids=tuple(tuple(float(v) for v in row) for row in best.centroids),
        assignment={cid: int(label) for cid, label in zip(customer_ids, best.labels)},
        inertia=best.inertia,
        n_iter=best.n_iter,
        converged=best.converged,
        inertia_history=tuple(best.history),
        seed=config.seed,
        n_init=config.n_init,
        best_restart=best_restart,
        dimensions=dimensions,
    )
