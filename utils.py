import logging

import jax
import jax.numpy as jnp
import numpy as np

from config import TOL
from errors import DecompositionError, ShapeMismatchError, SingularMetricError
from results import CAPreproc, GSVDResult

logger = logging.getLogger(__name__)


def as_matrix(X, name="X"):
    X = jnp.asarray(np.asarray(X, dtype=float))
    if X.ndim != 2:
        raise ShapeMismatchError(f"{name} must be 2-D, got shape {X.shape}")
    if not bool(jnp.all(jnp.isfinite(X))):
        raise DecompositionError(f"{name} contains non-finite values")
    return X


def scale(X, center=True, scale=True):
    # scale=True divides by the root mean square over n - 1 (the sample sd
    # once centered); zero-spread columns are left as is
    X = jnp.asarray(X)
    n = X.shape[0]

    if center is True:
        center = X.mean(axis=0)
    elif center is False:
        center = None
    else:
        center = jnp.asarray(center)
    if center is not None:
        X = X - center

    if scale is True:
        scale = jnp.sqrt((X ** 2).sum(axis=0) / max(n - 1, 1))
        scale = jnp.where(scale == 0, 1.0, scale)
    elif scale is False:
        scale = None
    else:
        scale = jnp.asarray(scale)
    if scale is not None:
        X = X / scale

    return X, center, scale


@jax.jit
def _svd_spectrum(X):
    u, d, vt = jnp.linalg.svd(X, full_matrices=False)
    n, p = X.shape
    gram = X.T @ X if p <= n else X @ X.T
    # real symmetric problem: eigenvalues are real, rounding shows up as
    # tiny or negative values instead of imaginary parts
    lam = jnp.linalg.eigvalsh(gram)[::-1]
    return u, d, vt.T, lam


def tolerance_svd(X, k=0, tol=TOL):
    # NOTE: a component is dropped when its Gram eigenvalue is <= tol, or when
    # its eigenvalue or singular value is at most tol * max(X.shape) times the
    # leading one
    X = jnp.asarray(X)
    if min(X.shape) == 0:
        return jnp.zeros((X.shape[0], 0)), jnp.zeros((0,)), jnp.zeros((X.shape[1], 0))

    u, d, v, lam = _svd_spectrum(X)
    rel = tol * max(X.shape)
    keep = min(
        int(jnp.sum(lam > max(tol, rel * float(lam[0])))),
        int(jnp.sum(d > rel * float(d[0]))),
    )
    if keep < d.shape[0]:
        logger.debug("dropped %d of %d components at tol=%g", d.shape[0] - keep, d.shape[0], tol)
    if k > 0:
        keep = min(keep, k)
    return u[:, :keep], d[:keep], v[:, :keep]


def matrix_power(M, power, tol=TOL):
    # U d**power V' keeps the shape of M, so matrix_power(X, -1) is n x p
    M = jnp.asarray(M)
    if M.ndim == 1:
        return M ** power
    u, d, v = tolerance_svd(M, tol=tol)
    return (u * d ** power) @ v.T


def _is_diagonal(W):
    return bool(jnp.all(W == jnp.diag(jnp.diag(W))))


def check_metric(W, n, name="W"):
    """None is the identity; diagonal metrics come back as vectors."""
    if W is None:
        return jnp.ones(n)
    W = jnp.asarray(np.asarray(W, dtype=float))
    if W.ndim == 2 and W.shape[0] == W.shape[1] and _is_diagonal(W):
        W = jnp.diag(W)

    if W.ndim == 1:
        if W.shape[0] != n:
            raise ShapeMismatchError(f"{name} has {W.shape[0]} entries, expected {n}")
        if not bool(jnp.all(jnp.isfinite(W))) or bool(jnp.any(W <= 0)):
            raise SingularMetricError(f"{name} needs finite, strictly positive diagonal entries")
        return W

    if W.ndim != 2 or W.shape[0] != W.shape[1]:
        raise ShapeMismatchError(f"{name} must be a vector or a square matrix, got shape {W.shape}")
    if W.shape[0] != n:
        raise ShapeMismatchError(f"{name} is {W.shape[0]} x {W.shape[0]}, expected {n} x {n}")
    if not bool(jnp.all(jnp.isfinite(W))):
        raise SingularMetricError(f"{name} contains non-finite values")
    if not bool(jnp.allclose(W, W.T)):
        raise SingularMetricError(f"{name} is not symmetric")
    lam = jnp.linalg.eigvalsh(W)
    if float(lam[-1]) <= 0 or float(lam[0]) <= float(lam[-1]) * n * TOL:
        raise SingularMetricError(f"{name} is singular (smallest eigenvalue {float(lam[0]):g})")
    return W


def metric_power(W, power):
    """Power of a metric already accepted by check_metric."""
    if W.ndim == 1:
        return W ** power
    lam, vec = jnp.linalg.eigh(W)
    return (vec * lam ** power) @ vec.T


def left(W, A):
    """W @ A for a diagonal (1-D) or full metric."""
    if W.ndim == 1:
        return W.reshape((-1,) + (1,) * (A.ndim - 1)) * A
    return W @ A


def weigh(X, LW, RW):
    """LW @ X @ RW for diagonal or full metrics."""
    X = left(LW, X)
    if RW.ndim == 1:
        return X * RW
    return X @ RW


def gsvd(Z, LW=None, RW=None, k=0, tol=TOL):
    """Generalized SVD: ``LW^(1/2) Z RW^(1/2) = U D V'``, ``p' LW p = q' RW q = I``."""
    Z = as_matrix(Z, "Z")
    LW = check_metric(LW, Z.shape[0], "LW")
    RW = check_metric(RW, Z.shape[1], "RW")

    u, d, v = tolerance_svd(weigh(Z, metric_power(LW, 0.5), metric_power(RW, 0.5)), k=k, tol=tol)

    p = left(metric_power(LW, -0.5), u)
    q = left(metric_power(RW, -0.5), v)
    fi = left(LW, p) * d
    fj = left(RW, q) * d
    return GSVDResult(d=d, u=u, v=v, p=p, q=q, fi=fi, fj=fj)


def ca_preproc(X):
    """Deviations ``Z = O - m w'`` of the relative frequencies from independence."""
    X = as_matrix(X)
    if bool(jnp.any(X < 0)):
        raise DecompositionError("correspondence analysis needs non-negative data")
    total = X.sum()
    if float(total) <= 0:
        raise DecompositionError("correspondence analysis needs a positive grand total")
    O = X / total
    m = O.sum(axis=1)
    w = O.sum(axis=0)
    E = jnp.outer(m, w)
    return CAPreproc(Z=O - E, m=m, w=w, E=E)
