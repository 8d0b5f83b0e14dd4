import logging
from dataclasses import fields, replace

import jax
import jax.numpy as jnp
import numpy as np
import pandas as pd

import utils
from config import TOL
from errors import ShapeMismatchError, SingularMetricError
from results import Layers, PLSResult

logger = logging.getLogger(__name__)


def labels(X):
    if isinstance(X, pd.DataFrame):
        return list(X.index), list(X.columns)
    return None, None


def _relabel(result, x_labels, y_labels):
    changes = dict(
        x_index=x_labels[0], x_columns=x_labels[1],
        y_index=y_labels[0], y_columns=y_labels[1],
    )
    for f in fields(result):
        value = getattr(result, f.name)
        if isinstance(value, Layers):
            index, columns = x_labels if f.name.startswith("X") else y_labels
            changes[f.name] = value.with_labels(index, columns)
    return replace(result, **changes)


def _labelled(a, index, columns):
    if index is None:
        return a
    return pd.DataFrame(np.asarray(a), index=index, columns=columns)


def _check_pair(X, Y):
    X = utils.as_matrix(X, "X")
    Y = utils.as_matrix(Y, "Y")
    if X.shape[0] != Y.shape[0]:
        raise ShapeMismatchError(f"X has {X.shape[0]} rows but Y has {Y.shape[0]}")
    return X, Y


def _columns(cols, n):
    if not cols:
        return jnp.zeros((n, 0))
    return jnp.stack(cols, axis=1)


def gplssvd(X, Y, XLW=None, YLW=None, XRW=None, YRW=None, components=0, tol=TOL):
    """Generalized PLS-SVD: gsvd of the row-weighted cross-product, with ``lx' ly = diag(d)``."""
    X, Y = _check_pair(X, Y)
    n, p, q = X.shape[0], X.shape[1], Y.shape[1]

    XLW = utils.check_metric(XLW, n, "XLW")
    YLW = utils.check_metric(YLW, n, "YLW")
    XRW = utils.check_metric(XRW, p, "XRW")
    YRW = utils.check_metric(YRW, q, "YRW")

    Xw = utils.left(utils.metric_power(XLW, 0.5), X)
    Yw = utils.left(utils.metric_power(YLW, 0.5), Y)

    res = utils.gsvd(Xw.T @ Yw, XRW, YRW, k=components, tol=tol)
    lx = Xw @ utils.left(XRW, res.p)
    ly = Yw @ utils.left(YRW, res.q)

    return PLSResult(d=res.d, u=res.u, v=res.v, p=res.p, q=res.q, fi=res.fi, fj=res.fj, lx=lx, ly=ly)


def gpls_cor(X, Y, XLW=None, YLW=None, XRW=None, YRW=None, components=0, tol=TOL):
    """Single gplssvd, no deflation."""
    res = gplssvd(X, Y, XLW, YLW, XRW, YRW, components=components, tol=tol)
    return _relabel(res, labels(X), labels(Y))


@jax.jit
def _deflate(X, t):
    loading = X.T @ t
    return loading, X - jnp.outer(t, loading)


def gpls_can(X, Y, XLW=None, YLW=None, XRW=None, YRW=None, components=0, tol=TOL):
    """Generalized PLS canonical decomposition by rank-one fits.

    Each side is deflated by its own normed latent vector, so lx columns are
    orthogonal, as are ly columns, and only ``diag(lx' ly) == d``.
    ``components = 0`` extracts until nothing survives ``tol``.

    NOTE: ``r2_x`` is renormalised over the returned components (it sums to
    1), so ``components=k`` does not give ``r2_x[:k]`` of the full fit.
    ``r2_x_cumulative`` is the share of the total weighted sum of squares
    and is truncation consistent. Same for Y.
    """
    x_labels, y_labels = labels(X), labels(Y)
    X, Y = _check_pair(X, Y)
    n, p, q = X.shape[0], X.shape[1], Y.shape[1]

    XLW = utils.check_metric(XLW, n, "XLW")
    YLW = utils.check_metric(YLW, n, "YLW")
    XRW = utils.check_metric(XRW, p, "XRW")
    YRW = utils.check_metric(YRW, q, "YRW")

    xl_ihalf, xr_ihalf = utils.metric_power(XLW, -0.5), utils.metric_power(XRW, -0.5)
    yl_ihalf, yr_ihalf = utils.metric_power(YLW, -0.5), utils.metric_power(YRW, -0.5)

    X_deflate = utils.weigh(X, utils.metric_power(XLW, 0.5), utils.metric_power(XRW, 0.5))
    Y_deflate = utils.weigh(Y, utils.metric_power(YLW, 0.5), utils.metric_power(YRW, 0.5))
    x_trace = jnp.sum(X_deflate ** 2)
    y_trace = jnp.sum(Y_deflate ** 2)

    max_components = min(n, p, q)
    if components > 0:
        max_components = min(components, max_components)

    d, u, v, lx, ly, tx, ty, u_hat, v_hat = ([] for _ in range(9))
    X_layers, Y_layers, X_resids, Y_resids = [], [], [], []

    for i in range(max_components):
        step = gplssvd(X_deflate, Y_deflate, components=1, tol=tol)
        if step.n_components == 0:
            logger.debug("no singular value above tol=%g after %d components", tol, i)
            break

        d.append(step.d[0])
        u.append(step.u[:, 0])
        v.append(step.v[:, 0])
        lx.append(step.lx[:, 0])
        ly.append(step.ly[:, 0])

        tx.append(lx[-1] / jnp.linalg.norm(lx[-1]))
        ty.append(ly[-1] / jnp.linalg.norm(ly[-1]))

        x_loading, X_deflate = _deflate(X_deflate, tx[-1])
        y_loading, Y_deflate = _deflate(Y_deflate, ty[-1])
        u_hat.append(x_loading)
        v_hat.append(y_loading)

        X_layers.append(utils.weigh(jnp.outer(tx[-1], x_loading), xl_ihalf, xr_ihalf))
        Y_layers.append(utils.weigh(jnp.outer(ty[-1], y_loading), yl_ihalf, yr_ihalf))
        X_resids.append(utils.weigh(X_deflate, xl_ihalf, xr_ihalf))
        Y_resids.append(utils.weigh(Y_deflate, yl_ihalf, yr_ihalf))

    logger.debug("gpls_can extracted %d components", len(d))

    d = jnp.asarray(d) if d else jnp.zeros((0,))
    u, v = _columns(u, p), _columns(v, q)
    u_hat, v_hat = _columns(u_hat, p), _columns(v_hat, q)
    P = utils.left(xr_ihalf, u)
    Q = utils.left(yr_ihalf, v)

    X_reconstructeds = Layers(X_layers, X.shape)
    Y_reconstructeds = Layers(Y_layers, Y.shape)
    X_reconstructed = X_reconstructeds.total()
    Y_reconstructed = Y_reconstructeds.total()

    x_ss = jnp.sum(u_hat ** 2, axis=0)
    y_ss = jnp.sum(v_hat ** 2, axis=0)

    res = PLSResult(
        d=d, u=u, v=v, p=P, q=Q,
        fi=utils.left(XRW, P) * d,
        fj=utils.left(YRW, Q) * d,
        lx=_columns(lx, n), ly=_columns(ly, n),
        tx=_columns(tx, n), ty=_columns(ty, n),
        u_hat=u_hat, v_hat=v_hat,
        X_reconstructeds=X_reconstructeds,
        Y_reconstructeds=Y_reconstructeds,
        X_residuals=Layers(X_resids, X.shape),
        Y_residuals=Layers(Y_resids, Y.shape),
        r2_x=_share(x_ss, jnp.sum(x_ss)),
        r2_y=_share(y_ss, jnp.sum(y_ss)),
        r2_x_cumulative=_share(jnp.cumsum(x_ss), x_trace),
        r2_y_cumulative=_share(jnp.cumsum(y_ss), y_trace),
        X_reconstructed=X_reconstructed,
        Y_reconstructed=Y_reconstructed,
        X_residual=X - X_reconstructed,
        Y_residual=Y - Y_reconstructed,
    )
    return _relabel(res, x_labels, y_labels)


def _share(part, whole):
    if part.shape[0] == 0:
        return part
    return part / whole


def plsca_cor(X, Y, components=0, tol=TOL):
    """PLS-CA, correlation flavour: gpls_cor with reciprocal masses as metrics."""
    x_labels, y_labels = labels(X), labels(Y)
    X, Y = _check_pair(X, Y)
    X_ca = utils.ca_preproc(X)
    Y_ca = utils.ca_preproc(Y)

    res = gpls_cor(
        X_ca.Z, Y_ca.Z,
        XLW=1 / X_ca.m, XRW=1 / X_ca.w,
        YLW=1 / Y_ca.m, YRW=1 / Y_ca.w,
        components=components, tol=tol,
    )
    return _relabel(res, x_labels, y_labels)


def plsca_can(X, Y, components=0, tol=TOL):
    """PLS-CA canonical decomposition, reconstructions in the units of the data.

    ``X_hat = (X_reconstructed + E) * sum(X)``; X_residual and X_hats are
    rescaled the same way, and likewise for Y.
    """
    x_labels, y_labels = labels(X), labels(Y)
    X, Y = _check_pair(X, Y)
    X_ca = utils.ca_preproc(X)
    Y_ca = utils.ca_preproc(Y)

    res = gpls_can(
        X_ca.Z, Y_ca.Z,
        XLW=1 / X_ca.m, XRW=1 / X_ca.w,
        YLW=1 / Y_ca.m, YRW=1 / Y_ca.w,
        components=components, tol=tol,
    )

    x_total, y_total = X.sum(), Y.sum()
    # labelled inputs get labelled data-unit matrices back
    res = replace(
        res,
        X_hat=_labelled((res.X_reconstructed + X_ca.E) * x_total, *x_labels),
        Y_hat=_labelled((res.Y_reconstructed + Y_ca.E) * y_total, *y_labels),
        X_residual=_labelled((X_ca.Z - res.X_reconstructed + X_ca.E) * x_total, *x_labels),
        Y_residual=_labelled((Y_ca.Z - res.Y_reconstructed + Y_ca.E) * y_total, *y_labels),
        X_hats=res.X_reconstructeds.map(lambda layer: (layer + X_ca.E) * x_total),
        Y_hats=res.Y_reconstructeds.map(lambda layer: (layer + Y_ca.E) * y_total),
    )
    return _relabel(res, x_labels, y_labels)


def rrr(X, Y, center_x=True, center_y=True, scale_x=True, scale_y=True, components=0, tol=TOL):
    # X'X as the column metric of X^-1 whitens the predictors; needs full
    # column rank
    x_labels, y_labels = labels(X), labels(Y)
    X, Y = _check_pair(X, Y)
    X, x_center, x_scale = utils.scale(X, center_x, scale_x)
    Y, y_center, y_scale = utils.scale(Y, center_y, scale_y)

    _, dx, _ = utils.tolerance_svd(X, tol=tol)
    if dx.shape[0] < X.shape[1]:
        raise SingularMetricError(
            f"X has rank {dx.shape[0]} < {X.shape[1]} columns, so X'X is not invertible"
        )

    res = gpls_cor(utils.matrix_power(X, -1, tol=tol), Y, XRW=X.T @ X, components=components, tol=tol)
    res = replace(
        res,
        beta_matrix=res.p * res.d,
        x_center=x_center, x_scale=x_scale,
        y_center=y_center, y_scale=y_scale,
    )
    return _relabel(res, x_labels, y_labels)


def rda(X, Y, center_x=True, center_y=True, scale_x=True, scale_y=True, components=0, tol=TOL):
    return rrr(X, Y, center_x=center_x, center_y=center_y, scale_x=scale_x, scale_y=scale_y,
               components=components, tol=tol)
