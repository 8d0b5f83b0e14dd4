"""Containers returned by the decompositions.

Everything here is immutable: wrappers that need to add or rescale fields
build a new record with ``dataclasses.replace``.
"""
from collections.abc import Sequence
from dataclasses import dataclass, fields
from typing import Any, Optional

import jax.numpy as jnp
import numpy as np
import pandas as pd


class Layers(Sequence):
    """Ordered per-component matrices, all of shape ``(rows, cols)``.

    ``layers[k]`` is the contribution of component ``k``. ``cumulative()``
    gives the running sums and ``total()`` the sum over every component
    (a zero matrix when there are no components).
    """

    def __init__(self, layers, shape, index=None, columns=None):
        self._layers = tuple(layers)
        self._shape = tuple(shape)
        self.index = index
        self.columns = columns
        for layer in self._layers:
            assert layer.shape == self._shape

    def __getitem__(self, k):
        if isinstance(k, slice):
            return Layers(self._layers[k], self._shape, self.index, self.columns)
        return self._layers[k]

    def __len__(self):
        return len(self._layers)

    def __repr__(self):
        return f"Layers(shape={self.shape})"

    @property
    def shape(self):
        return self._shape + (len(self),)

    def stack(self):
        """rows x cols x components array"""
        if not self._layers:
            return jnp.zeros(self.shape)
        return jnp.stack(self._layers, axis=-1)

    def total(self):
        out = jnp.zeros(self._shape)
        for layer in self._layers:
            out = out + layer
        return out

    def cumulative(self):
        running = []
        out = jnp.zeros(self._shape)
        for layer in self._layers:
            out = out + layer
            running.append(out)
        return Layers(running, self._shape, self.index, self.columns)

    def with_labels(self, index, columns):
        return Layers(self._layers, self._shape, index, columns)

    def map(self, fn):
        return Layers([fn(layer) for layer in self._layers], self._shape, self.index, self.columns)

    def to_frame(self, k):
        return _frame(self._layers[k], self.index, self.columns)


def _frame(a, index=None, columns=None):
    return pd.DataFrame(np.asarray(a), index=index, columns=columns)


@dataclass(frozen=True)
class CAPreproc:
    """Correspondence analysis view of a non-negative matrix.

    Z: deviations from independence (O - E), m: row masses, w: column
    masses, E: expected proportions ``m w'``.
    """
    Z: Any
    m: Any
    w: Any
    E: Any


@dataclass(frozen=True)
class GSVDResult:
    d: Any
    u: Any
    v: Any
    p: Any
    q: Any
    fi: Any
    fj: Any

    @property
    def n_components(self):
        return int(self.d.shape[0])


@dataclass(frozen=True)
class PLSResult:
    d: Any
    u: Any
    v: Any
    p: Any
    q: Any
    fi: Any
    fj: Any
    lx: Any
    ly: Any
    tx: Any = None
    ty: Any = None
    u_hat: Any = None
    v_hat: Any = None
    X_reconstructeds: Optional[Layers] = None
    Y_reconstructeds: Optional[Layers] = None
    X_residuals: Optional[Layers] = None
    Y_residuals: Optional[Layers] = None
    r2_x: Any = None
    r2_y: Any = None
    r2_x_cumulative: Any = None
    r2_y_cumulative: Any = None
    X_reconstructed: Any = None
    Y_reconstructed: Any = None
    X_residual: Any = None
    Y_residual: Any = None
    X_hat: Any = None
    Y_hat: Any = None
    X_hats: Optional[Layers] = None
    Y_hats: Optional[Layers] = None
    beta_matrix: Any = None
    x_center: Any = None
    x_scale: Any = None
    y_center: Any = None
    y_scale: Any = None
    x_index: Any = None
    x_columns: Any = None
    y_index: Any = None
    y_columns: Any = None

    @property
    def n_components(self):
        return int(self.d.shape[0])

    def keys(self):
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def __getitem__(self, name):
        return getattr(self, name)

    def to_frame(self, name, k=None):
        """Labelled DataFrame for a field.

        Matrices shaped like X or Y get that matrix's row and column labels;
        row-score matrices (lx, ly, tx, ty) get the row labels; loading
        matrices get the matching column labels.
        """
        value = getattr(self, name)
        if value is None:
            raise KeyError(f"{name} is not produced by this decomposition")
        if isinstance(value, Layers):
            if k is None:
                raise TypeError(f"{name} holds one matrix per component; pass k")
            return value.to_frame(k)
        side = "y" if name.startswith(("Y_", "ly", "ty", "v", "q", "fj")) else "x"
        index = getattr(self, f"{side}_index")
        columns = getattr(self, f"{side}_columns")
        if name in ("lx", "ly", "tx", "ty"):
            return _frame(value, index=index)
        if name in ("u", "v", "p", "q", "fi", "fj", "u_hat", "v_hat", "beta_matrix"):
            return _frame(value, index=columns)
        if np.ndim(value) == 1:
            return pd.DataFrame({name: np.asarray(value)})
        return _frame(value, index=index, columns=columns)
