import argparse
import functools
import logging
import pickle

import jax
import jax.numpy as jnp
import joblib

import config
import models

logger = logging.getLogger("eval")

METHODS = {
    "plsca_can": models.plsca_can,
    "plsca_cor": models.plsca_cor,
    "rrr": models.rrr,
}


@functools.partial(jax.jit, static_argnames=["n", "levels"])
def disjunctive(key, n, levels):
    # every level observed at least once so no column mass is zero
    rng1, rng2 = jax.random.split(key)
    codes = jnp.concatenate([jnp.arange(levels), jax.random.randint(rng1, (n - levels,), 0, levels)])
    codes = jax.random.permutation(rng2, codes)
    return jax.nn.one_hot(codes, levels)


def gen_categorical(key, n, levels):
    keys = jax.random.split(key, len(levels))
    return jnp.concatenate([disjunctive(k, n, l) for k, l in zip(keys, levels)], axis=1)


@functools.partial(jax.jit, static_argnames=["n", "p", "q"])
def gen_continuous(key, n, p, q, eps):
    rng1, rng2, rng3 = jax.random.split(key, 3)
    X = jax.random.normal(rng1, (n, p))
    beta = jax.random.normal(rng2, (p, q))
    Y = X @ beta + eps * jax.random.normal(rng3, (n, q))
    return X, Y


def eval_trial(seed, method, n, levels_x, levels_y, p, q, eps, components, tol):
    key = jax.random.key(seed)
    rng1, rng2 = jax.random.split(key)
    if method == "rrr":
        X, Y = gen_continuous(rng1, n, p, q, eps)
    else:
        X = gen_categorical(rng1, n, levels_x)
        Y = gen_categorical(rng2, n, levels_y)

    res = METHODS[method](X, Y, components=components, tol=tol)
    k = res.n_components
    cross = res.lx.T @ res.ly
    gram_x = res.lx.T @ res.lx
    gram_y = res.ly.T @ res.ly
    off = ~jnp.eye(k, dtype=bool)

    out = {
        "k": k,
        "d": [float(x) for x in res.d],
        "cross_err": float(jnp.max(jnp.abs(jnp.diag(cross) - res.d))) if k else 0.0,
        "lx_offdiag": float(jnp.max(jnp.abs(gram_x[off]))) if k > 1 else 0.0,
        "ly_offdiag": float(jnp.max(jnp.abs(gram_y[off]))) if k > 1 else 0.0,
    }
    if res.X_hat is not None:
        out["x_residual"] = float(jnp.linalg.norm(X - res.X_hat))
        out["r2_x_cumulative"] = [float(x) for x in res.r2_x_cumulative]
        out["r2_y_cumulative"] = [float(x) for x in res.r2_y_cumulative]
    return out


def summarize(results):
    summary = {
        "trials": len(results),
        "max_k": max(r["k"] for r in results),
        "cross_err": max(r["cross_err"] for r in results),
        "lx_offdiag": max(r["lx_offdiag"] for r in results),
        "ly_offdiag": max(r["ly_offdiag"] for r in results),
    }
    for i in range(summary["max_k"]):
        ds = [r["d"][i] for r in results if r["k"] > i]
        summary[f"d{i + 1}"] = sum(ds) / len(ds)
    if "x_residual" in results[0]:
        summary["x_residual"] = max(r["x_residual"] for r in results)
    return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--method", type=str, default="plsca_can", choices=sorted(METHODS))
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--trials", type=int, default=100)
    parser.add_argument("--n", type=int, default=50)
    parser.add_argument("--levels_x", type=int, nargs="+", default=[3, 4])
    parser.add_argument("--levels_y", type=int, nargs="+", default=[2, 5])
    parser.add_argument("--p", type=int, default=5)
    parser.add_argument("--q", type=int, default=3)
    parser.add_argument("--eps", type=float, default=1.0)
    parser.add_argument("--components", type=int, default=0)
    parser.add_argument("--tol", type=float, default=config.TOL)
    parser.add_argument("--jobs", type=int, default=-1)
    parser.add_argument("--out", type=str, default=None)
    parser.add_argument("--log_level", type=str, default="INFO")
    args = parser.parse_args()
    config.setup_logging(args.log_level)

    trial = functools.partial(
        eval_trial,
        method=args.method, n=args.n,
        levels_x=tuple(args.levels_x), levels_y=tuple(args.levels_y),
        p=args.p, q=args.q, eps=args.eps,
        components=args.components, tol=args.tol,
    )
    results = joblib.Parallel(n_jobs=args.jobs, verbose=10, backend="loky")(
        joblib.delayed(trial)(args.seed + t) for t in range(args.trials)
    )

    for k, v in summarize(results).items():
        logger.info("%s: %s", k, v)

    if args.out:
        with open(args.out, "wb") as f:
            pickle.dump(results, f)
