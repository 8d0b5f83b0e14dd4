import logging

import jax
import jax.numpy as jnp

# machine epsilon only means something in double precision
jax.config.update("jax_enable_x64", True)

# absolute floor for Gram eigenvalues (squared singular values); scaled by
# max(shape) it is also the cutoff relative to the leading component
TOL = float(jnp.finfo(jnp.float64).eps)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


def setup_logging(level="INFO"):
    logging.basicConfig(level=getattr(logging, str(level).upper()), format=LOG_FORMAT)
