"""Global configuration for lqsolve.

This module provides global configuration settings for the lqsolve library,
including the default data type and device used when plain Python sequences
are converted to tensors.

The default dtype is :obj:`torch.float64`. The machine precision of the
working dtype drives every numerical safeguard of the solvers, for instance
the ill-conditioning test of SYMMLQ:

.. math::

    \\kappa(T_k) \\, \\epsilon \\geq 0.1

where :math:`\\kappa(T_k)` is the running condition number estimate of the
projected tridiagonal operator and :math:`\\epsilon` the unit roundoff.

Example
-------
>>> import lqsolve as lq
>>> print(lq.config.DEFAULT_DTYPE)
torch.float64

>>> # Change the default dtype
>>> lq.config.DEFAULT_DTYPE = torch.float32

"""

from typing import Any

import torch


class LqsolveConfig:
    """Global configuration class for lqsolve.

    Attributes
    ----------
    DEFAULT_DTYPE : torch.dtype
        The default real floating data type for vectors and matrices built
        from non-tensor input. Defaults to :obj:`torch.float64`.

    DEFAULT_DEVICE : torch.device
        The default device for tensors built from non-tensor input.
        Defaults to CPU.

    Notes
    -----
    Tensors passed to the solvers keep their own dtype and device; the
    configuration only applies to conversions performed by
    :func:`lqsolve.operators.as_vector` and
    :func:`lqsolve.operators.aslinearoperator`.

    Working in :obj:`torch.float32` is possible, but the tolerances derived
    from machine precision become correspondingly looser and the
    ill-conditioning bound is reached much earlier.

    """

    def __init__(self) -> None:
        """Initialize the configuration with default values."""
        self.DEFAULT_DTYPE: Any = torch.float64
        self.DEFAULT_DEVICE: Any = torch.device("cpu")

    def reset(self) -> None:
        """Reset configuration to default values.

        Example
        -------
        >>> import lqsolve as lq
        >>> lq.config.DEFAULT_DTYPE = torch.float32
        >>> lq.config.reset()
        >>> print(lq.config.DEFAULT_DTYPE)
        torch.float64

        """
        self.DEFAULT_DTYPE = torch.float64
        self.DEFAULT_DEVICE = torch.device("cpu")

    def __repr__(self) -> str:
        """Return a string representation of the configuration."""
        return (
            f"LqsolveConfig(\n"
            f"    DEFAULT_DTYPE={self.DEFAULT_DTYPE},\n"
            f"    DEFAULT_DEVICE={self.DEFAULT_DEVICE}\n"
            f")"
        )


# Global configuration instance
config = LqsolveConfig()
