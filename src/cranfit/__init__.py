"""cranfit: Bayesian inference for heavy-tailed degree distributions.

The package fits a discrete power law to the exceedances of a threshold, or a
negative-binomial bulk with a power-law tail to the whole sample, by
random-walk Metropolis-Hastings. Most users will import the sampler entry
points together with the distribution functions and the plotting utilities:

```python
from cranfit import distributions, mcmc, utils

res = mcmc.mcmc_pl(x, u=5, n_iter=5000, seed=1)
utils.print_fit_report(res)
```
"""

from . import distributions, likelihood, mcmc, priors, trace, utils
from .errors import ConfigurationError

__version__ = "0.1.0"

__all__ = [
    "distributions",
    "likelihood",
    "mcmc",
    "priors",
    "trace",
    "utils",
    "ConfigurationError",
]
