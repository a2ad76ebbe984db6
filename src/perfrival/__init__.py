"""perfrival: adaptive benchmark competitions.

Runs a set of micro-benchmarks against a baseline, checks the timing
ratios against competition limits and reruns the suite until the
results are stable or the rerun budget is spent.
"""

__version__ = "0.1.0"
