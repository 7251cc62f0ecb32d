# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.

import time

import jax.numpy as jnp

from hybrid_fg.core.types import DiscreteKey, NodeId
from hybrid_fg.hybrid.factor_graph_tree import merge_all
from hybrid_fg.hybrid.gaussian_mixture import GaussianMixtureConditional
from hybrid_fg.linear.gaussian_conditional import GaussianConditional


def build_mode_chain(num_mixtures: int = 8, num_modes: int = 2):
    """
    Chain of mixtures x_i | x_{i-1}, M_i, one discrete mode key each:

        x0 --M1--> x1 --M2--> ... --Mn--> xn

    Mode k of M_i moves x by k meters. Every mixture has its own key, so
    the merged tree branches over all of them.
    """
    mixtures = []
    for i in range(1, num_mixtures + 1):
        mode = DiscreteKey(NodeId(1000 + i), num_modes)
        hypotheses = [
            GaussianConditional(
                [(NodeId(i), jnp.eye(1))],
                jnp.array([float(k)]),
                parents=[(NodeId(i - 1), -jnp.eye(1))],
            )
            for k in range(num_modes)
        ]
        mixtures.append(
            GaussianMixtureConditional.from_conditionals(
                [NodeId(i)], [NodeId(i - 1)], [mode], hypotheses
            )
        )
    return mixtures


def run_benchmark(num_mixtures: int = 8, num_modes: int = 2):
    print("=== Mixture Merge Benchmark ===")
    print(f"num_mixtures = {num_mixtures}, num_modes = {num_modes}")

    mixtures = build_mode_chain(num_mixtures, num_modes)
    trees = [m.as_factor_graph_tree() for m in mixtures]

    t0 = time.time()
    merged = merge_all(trees)
    t1 = time.time()

    elapsed = (t1 - t0) * 1000.0
    print(f"Elapsed time: {elapsed:.3f} ms")
    print(f"Leaves: {merged.num_leaves()} (assignments: {num_modes ** num_mixtures})")


if __name__ == "__main__":
    # Example:
    #   python3 benchmarks/bench_mixture_merge.py
    run_benchmark(num_mixtures=6, num_modes=2)
    run_benchmark(num_mixtures=8, num_modes=2)
    run_benchmark(num_mixtures=5, num_modes=3)
