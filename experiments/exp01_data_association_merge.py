from __future__ import annotations

import jax.numpy as jnp

from hybrid_fg.core.types import DiscreteKey, NodeId, format_assignment
from hybrid_fg.hybrid.factor_graph_tree import merge_all
from hybrid_fg.hybrid.gaussian_mixture import ABSENT, GaussianMixtureConditional
from hybrid_fg.linear.gaussian_conditional import GaussianConditional


def setup_association_problem():
    """
    Tiny data-association world in 1D:

      - pose x0 with a prior near 0
      - landmark l0 observed at range +1 from x0, or spurious (M_a)
      - landmark l1 seen either at +2 or +3 from x0 (M_b, three modes,
        the last one meaning "not observed")

    Each measurement is a mixture over its own discrete association key.
    """
    x0, l0, l1 = NodeId(0), NodeId(1), NodeId(2)
    m_a = DiscreteKey(NodeId(100), 2)
    m_b = DiscreteKey(NodeId(101), 3)

    def offset(frontal: NodeId, parent: NodeId, delta: float, sigma: float = 0.1):
        # frontal - parent = delta
        return GaussianConditional(
            [(frontal, jnp.eye(1))],
            jnp.array([delta]),
            parents=[(parent, -jnp.eye(1))],
            sigmas=jnp.array([sigma]),
        )

    obs_a = GaussianMixtureConditional.from_conditionals(
        [l0], [x0], [m_a],
        [offset(l0, x0, 1.0), offset(l0, x0, 1.0, sigma=10.0)],
    )
    obs_b = GaussianMixtureConditional.from_conditionals(
        [l1], [x0], [m_b],
        [offset(l1, x0, 2.0), offset(l1, x0, 3.0), ABSENT],
    )
    return (x0, l0, l1), (obs_a, obs_b)


def main():
    (x0, l0, l1), mixtures = setup_association_problem()

    for m in mixtures:
        m.print()

    merged = merge_all(m.as_factor_graph_tree() for m in mixtures)
    print(f"Merged tree: {merged}")

    # Score every joint association at a fixed guess of the continuous state
    values = {
        x0: jnp.array([0.0]),
        l0: jnp.array([1.05]),
        l1: jnp.array([2.9]),
    }
    for assignment in merged.assignments():
        graph = merged(assignment)
        print(
            f"  {format_assignment(assignment)}: "
            f"{len(graph)} factors, error = {graph.error(values):.3f}"
        )


if __name__ == "__main__":
    main()
