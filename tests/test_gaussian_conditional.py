from __future__ import annotations

import jax.numpy as jnp
import pytest

from hybrid_fg.core.errors import DimensionMismatch
from hybrid_fg.core.types import NodeId
from hybrid_fg.linear.gaussian_conditional import GaussianConditional
from hybrid_fg.linear.jacobian_factor import JacobianFactor


X = NodeId(0)
Z = NodeId(1)


def make_conditional(d: float = 1.0, sigma: float = 0.5) -> GaussianConditional:
    """
    p(x | z):  2 x - z = d,  sigma = 0.5
    """
    return GaussianConditional(
        [(X, jnp.array([[2.0]]))],
        jnp.array([d]),
        parents=[(Z, jnp.array([[-1.0]]))],
        sigmas=jnp.array([sigma]),
    )


def test_introspection():
    c = make_conditional()

    assert c.frontals == (X,)
    assert c.parents == (Z,)
    assert c.keys == (X, Z)
    assert c.nr_frontals == 1
    assert c.rows() == 1
    assert jnp.allclose(c.R(), jnp.array([[2.0]]))
    assert jnp.allclose(c.S(Z), jnp.array([[-1.0]]))


def test_to_factor_is_whitened():
    c = make_conditional(d=1.0, sigma=0.5)

    f = c.to_factor()

    assert isinstance(f, JacobianFactor)
    assert f.keys == (X, Z)
    # Rows are divided by sigma
    assert float(f.matrices[0][0, 0]) == pytest.approx(4.0)
    assert float(f.matrices[1][0, 0]) == pytest.approx(-2.0)
    assert float(f.rhs[0]) == pytest.approx(2.0)


def test_error_matches_factor_error():
    c = make_conditional(d=1.0, sigma=0.5)
    values = {X: jnp.array([1.0]), Z: jnp.array([0.0])}

    # r = (2*1 - 0 - 1) / 0.5 = 2  ->  0.5 * 4 = 2
    assert c.error(values) == pytest.approx(2.0)
    assert c.to_factor().error(values) == pytest.approx(2.0)


def test_solve_back_substitutes():
    c = make_conditional(d=1.0)

    x = c.solve({Z: jnp.array([3.0])})

    # 2 x = 1 + 3
    assert float(x[X][0]) == pytest.approx(2.0)


def test_likelihood_fixes_frontals():
    c = make_conditional(d=1.0, sigma=0.5)

    f = c.likelihood({X: jnp.array([1.0])})

    assert f.keys == (Z,)
    # At z = 1 the conditional is satisfied exactly
    assert f.error({Z: jnp.array([1.0])}) == pytest.approx(0.0)
    assert f.error({Z: jnp.array([0.0])}) == pytest.approx(2.0)


def test_equals_with_tolerance():
    c0 = make_conditional(d=1.0)
    c1 = make_conditional(d=1.001)

    assert c0.equals(make_conditional(d=1.0))
    assert not c0.equals(c1)
    assert c0.equals(c1, tol=1e-2)
    assert not c0.equals(GaussianConditional.from_mean(X, jnp.array([1.0])))


def test_from_mean():
    c = GaussianConditional.from_mean(X, jnp.array([1.0, 2.0]), sigma=2.0)

    assert c.frontals == (X,)
    assert c.parents == ()
    assert c.rows() == 2
    assert c.error({X: jnp.array([1.0, 2.0])}) == pytest.approx(0.0)
    assert c.error({X: jnp.array([3.0, 2.0])}) == pytest.approx(0.5)


def test_shape_validation():
    # R must be square
    with pytest.raises(DimensionMismatch):
        GaussianConditional([(X, jnp.ones((2, 1)))], jnp.zeros(2))

    # Parent block rows must match d
    with pytest.raises(DimensionMismatch):
        GaussianConditional(
            [(X, jnp.eye(2))], jnp.zeros(2), parents=[(Z, jnp.ones((3, 1)))]
        )

    # A key cannot be both frontal and parent
    with pytest.raises(DimensionMismatch):
        GaussianConditional([(X, jnp.eye(1))], jnp.zeros(1), parents=[(X, jnp.eye(1))])

    with pytest.raises(ValueError):
        GaussianConditional([(X, jnp.eye(1))], jnp.zeros(1), sigmas=jnp.array([0.0]))
