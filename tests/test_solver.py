# tests/test_solver.py
import numpy as np
import pytest

from nmfspot import ConvergenceWarning, InvalidConfig
from nmfspot._objective import frobenius_loss, smoothing_matrix
from nmfspot._solver import mu_update_nonsmooth, mu_update_standard, nmf_solver


def _toy_data(m=40, n=60, k=4, seed=0):
    r = np.random.default_rng(seed)
    return r.gamma(1.0, 1.0, size=(m, k)) @ r.gamma(1.0, 1.0, size=(k, n)) + 0.1 * r.random((m, n))


@pytest.mark.parametrize("method", ["standard", "nonsmooth"])
def test_factors_are_nonnegative(method):
    V = _toy_data()
    W, H, losses, _, n_iter, _ = nmf_solver(V, 4, rng=np.random.default_rng(1), method=method,
                                            max_iter=300, tol=1e-8)
    assert W.shape == (40, 4) and H.shape == (4, 60)
    assert np.all(W >= 0) and np.all(H >= 0)
    assert len(losses) == n_iter


@pytest.mark.parametrize("method", ["standard", "nonsmooth"])
def test_loss_non_increasing(method):
    V = _toy_data(seed=3)
    _, _, losses, _, _, _ = nmf_solver(V, 4, rng=np.random.default_rng(3), method=method,
                                       max_iter=400, tol=0.0)
    hist = np.asarray(losses)
    # allow tiny floating jitter
    assert np.all(hist[1:] <= hist[:-1] * (1 + 1e-10) + 1e-12)
    assert hist[-1] < hist[0]


@pytest.mark.parametrize("method", ["standard", "nonsmooth"])
def test_single_step_does_not_increase_objective(method):
    r = np.random.default_rng(5)
    V = _toy_data(seed=5)
    W = r.random((40, 4))
    H = r.random((4, 60))
    S = smoothing_matrix(4, 0.5) if method == "nonsmooth" else None
    step = mu_update_nonsmooth if method == "nonsmooth" else mu_update_standard
    obj_prev = frobenius_loss(V, W, H, S)
    for _ in range(25):
        W, H = step(V, W, H, S)
        obj = frobenius_loss(V, W, H, S)
        assert obj <= obj_prev + 1e-10
        obj_prev = obj


def test_seed_reproducibility():
    V = _toy_data(seed=9)
    kwargs = dict(method="nonsmooth", max_iter=200, tol=1e-8)
    W1, H1, *_ = nmf_solver(V, 3, rng=np.random.default_rng(123), **kwargs)
    W2, H2, *_ = nmf_solver(V, 3, rng=np.random.default_rng(123), **kwargs)
    W3, H3, *_ = nmf_solver(V, 3, rng=np.random.default_rng(456), **kwargs)
    np.testing.assert_allclose(W1, W2, rtol=0, atol=1e-12)
    np.testing.assert_allclose(H1, H2, rtol=0, atol=1e-12)
    assert not np.allclose(W1, W3)


def test_max_iter_is_not_fatal():
    V = _toy_data()
    with pytest.warns(ConvergenceWarning):
        W, H, losses, _, n_iter, converged = nmf_solver(V, 4, rng=np.random.default_rng(0),
                                                        method="standard", max_iter=5, tol=0.0)
    assert not converged
    assert n_iter == 5
    assert np.isclose(frobenius_loss(V, W, H), min(losses))


def test_converges_with_loose_tol():
    V = _toy_data()
    *_, n_iter, converged = nmf_solver(V, 4, rng=np.random.default_rng(0), method="standard",
                                       max_iter=5000, tol=1e-3)
    assert converged
    assert n_iter < 5000


def test_explicit_init_is_used():
    V = _toy_data()
    r = np.random.default_rng(0)
    W0, H0 = r.random((40, 4)), r.random((4, 60))
    a = nmf_solver(V, 4, rng=np.random.default_rng(1), method="standard", max_iter=20, tol=0.0,
                   W_init=W0, H_init=H0)
    b = nmf_solver(V, 4, rng=np.random.default_rng(2), method="standard", max_iter=20, tol=0.0,
                   W_init=W0, H_init=H0)
    np.testing.assert_allclose(a[0], b[0])
    with pytest.raises(InvalidConfig):
        nmf_solver(V, 4, rng=r, W_init=W0[:5], H_init=H0)


def test_bad_arguments():
    V = _toy_data()
    r = np.random.default_rng(0)
    with pytest.raises(InvalidConfig):
        nmf_solver(V, 4, rng=r, method="brunet")
    with pytest.raises(InvalidConfig):
        nmf_solver(V, 4, rng=r, method="nonsmooth", theta=1.0)
    with pytest.raises(InvalidConfig):
        nmf_solver(V, 0, rng=r)


def test_smoothing_matrix():
    S = smoothing_matrix(4, 0.5)
    np.testing.assert_allclose(S.sum(axis=0), 1.0)
    np.testing.assert_allclose(np.diag(S), 0.5 + 0.5 / 4)
    np.testing.assert_array_equal(smoothing_matrix(3, 0.0), np.eye(3))
