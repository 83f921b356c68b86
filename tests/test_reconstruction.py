"""
End-to-end tests: build H, simulate g, reconstruct the cube.
"""

import numpy as np
import pytest
import yaml

from ctispy import (
    CTISConfig,
    CTISReconstructor,
    ConfigurationError,
    build_system_matrix,
    cube_from_vector,
    reconstruct,
    reconstruct_cube,
    simulate_ctis_image,
    vectorize_cube,
)
from ctispy.validation import assess_reconstruction_quality, compute_residuals, relative_error


class TestSingleVoxelBlockScenario:
    """All-ones (2, 2, 1) cube with b1=1, b2=0, shift=1 and 5 orders."""

    @pytest.fixture
    def config(self):
        return CTISConfig(b1=1, b2=0, shift=1, all_orders=False, illum=np.array([1.0]), diff_sens=np.ones((5, 1)))

    @pytest.fixture
    def cube(self):
        return np.ones((2, 2, 1))

    def test_matrix_has_five_unit_entries_per_column(self, config):
        H = build_system_matrix(2, 2, 1, config)
        H_csc = H.tocsc()
        assert H.shape == (64, 4)
        assert np.all(np.diff(H_csc.indptr) == 5)
        np.testing.assert_array_equal(H_csc.data, 1.0)

    def test_simulated_image_has_five_blocks(self, config, cube):
        g = simulate_ctis_image(cube, config)
        assert g.shape == (8, 8)
        mask = np.zeros((8, 8), dtype=bool)
        for row, col in [(0, 3), (3, 0), (3, 3), (3, 6), (6, 3)]:
            np.testing.assert_array_equal(g[row:row + 2, col:col + 2], cube[:, :, 0])
            mask[row:row + 2, col:col + 2] = True
        assert np.all(g[~mask] == 0.0)

    def test_reconstruction_error_decreases(self, config, cube):
        H = build_system_matrix(2, 2, 1, config)
        g = simulate_ctis_image(cube, config)

        errors = [relative_error(reconstruct(H, g, n), cube) for n in range(5)]
        assert errors[1] < errors[0]
        for before, after in zip(errors, errors[1:]):
            assert after <= before + 1e-12

        f = reconstruct(H, g, 10)
        np.testing.assert_allclose(cube_from_vector(f, cube.shape), cube, atol=1e-12)


class TestValidation:
    def test_residuals_vanish_for_true_cube(self):
        cube = np.random.default_rng(0).uniform(size=(3, 3, 2))
        H = build_system_matrix(3, 3, 2)
        g = simulate_ctis_image(cube)
        np.testing.assert_allclose(compute_residuals(g, H, cube), 0.0, atol=1e-12)
        np.testing.assert_allclose(compute_residuals(g, H, vectorize_cube(cube)), 0.0, atol=1e-12)

    def test_relative_error(self):
        assert relative_error(np.ones(4), np.ones(4)) == 0.0
        assert relative_error(2 * np.ones(4), np.ones(4)) == pytest.approx(1.0)
        assert relative_error(np.zeros(3), np.zeros(3)) == 0.0
        assert relative_error(np.ones(3), np.zeros(3)) == float("inf")
        with pytest.raises(ConfigurationError):
            relative_error(np.ones(3), np.ones(4))

    def test_assess_quality(self):
        cube = np.ones((2, 2, 1))
        H = build_system_matrix(2, 2, 1)
        g = simulate_ctis_image(cube)
        metrics = assess_reconstruction_quality(g, H, vectorize_cube(cube), reference=cube)
        assert metrics.residual_norm == pytest.approx(0.0, abs=1e-12)
        assert metrics.relative_residual == pytest.approx(0.0, abs=1e-12)
        assert metrics.min_value == 1.0
        assert metrics.relative_error == 0.0

        without_reference = assess_reconstruction_quality(g, H, vectorize_cube(cube))
        assert without_reference.relative_error is None


class TestCTISReconstructor:
    """Tests for the orchestrator."""

    def test_matrix_is_cached(self):
        reconstructor = CTISReconstructor(CTISConfig(b1=2))
        H1 = reconstructor.build_matrix(3, 3, 2)
        H2 = reconstructor.build_matrix(3, 3, 2)
        assert H1 is H2
        assert reconstructor.build_matrix(3, 3, 1) is not H1

    def test_simulate_and_reconstruct(self):
        rng = np.random.default_rng(4)
        cube = rng.uniform(0.5, 1.5, size=(4, 4, 3))
        reconstructor = CTISReconstructor(CTISConfig(b1=1, iterations=30))

        g = reconstructor.simulate(cube)
        result = reconstructor.reconstruct(g, cube.shape, reference=cube)

        H = reconstructor.build_matrix(4, 4, 3)
        backprojection_error = relative_error(H.T @ g.ravel(order="F"), cube)

        assert result.cube.shape == cube.shape
        assert np.all(result.cube >= 0.0)
        assert result.em_result.iterations == 30
        assert result.em_result.residual_norms.shape == (30,)
        assert result.validation_metrics.relative_error < 0.5 * backprojection_error
        assert result.validation_metrics.min_value >= 0.0

    def test_summary_is_yaml_serializable(self, tmp_path):
        config = CTISConfig(iterations=2, illum=np.array([1.0, 0.5]))
        reconstructor = CTISReconstructor(config)
        cube = np.ones((2, 2, 2))
        result = reconstructor.reconstruct(reconstructor.simulate(cube), cube.shape)

        summary = result.summary()
        assert summary["cube_shape"] == [2, 2, 2]
        assert summary["iterations"] == 2
        assert summary["config"]["illum"] == [1.0, 0.5]

        path = tmp_path / "summary.yaml"
        with open(path, "w") as f:
            yaml.safe_dump(summary, f)
        with open(path) as f:
            assert yaml.safe_load(f)["init"] == "backprojection"

    def test_rejects_wrong_image_shape(self):
        reconstructor = CTISReconstructor()
        with pytest.raises(ConfigurationError, match="g must have shape"):
            reconstructor.reconstruct(np.ones((5, 5)), (2, 2, 1))
        with pytest.raises(ConfigurationError, match="cube_shape must be"):
            reconstructor.reconstruct(np.ones((8, 8)), (2, 2))

    def test_reconstruct_cube(self):
        cube = np.ones((2, 2, 1))
        H = build_system_matrix(2, 2, 1)
        g = simulate_ctis_image(cube)
        result = reconstruct_cube(H, g, cube.shape, iterations=5)
        np.testing.assert_allclose(result, cube, atol=1e-12)
        with pytest.raises(ConfigurationError, match="inconsistent with H shape"):
            reconstruct_cube(H, g, (2, 2, 2))
