"""Integration tests for the tiled render pipeline.

Tests cover:
- Output shape, range and orientation
- Determinism for a seed, independence from tile size
- Progressive passes match a single render
- Zero emission renders black
- Progress reporting and cancellation
- Stale scenes are rejected
- Worker requests that differ from the pool
"""

import threading

import numpy as np
import pytest


class TestRender:
    """Tests for one-shot rendering."""

    def test_light_above_sphere(self, light_and_sphere_scene):
        """Test a small render: valid range and the lit top brighter than the bottom."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render

        scene, camera, _ = light_and_sphere_scene
        built = scene.build()
        settings = RenderSettings(width=32, height=32, samples_per_pixel=16, max_depth=8, seed=1)

        result = render(built, camera, settings)
        pixels = result.pixels
        assert pixels.shape == (32, 32, 3)
        assert pixels.dtype == np.float32
        assert result.samples_per_pixel == 16
        assert result.anomalies == 0
        assert np.all(pixels >= 0.0)
        assert np.all(pixels <= 1.0)
        assert pixels[:16].mean() > pixels[16:].mean()
        assert pixels.mean() > 0.0

    def test_deterministic_for_seed(self, light_and_sphere_scene):
        """Test that identical settings give identical images."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render

        scene, camera, _ = light_and_sphere_scene
        built = scene.build()
        settings = RenderSettings(width=16, height=12, samples_per_pixel=4, max_depth=6, seed=7)

        first = render(built, camera, settings).pixels
        second = render(built, camera, settings).pixels
        assert np.array_equal(first, second)

        other = render(
            built, camera, RenderSettings(width=16, height=12, samples_per_pixel=4, max_depth=6, seed=8)
        ).pixels
        assert not np.array_equal(first, other)

    def test_tile_size_does_not_change_image(self, light_and_sphere_scene):
        """Test that tiling only changes scheduling, never pixels."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render

        scene, camera, _ = light_and_sphere_scene
        built = scene.build()
        base = dict(width=20, height=14, samples_per_pixel=4, max_depth=6, seed=3)

        whole = render(built, camera, RenderSettings(tile_size=64, **base)).pixels
        tiled = render(built, camera, RenderSettings(tile_size=5, **base)).pixels
        assert np.array_equal(whole, tiled)

    def test_zero_emission_is_black(self):
        """Test that a scene whose only light is off renders black."""
        from pathtracer.camera import Camera
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render
        from pathtracer.scene.manager import SceneManager

        scene = SceneManager()
        scene.add_lambertian_sphere((0.0, 0.0, 0.0), 1.0, (0.8, 0.8, 0.8))
        scene.add_light_quad((-2.0, 3.0, -2.0), (4.0, 0.0, 0.0), (0.0, 0.0, 4.0), intensity=0.0)
        built = scene.build()
        camera = Camera(lookfrom=(0.0, 0.0, 6.0), lookat=(0.0, 0.0, 0.0))

        result = render(built, camera, RenderSettings(width=8, height=8, samples_per_pixel=2, max_depth=4))
        assert not result.pixels.any()

    def test_non_finite_samples_counted(self):
        """Test that overflowing samples are replaced by black and counted."""
        from pathtracer.camera import Camera
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render
        from pathtracer.scene.manager import SceneManager

        scene = SceneManager()
        # 4 * 3e38 overflows float32, so every sample is infinite
        scene.add_light_quad(
            (-10.0, -10.0, 0.0), (20.0, 0.0, 0.0), (0.0, 20.0, 0.0), (4.0, 4.0, 4.0), 3.0e38
        )
        camera = Camera(lookfrom=(0.0, 0.0, 5.0), lookat=(0.0, 0.0, 0.0))

        result = render(scene.build(), camera, RenderSettings(width=8, height=8, samples_per_pixel=2))
        assert result.anomalies == 8 * 8 * 2
        assert np.all(np.isfinite(result.pixels))
        assert not result.pixels.any()

    def test_uint8_conversion(self, light_and_sphere_scene):
        """Test truncation to 8 bits."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render

        scene, camera, _ = light_and_sphere_scene
        result = render(scene.build(), camera, RenderSettings(width=8, height=8, samples_per_pixel=2))
        image = result.to_uint8()
        assert image.dtype == np.uint8
        assert np.array_equal(image, (result.pixels * 255.0).astype(np.uint8))

    def test_stale_scene_rejected(self, light_and_sphere_scene):
        """Test that rendering a handle built before a modification fails."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render
        from pathtracer.errors import ConstructionError

        scene, camera, light = light_and_sphere_scene
        built = scene.build()
        scene.add_sphere((3.0, 0.0, 0.0), 0.5, light)

        with pytest.raises(ConstructionError):
            render(built, camera, RenderSettings(width=8, height=8, samples_per_pixel=1))

    def test_invalid_camera_rejected(self, light_and_sphere_scene):
        """Test that a degenerate camera fails before rendering."""
        from pathtracer.camera import Camera
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render
        from pathtracer.errors import ConstructionError

        scene, _, _ = light_and_sphere_scene
        camera = Camera(lookfrom=(0.0, 5.0, 0.0), lookat=(0.0, 0.0, 0.0), vup=(0.0, 1.0, 0.0))
        with pytest.raises(ConstructionError):
            render(scene.build(), camera, RenderSettings(width=8, height=8, samples_per_pixel=1))


class TestProgressive:
    """Tests for multi-pass rendering."""

    def test_passes_match_single_render(self, light_and_sphere_scene):
        """Test that 3 + 3 + 2 samples equal 8 samples in one go."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import Renderer, render

        scene, camera, _ = light_and_sphere_scene
        built = scene.build()
        settings = RenderSettings(width=12, height=10, samples_per_pixel=8, max_depth=6, seed=5)

        single = render(built, camera, settings).pixels

        renderer = Renderer(built, camera, settings)
        counts = list(renderer.render_passes(batch=3))
        assert counts == [3, 6, 8]
        assert renderer.is_complete
        assert np.array_equal(renderer.get_result().pixels, single)

    def test_batch_must_be_positive(self, light_and_sphere_scene):
        """Test that a zero batch is rejected."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import Renderer

        scene, camera, _ = light_and_sphere_scene
        renderer = Renderer(scene.build(), camera, RenderSettings(width=4, height=4, samples_per_pixel=2))
        with pytest.raises(ValueError):
            next(renderer.render_passes(batch=0))

    def test_reset_restarts(self, light_and_sphere_scene):
        """Test that reset discards samples."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.integrator import get_sample_counts
        from pathtracer.core.pipeline import Renderer

        scene, camera, _ = light_and_sphere_scene
        renderer = Renderer(scene.build(), camera, RenderSettings(width=4, height=4, samples_per_pixel=2))
        renderer.render()
        assert np.all(get_sample_counts() == 2)
        renderer.reset()
        assert renderer.sample_count == 0
        assert not get_sample_counts().any()


class TestProgressAndCancel:
    """Tests for progress callbacks and cancellation."""

    def test_progress_reports_every_tile(self, light_and_sphere_scene):
        """Test that progress is monotonic and ends at the pixel count."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render

        scene, camera, _ = light_and_sphere_scene
        calls = []
        settings = RenderSettings(width=10, height=6, samples_per_pixel=1, tile_size=4)
        render(scene.build(), camera, settings, progress=lambda done, total: calls.append((done, total)))

        # ceil(10 / 4) * ceil(6 / 4) tiles
        assert len(calls) == 6
        assert all(total == 60 for _, total in calls)
        done = [d for d, _ in calls]
        assert done == sorted(done)
        assert done[-1] == 60

    def test_cancel_before_start(self, light_and_sphere_scene):
        """Test that a set token cancels with no pixels completed."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import render
        from pathtracer.errors import RenderCancelledError

        scene, camera, _ = light_and_sphere_scene
        token = threading.Event()
        token.set()

        with pytest.raises(RenderCancelledError) as excinfo:
            render(scene.build(), camera, RenderSettings(width=8, height=8, samples_per_pixel=1), cancel=token)
        assert excinfo.value.completed_pixels == 0
        assert excinfo.value.total_pixels == 64

    def test_cancel_mid_render(self, light_and_sphere_scene):
        """Test cancelling from the progress callback stops at a tile boundary."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.integrator import get_sample_counts
        from pathtracer.core.pipeline import Renderer
        from pathtracer.errors import RenderCancelledError

        scene, camera, _ = light_and_sphere_scene
        token = threading.Event()

        def progress(done, total):
            if done >= 16:
                token.set()

        settings = RenderSettings(width=8, height=8, samples_per_pixel=2, tile_size=4)
        renderer = Renderer(scene.build(), camera, settings)
        with pytest.raises(RenderCancelledError) as excinfo:
            renderer.render(progress=progress, cancel=token)
        assert excinfo.value.completed_pixels == 16
        # Partial work is discarded
        assert renderer.sample_count == 0
        assert not get_sample_counts().any()


class TestWorkers:
    """Tests for the worker pool request."""

    def test_mismatched_workers_keep_existing_pool(self, light_and_sphere_scene, caplog):
        """Test that a different worker count warns and renders on the existing pool."""
        from pathtracer.config import RenderSettings
        from pathtracer.core.pipeline import Renderer
        from pathtracer.runtime import worker_count

        scene, camera, _ = light_and_sphere_scene
        base = dict(width=8, height=8, samples_per_pixel=2, seed=2)
        pool = worker_count()

        with caplog.at_level("WARNING", logger="pathtracer.runtime"):
            renderer = Renderer(scene.build(), camera, RenderSettings(workers=pool + 3, **base))
        assert renderer.workers == pool
        assert "ignoring request" in caplog.text

        mismatched = renderer.render().pixels
        matched = Renderer(scene.build(), camera, RenderSettings(workers=pool, **base)).render().pixels
        assert np.array_equal(mismatched, matched)
