"""Unit tests for axis-aligned bounding boxes.

Tests cover:
- Construction and validation
- Union, containment and padding
- Bounding transformed boxes
- Slab test against rays
"""

import numpy as np
import pytest
import taichi as ti


class TestAABBHost:
    """Tests for the host-side AABB class."""

    def test_from_points(self):
        """Test that the box of a point set is its componentwise min/max."""
        from pathtracer.geometry.aabb import AABB

        box = AABB.from_points([(1, -2, 3), (-1, 4, 0), (0, 0, 5)])
        assert box.minimum.tolist() == [-1.0, -2.0, 0.0]
        assert box.maximum.tolist() == [1.0, 4.0, 5.0]

    def test_invalid_corners_raise(self):
        """Test that inverted or non-finite corners are rejected."""
        from pathtracer.errors import ConstructionError
        from pathtracer.geometry.aabb import AABB

        with pytest.raises(ConstructionError):
            AABB((1, 0, 0), (0, 1, 1))
        with pytest.raises(ConstructionError):
            AABB((0, 0, 0), (float("inf"), 1, 1))
        with pytest.raises(ConstructionError):
            AABB.from_points([])

    def test_union_is_minimal_and_contains_both(self):
        """Test that the union encloses both inputs and nothing more."""
        from pathtracer.geometry.aabb import AABB

        a = AABB((0, 0, 0), (1, 1, 1))
        b = AABB((2, -1, 0.5), (3, 0.5, 2))
        u = a.union(b)
        assert u.contains(a)
        assert u.contains(b)
        assert u.minimum.tolist() == [0.0, -1.0, 0.0]
        assert u.maximum.tolist() == [3.0, 1.0, 2.0]

    def test_surrounding_box(self):
        """Test the union of a list of boxes and the empty case."""
        from pathtracer.errors import ConstructionError
        from pathtracer.geometry.aabb import AABB, surrounding_box

        boxes = [AABB((i, 0, 0), (i + 1, 1, 1)) for i in range(4)]
        box = surrounding_box(boxes)
        assert box.maximum[0] == pytest.approx(4.0)
        with pytest.raises(ConstructionError):
            surrounding_box([])

    def test_padded_flat_box(self):
        """Test that a flat box gets a non-zero extent on the thin axis only."""
        from pathtracer.geometry.aabb import AABB

        flat = AABB((0, 0, 0), (2, 0, 2))
        padded = flat.padded(1e-3)
        assert padded.extent[1] == pytest.approx(1e-3)
        assert padded.extent[0] == pytest.approx(2.0)
        assert padded.contains(flat)

    def test_longest_axis_and_area(self):
        """Test the longest axis index and the surface area."""
        from pathtracer.geometry.aabb import AABB

        box = AABB((0, 0, 0), (1, 3, 2))
        assert box.longest_axis() == 1
        assert box.surface_area() == pytest.approx(2 * (3 + 2 + 6))

    def test_transformed_rotation_bounds_corners(self):
        """Test that a rotated box is bounded by its rotated corners."""
        from pathtracer.geometry.aabb import AABB

        box = AABB((-1, -1, -1), (1, 1, 1))
        c, s = np.cos(np.pi / 4), np.sin(np.pi / 4)
        rot_y = np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
        out = box.transformed(rot_y, (10, 0, 0))
        assert out.maximum[0] == pytest.approx(10 + np.sqrt(2))
        assert out.minimum[0] == pytest.approx(10 - np.sqrt(2))
        assert out.maximum[1] == pytest.approx(1.0)


class TestHitAABB:
    """Tests for the slab test."""

    def test_hit_and_miss(self):
        """Test rays toward, beside and away from a unit box."""
        from pathtracer.core.ray import safe_inverse
        from pathtracer.geometry.aabb import hit_aabb, vec3

        results = ti.field(dtype=ti.i32, shape=4)

        @ti.kernel
        def test_kernel():
            lo = vec3(-1.0, -1.0, -1.0)
            hi = vec3(1.0, 1.0, 1.0)
            toward = safe_inverse(vec3(0.0, 0.0, -1.0))
            results[0] = hit_aabb(lo, hi, vec3(0.0, 0.0, 5.0), toward, 0.001, 100.0)
            results[1] = hit_aabb(lo, hi, vec3(3.0, 0.0, 5.0), toward, 0.001, 100.0)
            away = safe_inverse(vec3(0.0, 0.0, 1.0))
            results[2] = hit_aabb(lo, hi, vec3(0.0, 0.0, 5.0), away, 0.001, 100.0)
            # Interval ends before the box
            results[3] = hit_aabb(lo, hi, vec3(0.0, 0.0, 5.0), toward, 0.001, 3.0)

        test_kernel()
        assert results[0] == 1
        assert results[1] == 0
        assert results[2] == 0
        assert results[3] == 0

    def test_axis_parallel_ray_inside_slab(self):
        """Test that a ray with zero direction components still hits."""
        from pathtracer.core.ray import safe_inverse
        from pathtracer.geometry.aabb import hit_aabb, vec3

        result = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            inv = safe_inverse(vec3(1.0, 0.0, 0.0))
            result[None] = hit_aabb(
                vec3(0.0, 0.0, 0.0), vec3(1.0, 1.0, 1.0), vec3(-5.0, 0.5, 0.5), inv, 0.001, 100.0
            )

        test_kernel()
        assert result[None] == 1
